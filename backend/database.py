"""
Database Models and Connection
SQLAlchemy models for donations, events, sponsorship tiers, registrations
and contact-form signups.
"""

from sqlalchemy import create_engine, Column, Integer, String, Boolean, DateTime, Date, Float, Text, ForeignKey
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, relationship
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone
import os
import json
import logging

logger = logging.getLogger(__name__)

# Database configuration
DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///nonprofit.db')
Base = declarative_base()


def _engine_kwargs(url):
    """Connection options per backend (shared pool for in-memory SQLite)"""
    if not url.startswith('sqlite'):
        return {}
    kwargs = {'connect_args': {'check_same_thread': False}}
    if url in ('sqlite://', 'sqlite:///:memory:'):
        kwargs['poolclass'] = StaticPool
    return kwargs


# Create engine
engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PAYMENT_STATUSES = ('pending', 'success', 'failed', 'pending_check', 'free')
SETTLED_STATUSES = ('success', 'free')
RECURRING_STATUSES = ('one_time', 'active', 'paused', 'failed')


def utcnow():
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today():
    """Current calendar date in UTC"""
    return datetime.now(timezone.utc).date()


def _iso(value):
    return value.isoformat() if value else None


def parse_guest_payload(raw):
    """
    Read a stored guest list.

    Accepts either a JSON array of guests or the legacy
    {"text": ..., "guests": [...]} object. Anything unparseable means
    "no structured guests".
    """
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []

    if isinstance(parsed, dict):
        parsed = parsed.get('guests') or []
    if not isinstance(parsed, list):
        return []

    guests = []
    for guest in parsed:
        if isinstance(guest, dict) and str(guest.get('name') or '').strip():
            entry = {'name': str(guest['name']).strip()}
            if guest.get('email'):
                entry['email'] = str(guest['email']).strip()
            guests.append(entry)
    return guests


class Donation(Base):
    """A one-time or monthly pledge and the outcome of its last charge"""
    __tablename__ = 'donations'

    id = Column(Integer, primary_key=True, index=True)
    amount = Column(Float, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False, index=True)
    recurring_frequency = Column(String(20), nullable=True)  # 'monthly' or None
    recurring_status = Column(String(20), default='one_time', nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    honor_name = Column(String(255), nullable=True)
    honor_email = Column(String(255), nullable=True)
    sponsorship = Column(String(255), nullable=True)  # Free-text sponsorship label
    message = Column(Text, nullable=True)

    # Payment tracking (records the last attempt only)
    payment_method = Column(String(20), default='online')
    payment_processor = Column(String(20), nullable=True)
    payment_status = Column(String(20), default='pending', nullable=False, index=True)
    payment_reference = Column(String(255), nullable=True)
    payment_error = Column(Text, nullable=True)

    # Recurring schedule: card_ref and next_charge_date are set together
    card_ref = Column(String(255), nullable=True)
    next_charge_date = Column(Date, nullable=True, index=True)
    billing_day = Column(Integer, nullable=True)
    charge_claimed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self, include_sensitive=False):
        """Convert donation to dictionary, card reference only on request"""
        data = {
            'id': self.id,
            'amount': self.amount,
            'is_recurring': self.is_recurring,
            'recurring_frequency': self.recurring_frequency,
            'recurring_status': self.recurring_status,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'honor_name': self.honor_name,
            'honor_email': self.honor_email,
            'sponsorship': self.sponsorship,
            'message': self.message,
            'payment_method': self.payment_method,
            'payment_processor': self.payment_processor,
            'payment_status': self.payment_status,
            'payment_reference': self.payment_reference,
            'payment_error': self.payment_error,
            'has_saved_card': bool(self.card_ref),
            'next_charge_date': _iso(self.next_charge_date),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }

        if include_sensitive:
            data['card_ref'] = self.card_ref

        return data


class Event(Base):
    """A single scheduled gathering with per-head pricing"""
    __tablename__ = 'events'

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(200), unique=True, index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(50), nullable=True)
    end_time = Column(String(50), nullable=True)
    location = Column(String(255), nullable=True)
    location_url = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    price_per_adult = Column(Float, default=0, nullable=False)
    kids_price = Column(Float, default=0, nullable=False)
    family_cap = Column(Float, nullable=True)  # Max per-head subtotal for one party
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    sponsorships = relationship('EventSponsorship', back_populates='event', cascade='all, delete-orphan',
                                order_by='EventSponsorship.price.desc()')
    registrations = relationship('EventRegistration', back_populates='event', cascade='all, delete-orphan')

    def to_dict(self, include_sponsorships=False):
        """Convert event to dictionary"""
        data = {
            'id': self.id,
            'slug': self.slug,
            'title': self.title,
            'description': self.description,
            'date': _iso(self.date),
            'date_display': self.date.strftime('%A, %B %d, %Y') if self.date else None,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'location': self.location,
            'location_url': self.location_url,
            'image_url': self.image_url,
            'price_per_adult': self.price_per_adult,
            'kids_price': self.kids_price,
            'family_cap': self.family_cap,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }

        if include_sponsorships:
            data['sponsorships'] = [s.to_dict() for s in self.sponsorships]

        return data


class EventSponsorship(Base):
    """Fixed-price tier that replaces per-head pricing for a registration"""
    __tablename__ = 'event_sponsorships'

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, default=0, nullable=False)  # 0 = pay what you wish
    description = Column(Text, nullable=True)
    max_available = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    event = relationship('Event', back_populates='sponsorships')

    def to_dict(self):
        return {
            'id': self.id,
            'event_id': self.event_id,
            'name': self.name,
            'price': self.price,
            'description': self.description,
            'max_available': self.max_available,
            'created_at': _iso(self.created_at)
        }


class EventRegistration(Base):
    """One party's signup for one event, written after payment is resolved"""
    __tablename__ = 'event_registrations'

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey('events.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    adults = Column(Integer, default=1, nullable=False)
    kids = Column(Integer, default=0, nullable=False)
    sponsorship_id = Column(Integer, ForeignKey('event_sponsorships.id'), nullable=True)
    message = Column(Text, nullable=True)
    guests_data = Column(Text, nullable=True)  # JSON array of {name, email?}
    honoree_name = Column(String(255), nullable=True)
    honoree_email = Column(String(255), nullable=True)
    subtotal = Column(Float, default=0, nullable=False)
    payment_method = Column(String(20), nullable=True)
    payment_processor = Column(String(20), nullable=True)
    payment_status = Column(String(20), default='pending', nullable=False, index=True)
    payment_reference = Column(String(255), nullable=True)
    payment_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    event = relationship('Event', back_populates='registrations')
    sponsorship = relationship('EventSponsorship')

    @property
    def guests(self):
        """Structured guest list; older rows kept it JSON-encoded in message"""
        guests = parse_guest_payload(self.guests_data)
        if not guests and self.message:
            guests = parse_guest_payload(self.message)
        return guests

    @property
    def message_text(self):
        """Free-text message, unwrapping the legacy {"text", "guests"} encoding"""
        if not self.message:
            return None
        try:
            parsed = json.loads(self.message)
        except (json.JSONDecodeError, TypeError):
            return self.message
        if isinstance(parsed, dict) and 'guests' in parsed:
            return parsed.get('text') or None
        return self.message

    def to_dict(self):
        """Convert registration to dictionary"""
        return {
            'id': self.id,
            'event_id': self.event_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'adults': self.adults,
            'kids': self.kids,
            'sponsorship_id': self.sponsorship_id,
            'sponsorship_name': self.sponsorship.name if self.sponsorship else None,
            'message': self.message_text,
            'guests': self.guests,
            'honoree_name': self.honoree_name,
            'honoree_email': self.honoree_email,
            'subtotal': self.subtotal,
            'payment_method': self.payment_method,
            'payment_processor': self.payment_processor,
            'payment_status': self.payment_status,
            'payment_reference': self.payment_reference,
            'payment_error': self.payment_error,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class EmailSignup(Base):
    """Contact form submission"""
    __tablename__ = 'email_signups'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    subject = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    source = Column(String(50), default='contact_form')
    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'subject': self.subject,
            'message': self.message,
            'source': self.source,
            'created_at': _iso(self.created_at)
        }


def init_db():
    """Initialize database - create all tables"""
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database initialized successfully")
    except Exception as e:
        # Handle race condition where multiple workers try to create tables simultaneously
        if "already exists" in str(e).lower() or "duplicate" in str(e).lower():
            logger.info("Database tables already exist (race condition handled)")
        else:
            raise


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


if __name__ == '__main__':
    # Initialize database when run directly
    init_db()
    print(f"Database created at: {DATABASE_URL}")
