"""
Admin API Routes
Dashboard endpoints for donations, events, registrations, people and
contact-form signups. Everything except login requires an admin token.
"""

from flask import Blueprint, jsonify, request
import json
import math
import logging
from datetime import date

from database import (
    get_db, Donation, Event, EventSponsorship, EventRegistration, EmailSignup,
    PAYMENT_STATUSES, SETTLED_STATUSES, utcnow, utc_today
)
from auth import require_admin, check_admin_password, generate_token
from validators import (
    ValidationError, clean_text, clean_multiline, is_valid_email, parse_count, parse_bool
)
from slug_utils import generate_slug, generate_event_slug
from people_directory import load_people_directory
from sqlalchemy import or_, extract
from dateutil import parser

logger = logging.getLogger(__name__)
admin_api_bp = Blueprint('admin_api', __name__, url_prefix='/api/admin')

ADMIN_RECURRING_STATUSES = ('active', 'paused', 'failed')
REGISTRATION_PATCH_FIELDS = (
    'name', 'email', 'phone', 'adults', 'kids', 'sponsorship_id', 'message', 'subtotal', 'payment_status'
)


# ----- Helpers -----

def _parse_date(value, field='date'):
    if isinstance(value, date):
        return value
    try:
        return parser.parse(str(value)).date()
    except (ValueError, OverflowError, TypeError):
        raise ValidationError(f'Invalid {field}')


def _parse_price(value, field):
    """Non-negative price; blank means 0"""
    if value is None or value == '':
        return 0
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}')
    if not math.isfinite(price) or price < 0:
        raise ValidationError(f'Invalid {field}')
    return round(price, 2)


def _pagination_args(default_limit=50):
    try:
        page = max(int(request.args.get('page', 1)), 1)
        limit = min(max(int(request.args.get('limit', default_limit)), 1), 500)
    except ValueError:
        raise ValidationError('Invalid page or limit parameters.')
    return page, limit


def _pagination(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': (total + limit - 1) // limit
    }


def registration_stats(registrations):
    """Headcount and revenue figures over settled registrations"""
    settled = [r for r in registrations if r.payment_status in SETTLED_STATUSES]
    failed = [r for r in registrations if r.payment_status == 'failed']
    pending = [r for r in registrations if r.payment_status in ('pending', 'pending_check')]
    sponsored = [r for r in settled if r.sponsorship_id]

    return {
        'total_registrations': len(settled),
        'total_attendees': sum(r.adults + r.kids for r in settled),
        'total_adults': sum(r.adults for r in settled),
        'total_kids': sum(r.kids for r in settled),
        'total_revenue': round(sum(float(r.subtotal or 0) for r in settled), 2),
        'sponsorships_count': len(sponsored),
        'sponsorship_revenue': round(sum(float(r.subtotal or 0) for r in sponsored), 2),
        'failed_count': len(failed),
        'pending_count': len(pending),
        'payment_success_rate': round(len(settled) / len(registrations) * 100) if registrations else 0,
    }


def _apply_event_fields(event, data):
    """Copy editable event fields from request JSON onto an Event"""
    if 'title' in data:
        title = clean_text(data.get('title'))
        if not title:
            raise ValidationError('Title is required')
        event.title = title
    if 'date' in data:
        event.date = _parse_date(data.get('date'))
    if 'description' in data:
        event.description = clean_multiline(data.get('description')) or None
    for field in ('start_time', 'end_time', 'location', 'location_url', 'image_url'):
        if field in data:
            setattr(event, field, clean_text(data.get(field)) or None)
    if 'price_per_adult' in data:
        event.price_per_adult = _parse_price(data.get('price_per_adult'), 'price per adult')
    if 'kids_price' in data:
        event.kids_price = _parse_price(data.get('kids_price'), 'kids price')
    if 'family_cap' in data:
        cap = data.get('family_cap')
        event.family_cap = None if cap in (None, '') else _parse_price(cap, 'family cap')
    if 'is_active' in data:
        event.is_active = parse_bool(data.get('is_active'))


def _build_sponsorship(tier):
    name = clean_text((tier or {}).get('name'))
    if not name:
        raise ValidationError('Sponsorship name is required')
    max_available = tier.get('max_available')
    return {
        'name': name,
        'price': _parse_price(tier.get('price'), 'sponsorship price'),
        'description': clean_multiline(tier.get('description')) or None,
        'max_available': None if max_available in (None, '') else parse_count(
            max_available, 'max_available', default=None, minimum=0),
    }


def _replace_sponsorships(db, event, tiers):
    """
    Sync an event's tiers with a submitted list.
    Tiers with an id are updated, new ones added, and missing ones removed
    unless a registration still points at them.
    """
    if not isinstance(tiers, list):
        raise ValidationError('Sponsorships must be a list')

    existing = {s.id: s for s in event.sponsorships}
    keep_ids = set()

    for tier in tiers:
        fields = _build_sponsorship(tier)
        tier_id = tier.get('id')
        if tier_id is not None and int(tier_id) in existing:
            sponsorship = existing[int(tier_id)]
            for key, value in fields.items():
                setattr(sponsorship, key, value)
            keep_ids.add(sponsorship.id)
        else:
            event.sponsorships.append(EventSponsorship(**fields))

    for tier_id, sponsorship in existing.items():
        if tier_id in keep_ids:
            continue
        in_use = db.query(EventRegistration).filter(EventRegistration.sponsorship_id == tier_id).count()
        if in_use:
            logger.info(f"Keeping sponsorship {tier_id} on event {event.id}: {in_use} registrations reference it")
            continue
        event.sponsorships.remove(sponsorship)


# ----- Admin Login -----

@admin_api_bp.route('/login', methods=['POST'])
def admin_login():
    """Exchange the shared admin password for a session token"""
    try:
        data = request.get_json(silent=True) or {}
        if not check_admin_password(data.get('password')):
            logger.warning("Failed admin login attempt")
            return jsonify({'success': False, 'error': 'Invalid password'}), 401

        logger.info("Admin logged in")
        return jsonify({'success': True, **generate_token()})

    except Exception as e:
        logger.error(f"Error during admin login: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


# ----- Donations -----

@admin_api_bp.route('/donations', methods=['GET'])
@require_admin
def get_donations(admin):
    """Donations page with filters, plus dashboard totals over all donations"""
    try:
        year = request.args.get('year')
        status = request.args.get('status')
        recurring = request.args.get('recurring')
        page, limit = _pagination_args()

        db = next(get_db())
        try:
            query = db.query(Donation)

            if year:
                if not year.isdigit():
                    return jsonify({'success': False, 'error': 'Invalid year'}), 400
                query = query.filter(extract('year', Donation.created_at) == int(year))
            if status and status != 'all':
                query = query.filter(Donation.payment_status == status)
            if recurring == 'true':
                query = query.filter(Donation.is_recurring.is_(True))

            total = query.count()
            donations = query.order_by(Donation.created_at.desc(), Donation.id.desc()) \
                .offset((page - 1) * limit).limit(limit).all()

            all_donations = db.query(Donation).all()
            settled = [d for d in all_donations if d.payment_status in SETTLED_STATUSES]
            recurring_settled = [d for d in settled if d.is_recurring]

            yearly_totals = {}
            for d in settled:
                if d.created_at:
                    yearly_totals[d.created_at.year] = round(yearly_totals.get(d.created_at.year, 0) + d.amount, 2)
            available_years = sorted({d.created_at.year for d in all_donations if d.created_at}, reverse=True)

            return jsonify({
                'success': True,
                'donations': [d.to_dict() for d in donations],
                'pagination': _pagination(page, limit, total),
                'stats': {
                    'total_amount': round(sum(d.amount for d in settled), 2),
                    'successful_count': len(settled),
                    'failed_count': len([d for d in all_donations if d.payment_status == 'failed']),
                    'recurring_count': len(recurring_settled),
                    'recurring_total': round(sum(d.amount for d in recurring_settled), 2),
                    'active_recurring_count': len([
                        d for d in all_donations if d.is_recurring and d.recurring_status == 'active'
                    ]),
                    'yearly_totals': yearly_totals,
                },
                'available_years': available_years
            })

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error fetching donations: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch donations'}), 500


@admin_api_bp.route('/donations/<int:donation_id>', methods=['PATCH'])
@require_admin
def update_donation(admin, donation_id):
    """Pause, resume or fail a monthly donation, or move its next charge date"""
    try:
        data = request.get_json(silent=True) or {}
        if 'recurring_status' not in data and 'next_charge_date' not in data:
            return jsonify({'success': False, 'error': 'No valid fields to update'}), 400

        db = next(get_db())
        try:
            donation = db.query(Donation).filter(Donation.id == donation_id).first()
            if not donation:
                return jsonify({'success': False, 'error': 'Donation not found'}), 404
            if not donation.is_recurring:
                return jsonify({'success': False, 'error': 'Only monthly donations can be updated'}), 400

            if 'next_charge_date' in data:
                if not donation.card_ref:
                    raise ValidationError('Donation has no saved card to schedule')
                donation.next_charge_date = _parse_date(data.get('next_charge_date'), 'next charge date')
                donation.billing_day = donation.next_charge_date.day

            if 'recurring_status' in data:
                new_status = clean_text(data.get('recurring_status')).lower()
                if new_status not in ADMIN_RECURRING_STATUSES:
                    raise ValidationError('Invalid recurring status')
                if new_status == 'active':
                    if not donation.card_ref:
                        raise ValidationError('Cannot activate a donation without a saved card')
                    if not donation.next_charge_date:
                        donation.next_charge_date = utc_today()
                donation.recurring_status = new_status

            donation.charge_claimed_at = None
            donation.updated_at = utcnow()
            db.commit()
            db.refresh(donation)

            logger.info(f"Donation {donation_id} updated by admin: status={donation.recurring_status}, "
                        f"next={donation.next_charge_date}")
            return jsonify({
                'success': True,
                'message': 'Donation updated successfully',
                'donation': donation.to_dict()
            })

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error updating donation {donation_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to update donation'}), 500


# ----- Events -----

@admin_api_bp.route('/events', methods=['GET'])
@require_admin
def get_admin_events(admin):
    """All events (active or not) with per-event registration stats"""
    try:
        year = request.args.get('year')

        db = next(get_db())
        try:
            query = db.query(Event)
            if year:
                if not year.isdigit():
                    return jsonify({'success': False, 'error': 'Invalid year'}), 400
                query = query.filter(Event.date >= date(int(year), 1, 1), Event.date <= date(int(year), 12, 31))

            events = query.order_by(Event.date.desc()).all()

            events_with_stats = []
            for event in events:
                data = event.to_dict()
                stats = registration_stats(event.registrations)
                data['stats'] = {
                    'total_registrations': stats['total_registrations'],
                    'total_attendees': stats['total_attendees'],
                    'total_revenue': stats['total_revenue'],
                    'sponsorships_count': stats['sponsorships_count'],
                }
                events_with_stats.append(data)

            available_years = sorted({row[0].year for row in db.query(Event.date).all() if row[0]}, reverse=True)
            if not available_years:
                available_years = [utc_today().year]

            return jsonify({
                'success': True,
                'events': events_with_stats,
                'available_years': available_years
            })

        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error fetching admin events: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch events'}), 500


@admin_api_bp.route('/events', methods=['POST'])
@require_admin
def create_event(admin):
    """Create an event with optional sponsorship tiers"""
    try:
        data = request.get_json(silent=True) or {}
        if not clean_text(data.get('title')) or not data.get('date'):
            return jsonify({'success': False, 'error': 'Title and date are required'}), 400

        db = next(get_db())
        try:
            event = Event()
            _apply_event_fields(event, data)
            if event.is_active is None:
                event.is_active = True

            slug = clean_text(data.get('slug'))
            if slug:
                slug = generate_slug(slug)
                if db.query(Event).filter(Event.slug == slug).first():
                    return jsonify({'success': False, 'error': 'Slug already in use'}), 400
            else:
                slug = generate_event_slug(event.title, event.date, db)
            event.slug = slug

            for tier in data.get('sponsorships') or []:
                event.sponsorships.append(EventSponsorship(**_build_sponsorship(tier)))

            db.add(event)
            db.commit()
            db.refresh(event)

            logger.info(f"Event created: {event.slug} (ID: {event.id}) with {len(event.sponsorships)} tiers")
            return jsonify({
                'success': True,
                'message': 'Event created successfully',
                'event': event.to_dict(include_sponsorships=True)
            }), 201

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error creating event: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to create event'}), 500


@admin_api_bp.route('/events/<int:event_id>', methods=['GET'])
@require_admin
def get_admin_event(admin, event_id):
    """Event detail with tiers, registrations and stats"""
    try:
        db = next(get_db())
        try:
            event = db.query(Event).filter(Event.id == event_id).first()
            if not event:
                return jsonify({'success': False, 'error': 'Event not found'}), 404

            registrations = db.query(EventRegistration).filter(
                EventRegistration.event_id == event_id
            ).order_by(EventRegistration.created_at.desc(), EventRegistration.id.desc()).all()

            return jsonify({
                'success': True,
                'event': event.to_dict(),
                'sponsorships': [s.to_dict() for s in event.sponsorships],
                'registrations': [r.to_dict() for r in registrations],
                'stats': registration_stats(registrations)
            })

        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error fetching event {event_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch event'}), 500


@admin_api_bp.route('/events/<int:event_id>', methods=['PUT'])
@require_admin
def update_event(admin, event_id):
    """Update event fields and, when given, its sponsorship tiers"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'success': False, 'error': 'No data provided'}), 400

        db = next(get_db())
        try:
            event = db.query(Event).filter(Event.id == event_id).first()
            if not event:
                return jsonify({'success': False, 'error': 'Event not found'}), 404

            _apply_event_fields(event, data)

            if 'slug' in data:
                slug = generate_slug(clean_text(data.get('slug')))
                if not slug:
                    raise ValidationError('Invalid slug')
                if slug != event.slug:
                    if event.registrations:
                        raise ValidationError('Slug cannot change once the event has registrations')
                    if db.query(Event).filter(Event.slug == slug, Event.id != event_id).first():
                        raise ValidationError('Slug already in use')
                    event.slug = slug

            if 'sponsorships' in data:
                _replace_sponsorships(db, event, data.get('sponsorships'))

            event.updated_at = utcnow()
            db.commit()
            db.refresh(event)

            logger.info(f"Event updated: {event.slug} (ID: {event.id})")
            return jsonify({
                'success': True,
                'message': 'Event updated successfully',
                'event': event.to_dict(include_sponsorships=True)
            })

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error updating event {event_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to update event'}), 500


@admin_api_bp.route('/events/<int:event_id>', methods=['DELETE'])
@require_admin
def delete_event(admin, event_id):
    """Delete an event together with its tiers and registrations"""
    try:
        db = next(get_db())
        try:
            event = db.query(Event).filter(Event.id == event_id).first()
            if not event:
                return jsonify({'success': False, 'error': 'Event not found'}), 404

            slug = event.slug
            db.delete(event)
            db.commit()

            logger.info(f"Event deleted: {slug} (ID: {event_id})")
            return jsonify({'success': True, 'message': 'Event deleted successfully'})

        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error deleting event {event_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to delete event'}), 500


# ----- Registrations -----

@admin_api_bp.route('/registrations/<int:registration_id>', methods=['GET'])
@require_admin
def get_registration(admin, registration_id):
    try:
        db = next(get_db())
        try:
            registration = db.query(EventRegistration).filter(EventRegistration.id == registration_id).first()
            if not registration:
                return jsonify({'success': False, 'error': 'Registration not found'}), 404

            return jsonify({
                'success': True,
                'registration': registration.to_dict(),
                'event': registration.event.to_dict() if registration.event else None
            })

        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error fetching registration {registration_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch registration'}), 500


@admin_api_bp.route('/registrations/<int:registration_id>', methods=['PATCH'])
@require_admin
def update_registration(admin, registration_id):
    """Correct a registration; only a fixed set of fields is editable"""
    try:
        data = request.get_json(silent=True) or {}
        updates = {field: data[field] for field in REGISTRATION_PATCH_FIELDS if field in data}
        if not updates:
            return jsonify({'success': False, 'error': 'No valid fields to update'}), 400

        db = next(get_db())
        try:
            registration = db.query(EventRegistration).filter(EventRegistration.id == registration_id).first()
            if not registration:
                return jsonify({'success': False, 'error': 'Registration not found'}), 404

            if 'name' in updates:
                name = clean_text(updates['name'])
                if not name:
                    raise ValidationError('Name is required')
                registration.name = name
            if 'email' in updates:
                email = clean_text(updates['email'])
                if not is_valid_email(email):
                    raise ValidationError('Invalid email format')
                registration.email = email
            if 'phone' in updates:
                registration.phone = clean_text(updates['phone']) or None
            if 'adults' in updates:
                registration.adults = parse_count(updates['adults'], 'adults', default=1, minimum=1)
            if 'kids' in updates:
                registration.kids = parse_count(updates['kids'], 'kids', default=0, minimum=0)
            if 'sponsorship_id' in updates:
                sponsorship_id = updates['sponsorship_id']
                if sponsorship_id in (None, ''):
                    registration.sponsorship_id = None
                else:
                    sponsorship = db.query(EventSponsorship).filter(
                        EventSponsorship.id == sponsorship_id,
                        EventSponsorship.event_id == registration.event_id
                    ).first()
                    if not sponsorship:
                        raise ValidationError('Invalid sponsorship selected')
                    registration.sponsorship_id = sponsorship.id
            if 'message' in updates:
                # Lift guests out of a legacy JSON message before overwriting it
                if not registration.guests_data and registration.guests:
                    registration.guests_data = json.dumps(registration.guests)
                registration.message = clean_multiline(updates['message']) or None
            if 'subtotal' in updates:
                registration.subtotal = _parse_price(updates['subtotal'], 'subtotal')
            if 'payment_status' in updates:
                if updates['payment_status'] not in PAYMENT_STATUSES:
                    raise ValidationError('Invalid payment status')
                registration.payment_status = updates['payment_status']

            registration.updated_at = utcnow()
            db.commit()
            db.refresh(registration)

            logger.info(f"Registration {registration_id} updated by admin: {', '.join(sorted(updates))}")
            return jsonify({'success': True, 'registration': registration.to_dict()})

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error updating registration {registration_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to update registration'}), 500


@admin_api_bp.route('/registrations/<int:registration_id>', methods=['DELETE'])
@require_admin
def delete_registration(admin, registration_id):
    try:
        db = next(get_db())
        try:
            registration = db.query(EventRegistration).filter(EventRegistration.id == registration_id).first()
            if not registration:
                return jsonify({'success': False, 'error': 'Registration not found'}), 404

            db.delete(registration)
            db.commit()

            logger.info(f"Registration {registration_id} deleted by admin")
            return jsonify({'success': True, 'message': 'Registration deleted successfully'})

        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error deleting registration {registration_id}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to delete registration'}), 500


# ----- People & Signups -----

@admin_api_bp.route('/people', methods=['GET'])
@require_admin
def get_people(admin):
    """Everyone who registered or attended as a guest, merged per person"""
    try:
        db = next(get_db())
        try:
            return jsonify({'success': True, **load_people_directory(db)})
        finally:
            db.close()

    except Exception as e:
        logger.error(f"Error building people directory: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


@admin_api_bp.route('/signups', methods=['GET'])
@require_admin
def get_signups(admin):
    """Contact-form submissions with search and pagination"""
    try:
        search = request.args.get('search', '').strip()
        subject = request.args.get('subject')
        page, limit = _pagination_args()

        db = next(get_db())
        try:
            query = db.query(EmailSignup)

            if search:
                search_term = f"%{search}%"
                query = query.filter(
                    or_(
                        EmailSignup.name.ilike(search_term),
                        EmailSignup.email.ilike(search_term),
                        EmailSignup.subject.ilike(search_term),
                        EmailSignup.message.ilike(search_term)
                    )
                )
            if subject and subject != 'all':
                query = query.filter(EmailSignup.subject == subject)

            total = query.count()
            signups = query.order_by(EmailSignup.created_at.desc(), EmailSignup.id.desc()) \
                .offset((page - 1) * limit).limit(limit).all()

            all_signups = db.query(EmailSignup.created_at, EmailSignup.subject).all()
            now = utcnow()
            by_subject = {}
            for _, signup_subject in all_signups:
                key = signup_subject or 'general'
                by_subject[key] = by_subject.get(key, 0) + 1

            return jsonify({
                'success': True,
                'signups': [s.to_dict() for s in signups],
                'pagination': _pagination(page, limit, total),
                'stats': {
                    'total': len(all_signups),
                    'this_month': len([
                        1 for created_at, _ in all_signups
                        if created_at and created_at.year == now.year and created_at.month == now.month
                    ]),
                    'by_subject': by_subject
                }
            })

        finally:
            db.close()

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error fetching signups: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch signups'}), 500
