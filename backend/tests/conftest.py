"""
Shared fixtures: an in-memory database, the Flask test client, an admin
token and a fake payment gateway.

Environment is set before any application module is imported, since the
modules read their configuration at import time.
"""
import os
from datetime import date, timedelta

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['BACKGROUND_TASKS_INLINE'] = 'true'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret'
os.environ['ADMIN_PASSWORD'] = 'test-admin-password'
os.environ['CRON_SECRET'] = 'test-cron-secret'
for _name in ('SMTP_USERNAME', 'SMTP_PASSWORD', 'BANQUEST_SOURCE_KEY', 'BANQUEST_PIN',
              'SQUARE_ACCESS_TOKEN', 'SQUARE_LOCATION_ID', 'GOOGLE_SHEETS_SPREADSHEET_ID',
              'GOOGLE_SERVICE_ACCOUNT_EMAIL', 'GOOGLE_PRIVATE_KEY'):
    os.environ[_name] = ''

import pytest

from database import Base, engine, SessionLocal, Donation, Event, EventSponsorship, EventRegistration, utc_today


class FakeGateway:
    """Stands in for a card processor; records every charge it is asked to make"""

    def __init__(self, name='banquest', result=None, saved_result=None, supports_saved_cards=True):
        self.name = name
        self.supports_saved_cards = supports_saved_cards
        self.result = result or {'success': True, 'transaction_id': 'txn_123'}
        self.saved_result = saved_result or {'success': True, 'transaction_id': 'txn_recurring'}
        self.charges = []
        self.saved_charges = []

    def charge(self, token, amount, email, **kwargs):
        self.charges.append({'token': token, 'amount': amount, 'email': email, **kwargs})
        return dict(self.result)

    def charge_saved_card(self, card_ref, amount, email, **kwargs):
        self.saved_charges.append({'card_ref': card_ref, 'amount': amount, 'email': email, **kwargs})
        if callable(self.saved_result):
            return self.saved_result(card_ref)
        return dict(self.saved_result)


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(database):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app():
    from app import app as flask_app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    from auth import generate_token
    return {'Authorization': f"Bearer {generate_token()['access_token']}"}


@pytest.fixture
def cron_headers():
    return {'Authorization': 'Bearer test-cron-secret'}


@pytest.fixture
def fake_gateway(monkeypatch):
    """Route every get_gateway() lookup in the public endpoints to one FakeGateway"""
    import routes_api_donate
    import routes_api_events

    gateway = FakeGateway()
    monkeypatch.setattr(routes_api_donate, 'get_gateway', lambda processor=None: gateway)
    monkeypatch.setattr(routes_api_events, 'get_gateway', lambda processor=None: gateway)
    return gateway


@pytest.fixture
def make_event(db_session):
    def _make_event(**overrides):
        fields = {
            'slug': 'purim-2026',
            'title': 'Purim',
            'date': utc_today() + timedelta(days=30),
            'start_time': '6:00 PM',
            'end_time': '9:00 PM',
            'location': 'Main Hall',
            'price_per_adult': 50.0,
            'kids_price': 20.0,
            'family_cap': None,
            'is_active': True,
        }
        fields.update(overrides)
        sponsorships = fields.pop('sponsorships', [])
        event = Event(**fields)
        for tier in sponsorships:
            event.sponsorships.append(EventSponsorship(**tier))
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event
    return _make_event


@pytest.fixture
def make_donation(db_session):
    def _make_donation(**overrides):
        fields = {
            'amount': 36.0,
            'is_recurring': True,
            'recurring_frequency': 'monthly',
            'recurring_status': 'active',
            'name': 'Sarah Levi',
            'email': 'sarah@example.com',
            'payment_method': 'online',
            'payment_processor': 'banquest',
            'payment_status': 'success',
            'payment_reference': 'txn_first',
            'card_ref': 'card_abc',
            'next_charge_date': date(2026, 1, 31),
            'billing_day': 31,
        }
        fields.update(overrides)
        donation = Donation(**fields)
        db_session.add(donation)
        db_session.commit()
        db_session.refresh(donation)
        return donation
    return _make_donation


@pytest.fixture
def make_registration(db_session):
    def _make_registration(event, **overrides):
        fields = {
            'event_id': event.id,
            'name': 'David Cohen',
            'email': 'david@example.com',
            'adults': 2,
            'kids': 1,
            'subtotal': 120.0,
            'payment_method': 'online',
            'payment_processor': 'banquest',
            'payment_status': 'success',
            'payment_reference': 'txn_reg',
        }
        fields.update(overrides)
        registration = EventRegistration(**fields)
        db_session.add(registration)
        db_session.commit()
        db_session.refresh(registration)
        return registration
    return _make_registration
