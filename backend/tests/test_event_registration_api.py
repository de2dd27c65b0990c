"""
Tests for the public events API: listing, detail, and registration with
pricing, sponsorship tiers and payment.
"""
import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

import routes_api_events
from database import EventRegistration, utc_today


@pytest.fixture
def notify_mock(monkeypatch):
    mock = MagicMock(return_value={'success': True, 'id': 'msg-1'})
    monkeypatch.setattr(routes_api_events, 'notify', mock)
    return mock


@pytest.fixture
def sheets_mock(monkeypatch):
    mock = MagicMock(return_value={'success': True})
    monkeypatch.setattr(routes_api_events, 'sync_event_registration', mock)
    return mock


def _register(client, slug='purim-2026', **overrides):
    payload = {
        'name': 'David Cohen',
        'email': 'david@example.com',
        'adults': 2,
        'kids': 1,
        'payment_token': 'nonce-abc',
    }
    payload.update(overrides)
    return client.post(f'/api/events/{slug}/register', json=payload)


def _tier(event, name):
    return next(s for s in event.sponsorships if s.name == name)


# ----- Listing -----

def test_list_events_splits_upcoming_and_past(client, make_event):
    today = utc_today()
    make_event(slug='chanukah-2025', title='Chanukah', date=today - timedelta(days=60))
    make_event(slug='purim-2026', title='Purim', date=today + timedelta(days=30))
    make_event(slug='shavuot-2026', title='Shavuot', date=today + timedelta(days=90))
    make_event(slug='hidden-2026', title='Hidden', is_active=False)

    data = client.get('/api/events').get_json()

    assert data['success'] is True
    assert data['count'] == 3
    assert [e['slug'] for e in data['upcoming']] == ['purim-2026', 'shavuot-2026']
    assert [e['slug'] for e in data['past']] == ['chanukah-2025']


def test_event_detail_includes_tiers(client, make_event):
    make_event(sponsorships=[
        {'name': 'Gold', 'price': 1000},
        {'name': 'Silver', 'price': 500},
    ])

    response = client.get('/api/events/purim-2026')

    data = response.get_json()
    assert response.status_code == 200
    assert data['event']['title'] == 'Purim'
    assert [s['name'] for s in data['sponsorships']] == ['Gold', 'Silver']


def test_event_detail_hides_missing_and_inactive(client, make_event):
    make_event(is_active=False)

    assert client.get('/api/events/purim-2026').status_code == 404
    assert client.get('/api/events/nope-2026').status_code == 404


# ----- Registration -----

def test_register_charges_per_head_subtotal(client, db_session, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event()

    response = _register(client)

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['subtotal'] == 120.0
    assert data['payment_status'] == 'success'
    assert data['payment_reference'] == 'txn_123'

    assert fake_gateway.charges[0]['amount'] == 120.0
    assert fake_gateway.charges[0]['description'] == 'Event Registration - Purim'

    registration = db_session.get(EventRegistration, data['registration_id'])
    assert registration.adults == 2
    assert registration.kids == 1
    assert registration.subtotal == 120.0
    assert registration.payment_processor == 'banquest'


def test_family_cap_limits_charge(client, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event(family_cap=150)

    data = _register(client, adults=2, kids=5).get_json()

    assert data['subtotal'] == 150.0
    assert fake_gateway.charges[0]['amount'] == 150.0


def test_fractional_prices_are_rounded_to_cents(client, db_session, make_event, fake_gateway, notify_mock,
                                                sheets_mock):
    make_event(price_per_adult=33.33, kids_price=10.1)

    data = _register(client, adults=2, kids=1).get_json()

    assert data['subtotal'] == 76.76
    assert fake_gateway.charges[0]['amount'] == 76.76
    assert db_session.get(EventRegistration, data['registration_id']).subtotal == 76.76


def test_sponsorship_price_replaces_per_head(client, make_event, fake_gateway, notify_mock, sheets_mock):
    event = make_event(family_cap=150, sponsorships=[{'name': 'Gold', 'price': 1000}])

    data = _register(client, adults=6, kids=4, sponsorship_id=_tier(event, 'Gold').id).get_json()

    assert data['subtotal'] == 1000.0
    assert fake_gateway.charges[0]['description'] == 'Event Registration - Purim (Gold)'


def test_pay_what_you_wish_tier_uses_custom_amount(client, make_event, fake_gateway, notify_mock, sheets_mock):
    event = make_event(sponsorships=[{'name': 'Friend', 'price': 0}])

    data = _register(client, sponsorship_id=_tier(event, 'Friend').id, amount='36').get_json()

    assert data['subtotal'] == 36.0
    assert fake_gateway.charges[0]['amount'] == 36.0


def test_pay_what_you_wish_without_amount_is_free(client, make_event, fake_gateway, notify_mock, sheets_mock):
    event = make_event(sponsorships=[{'name': 'Friend', 'price': 0}])

    data = _register(client, sponsorship_id=_tier(event, 'Friend').id).get_json()

    assert data['subtotal'] == 0
    assert data['payment_status'] == 'free'
    assert fake_gateway.charges == []


def test_free_event_needs_no_token(client, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event(price_per_adult=0, kids_price=0)

    data = _register(client, payment_token=None).get_json()

    assert data['success'] is True
    assert data['subtotal'] == 0
    assert data['payment_status'] == 'free'
    assert data['payment_reference'].startswith('free_')
    assert fake_gateway.charges == []


def test_check_registration(client, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event()

    data = _register(client, payment_method='check', payment_token=None).get_json()

    assert data['payment_status'] == 'pending_check'
    assert data['payment_reference'].startswith('check_')
    assert fake_gateway.charges == []
    assert notify_mock.call_args.args[1]['payment_status'] == 'pending_check'


def test_online_payment_requires_token(client, make_event, fake_gateway):
    make_event()

    response = _register(client, payment_token=None)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Payment token is required for online payment'


def test_tier_from_another_event_is_rejected(client, make_event, fake_gateway):
    make_event()
    other = make_event(slug='shavuot-2026', title='Shavuot', sponsorships=[{'name': 'Gold', 'price': 1000}])

    response = _register(client, sponsorship_id=_tier(other, 'Gold').id)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid sponsorship selected'


def test_sold_out_tier_is_rejected(client, make_event, make_registration, fake_gateway):
    event = make_event(sponsorships=[{'name': 'Gold', 'price': 1000, 'max_available': 1}])
    gold = _tier(event, 'Gold')
    make_registration(event, sponsorship_id=gold.id, subtotal=1000)

    response = _register(client, sponsorship_id=gold.id)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'This sponsorship is no longer available'
    assert fake_gateway.charges == []


def test_failed_registrations_do_not_hold_tier_slots(client, make_event, make_registration, fake_gateway,
                                                      notify_mock, sheets_mock):
    event = make_event(sponsorships=[{'name': 'Gold', 'price': 1000, 'max_available': 1}])
    gold = _tier(event, 'Gold')
    make_registration(event, sponsorship_id=gold.id, payment_status='failed')

    response = _register(client, sponsorship_id=gold.id)

    assert response.status_code == 200


def test_at_least_one_adult(client, make_event, fake_gateway):
    make_event()

    response = _register(client, adults=0)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'At least 1 adult is required'


@pytest.mark.parametrize('missing', ['name', 'email'])
def test_name_and_email_required(client, make_event, missing):
    make_event()

    response = _register(client, **{missing: ' '})

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Name and email are required.'


def test_invalid_email_is_rejected_before_charging(client, db_session, make_event, fake_gateway, notify_mock,
                                                  sheets_mock):
    make_event()

    response = _register(client, email='not-an-email')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid email format'
    assert fake_gateway.charges == []
    assert db_session.query(EventRegistration).count() == 0
    notify_mock.assert_not_called()
    sheets_mock.assert_not_called()


def test_unknown_event(client, fake_gateway):
    response = _register(client, slug='nope-2026')

    assert response.status_code == 404
    assert response.get_json()['error'] == 'Event not found'


def test_inactive_event_is_closed(client, make_event, fake_gateway):
    make_event(is_active=False)

    response = _register(client)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Registration is closed for this event'


def test_declined_payment_writes_nothing(client, db_session, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event()
    fake_gateway.result = {'success': False, 'error': 'Insufficient funds. Please try a different card.',
                           'error_code': 'INSUFFICIENT_FUNDS'}

    response = _register(client)

    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'INSUFFICIENT_FUNDS'
    assert db_session.query(EventRegistration).count() == 0
    notify_mock.assert_not_called()
    sheets_mock.assert_not_called()


def test_guests_are_stored_and_mirrored(client, db_session, make_event, fake_gateway, notify_mock, sheets_mock):
    event = make_event(sponsorships=[{'name': 'Silver', 'price': 500}])

    data = _register(client, sponsorship_id=_tier(event, 'Silver').id, message='See you there', guests=[
        {'name': 'Rachel Cohen', 'email': 'rachel@example.com'},
        {'name': ''},
        {'name': 'Moshe Cohen'},
    ]).get_json()

    registration = db_session.get(EventRegistration, data['registration_id'])
    assert json.loads(registration.guests_data) == [
        {'name': 'Rachel Cohen', 'email': 'rachel@example.com'},
        {'name': 'Moshe Cohen'},
    ]
    assert registration.message == 'See you there'

    slug, row = sheets_mock.call_args.args
    assert slug == 'purim-2026'
    assert row['guests'][1] == {'name': 'Moshe Cohen'}
    assert row['sponsorship_name'] == 'Silver'
    assert row['sponsorship_price'] == 500


def test_confirmation_and_honoree_notices(client, make_event, fake_gateway, notify_mock, sheets_mock):
    make_event()

    _register(client, honoree_name='Rabbi Katz', honoree_email='katz@example.com')

    kinds = [c.args[0] for c in notify_mock.call_args_list]
    assert kinds == ['registration-confirmation', 'honoree-notice']

    confirmation = notify_mock.call_args_list[0].args[1]
    assert confirmation['event_title'] == 'Purim'
    assert confirmation['event_time'] == '6:00 PM - 9:00 PM'
    assert confirmation['event_location'] == 'Main Hall'
    assert confirmation['total'] == 120.0
    assert confirmation['adults'] == 2
