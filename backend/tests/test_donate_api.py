"""
Tests for POST /api/donate and the Banquest sandbox test charge.
"""
from unittest.mock import patch, MagicMock

import pytest
from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import OperationalError

import routes_api_donate
from database import Donation, utc_today
from payment_gateways import GENERIC_FAILURE


@pytest.fixture
def notify_mock(monkeypatch):
    mock = MagicMock(return_value={'success': True, 'id': 'msg-1'})
    monkeypatch.setattr(routes_api_donate, 'notify', mock)
    return mock


@pytest.fixture
def sheets_mock(monkeypatch):
    mock = MagicMock(return_value={'success': True})
    monkeypatch.setattr(routes_api_donate, 'sync_donation', mock)
    return mock


def _donation(**overrides):
    payload = {
        'amount': 50,
        'name': 'Sarah Levi',
        'email': 'sarah@example.com',
        'payment_token': 'nonce-abc',
    }
    payload.update(overrides)
    return payload


def _kinds(notify_mock):
    return [c.args[0] for c in notify_mock.call_args_list]


def test_one_time_donation(client, db_session, fake_gateway, notify_mock, sheets_mock):
    response = client.post('/api/donate', json=_donation(sponsorship='Kiddush'))

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['amount'] == 50.0
    assert data['is_recurring'] is False
    assert data['payment_status'] == 'success'
    assert data['transaction_id'] == 'txn_123'
    assert data['next_charge_date'] is None

    charge = fake_gateway.charges[0]
    assert charge['amount'] == 50.0
    assert charge['save_card'] is False
    assert charge['description'] == 'Donation - Kiddush'

    donation = db_session.get(Donation, data['id'])
    assert donation.recurring_status == 'one_time'
    assert donation.payment_processor == 'banquest'
    assert donation.card_ref is None

    sheets_mock.assert_called_once()
    assert sheets_mock.call_args.args[0]['id'] == data['id']
    assert _kinds(notify_mock) == ['donation-confirmation']


def test_monthly_donation_saves_card_and_schedules(client, db_session, fake_gateway, notify_mock, sheets_mock):
    fake_gateway.result = {'success': True, 'transaction_id': 'txn_first', 'card_ref': 'card_abc'}

    response = client.post('/api/donate', json=_donation(amount='36', is_recurring=True))

    data = response.get_json()
    assert response.status_code == 200
    today = utc_today()
    expected_next = today + relativedelta(months=1)
    assert data['next_charge_date'] == expected_next.isoformat()
    assert fake_gateway.charges[0]['save_card'] is True
    assert fake_gateway.charges[0]['description'] == 'Monthly Donation'

    donation = db_session.get(Donation, data['id'])
    assert donation.is_recurring is True
    assert donation.recurring_frequency == 'monthly'
    assert donation.recurring_status == 'active'
    assert donation.card_ref == 'card_abc'
    assert donation.billing_day == today.day
    assert donation.next_charge_date == expected_next

    payload = notify_mock.call_args.args[1]
    assert payload['is_recurring'] is True
    assert payload['next_charge_date'] == expected_next.isoformat()


def test_monthly_donation_without_saved_card_is_paused(client, db_session, fake_gateway, notify_mock, sheets_mock):
    response = client.post('/api/donate', json=_donation(is_recurring=True))

    data = response.get_json()
    assert data['success'] is True
    donation = db_session.get(Donation, data['id'])
    assert donation.recurring_status == 'paused'
    assert donation.card_ref is None
    assert donation.next_charge_date is None


def test_honoree_is_notified(client, fake_gateway, notify_mock, sheets_mock):
    client.post('/api/donate', json=_donation(
        honor_name='Grandma Ruth', honor_email='ruth@example.com', message='With love'
    ))

    assert _kinds(notify_mock) == ['donation-confirmation', 'honoree-notice']
    honoree = notify_mock.call_args_list[1].args[1]
    assert honoree['to_email'] == 'ruth@example.com'
    assert honoree['donor_name'] == 'Sarah Levi'
    assert 'amount' not in honoree


def test_check_donation_skips_gateway(client, db_session, fake_gateway, notify_mock, sheets_mock):
    response = client.post('/api/donate', json=_donation(payment_method='check', payment_token=None))

    data = response.get_json()
    assert data['payment_status'] == 'pending_check'
    assert data['transaction_id'].startswith('check_')
    assert fake_gateway.charges == []


def test_monthly_check_donation_rejected(client, fake_gateway):
    response = client.post('/api/donate', json=_donation(payment_method='check', is_recurring=True))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Monthly donations require online card payment'
    assert fake_gateway.charges == []


@pytest.mark.parametrize('missing', ['amount', 'name', 'email'])
def test_required_fields(client, fake_gateway, missing):
    response = client.post('/api/donate', json=_donation(**{missing: ''}))

    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'error': 'Amount, name, and email are required'}


def test_invalid_email(client, db_session, fake_gateway, notify_mock, sheets_mock):
    response = client.post('/api/donate', json=_donation(email='not-an-email'))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid email format'
    assert fake_gateway.charges == []
    assert db_session.query(Donation).count() == 0
    notify_mock.assert_not_called()
    sheets_mock.assert_not_called()


@pytest.mark.parametrize('amount', [0, -5, 'abc', 'NaN'])
def test_invalid_amount(client, db_session, fake_gateway, amount):
    response = client.post('/api/donate', json=_donation(amount=amount))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid donation amount'
    assert fake_gateway.charges == []
    assert db_session.query(Donation).count() == 0


def test_missing_payment_token(client, fake_gateway):
    response = client.post('/api/donate', json=_donation(payment_token=None))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Payment token is required'


def test_declined_card_writes_nothing(client, db_session, fake_gateway, notify_mock, sheets_mock):
    fake_gateway.result = {
        'success': False,
        'error': 'Card was declined. Please try a different card.',
        'error_code': 'CARD_DECLINED'
    }

    response = client.post('/api/donate', json=_donation())

    assert response.status_code == 400
    assert response.get_json() == {
        'success': False,
        'error': 'Card was declined. Please try a different card.',
        'error_code': 'CARD_DECLINED'
    }
    assert db_session.query(Donation).count() == 0
    notify_mock.assert_not_called()
    sheets_mock.assert_not_called()


def test_monthly_on_square_is_rejected(client, db_session):
    with patch('payment_gateways.requests.post') as mock_post:
        response = client.post('/api/donate', json=_donation(is_recurring=True, payment_processor='square'))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Monthly donations are not supported with square'
    mock_post.assert_not_called()
    assert db_session.query(Donation).count() == 0


def test_unknown_processor(client):
    response = client.post('/api/donate', json=_donation(payment_processor='paypal'))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid payment processor: paypal'


def test_unconfigured_gateway_returns_generic_failure(client, db_session):
    response = client.post('/api/donate', json=_donation())

    assert response.status_code == 502
    assert response.get_json() == {'success': False, 'error': GENERIC_FAILURE}
    assert db_session.query(Donation).count() == 0


def test_save_failure_after_charge_still_reports_success(client, fake_gateway, notify_mock, sheets_mock,
                                                         monkeypatch):
    broken = MagicMock()
    broken.commit.side_effect = OperationalError('INSERT', {}, Exception('disk I/O error'))
    monkeypatch.setattr(routes_api_donate, 'get_db', lambda: iter([broken]))

    response = client.post('/api/donate', json=_donation())

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['id'] is None
    assert data['transaction_id'] == 'txn_123'
    broken.rollback.assert_called_once()
    sheets_mock.assert_not_called()
    assert _kinds(notify_mock) == ['donation-confirmation']


def test_side_effect_failure_does_not_change_response(client, fake_gateway, monkeypatch):
    monkeypatch.setattr(routes_api_donate, 'sync_donation', MagicMock(side_effect=RuntimeError('sheets down')))
    monkeypatch.setattr(routes_api_donate, 'notify', MagicMock(side_effect=RuntimeError('smtp down')))

    response = client.post('/api/donate', json=_donation())

    assert response.status_code == 200
    assert response.get_json()['success'] is True


def test_banquest_test_endpoint_hidden_in_production(client, monkeypatch):
    monkeypatch.setenv('BANQUEST_ENVIRONMENT', 'production')

    response = client.post('/api/payments/banquest-test', json={'amount': 1, 'email': 'qa@example.com'})

    assert response.status_code == 404


def test_banquest_test_endpoint_charges_card_fields(client, monkeypatch):
    monkeypatch.setenv('BANQUEST_ENVIRONMENT', 'sandbox')
    monkeypatch.setenv('BANQUEST_SOURCE_KEY', 'src_key')
    monkeypatch.setenv('BANQUEST_PIN', '1234')

    with patch('payment_gateways.requests.post') as mock_post:
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {
            'status': 'Approved', 'reference_number': '777', 'auth_code': 'OK1'
        }
        response = client.post('/api/payments/banquest-test', json={
            'amount': 1.5,
            'email': 'qa@example.com',
            'card_number': '4111111111111111',
            'expiry_month': 12,
            'expiry_year': 2030,
            'cvv': '123'
        })

    assert response.status_code == 200
    assert response.get_json() == {
        'success': True,
        'transaction_id': '777',
        'auth_code': 'OK1',
        'message': 'Payment processed successfully'
    }
    assert mock_post.call_args.kwargs['json']['card'] == '4111111111111111'
