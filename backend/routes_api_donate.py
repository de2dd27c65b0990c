"""
Donations API Routes
One-time and monthly donations: validate, charge, persist, then notify.
Also hosts the Banquest sandbox test charge.
"""

from flask import Blueprint, jsonify, request
import logging

import requests
from dateutil.relativedelta import relativedelta

from database import get_db, Donation, utc_today
from pricing import compute_donation_amount
from validators import (
    ValidationError, clean_text, clean_multiline, require_email, parse_amount, parse_bool
)
from payment_gateways import (
    get_gateway, offline_reference, BanquestGateway, PaymentConfigurationError, UnknownProcessorError,
    GENERIC_FAILURE
)
from background import run_in_background
from email_config import notify
from sheets_sync import sync_donation

logger = logging.getLogger(__name__)
donate_api_bp = Blueprint('donate_api', __name__, url_prefix='/api')


def _donation_side_effects(donation_data, transaction_id=None):
    """Sheet row, donor receipt and honoree notice, all fire-and-forget"""
    if donation_data.get('id'):
        run_in_background(f"sheets:donation:{donation_data['id']}", sync_donation, donation_data)

    run_in_background(
        'donation-confirmation',
        notify,
        'donation-confirmation',
        {
            'to_email': donation_data['email'],
            'name': donation_data['name'],
            'amount': donation_data['amount'],
            'is_recurring': donation_data['is_recurring'],
            'sponsorship': donation_data.get('sponsorship'),
            'transaction_id': transaction_id or donation_data.get('payment_reference'),
            'next_charge_date': donation_data.get('next_charge_date'),
        }
    )

    if donation_data.get('honor_email'):
        run_in_background(
            'honoree-notice',
            notify,
            'honoree-notice',
            {
                'to_email': donation_data['honor_email'],
                'honoree_name': donation_data.get('honor_name'),
                'donor_name': donation_data['name'],
                'message': donation_data.get('message'),
            }
        )


@donate_api_bp.route('/donate', methods=['POST'])
def submit_donation():
    """
    Handle a donation.

    Expects JSON:
      - amount, name, email (required)
      - is_recurring (optional, monthly when true)
      - phone, honor_name, honor_email, sponsorship, message (optional)
      - payment_method: 'online' (default) or 'check'
      - payment_processor, payment_token (online only)
    """
    try:
        data = request.get_json(silent=True) or {}
        name = clean_text(data.get('name'))
        email = clean_text(data.get('email'))

        if data.get('amount') in (None, '') or not name or not email:
            return jsonify({'success': False, 'error': 'Amount, name, and email are required'}), 400

        require_email(email)
        amount = compute_donation_amount(parse_amount(data.get('amount'), 'donation amount'))
        is_recurring = parse_bool(data.get('is_recurring'))

        honor_email = clean_text(data.get('honor_email')) or None
        if honor_email:
            require_email(honor_email)

        payment_method = clean_text(data.get('payment_method') or 'online').lower()
        if payment_method not in ('online', 'check'):
            raise ValidationError('Invalid payment method')

        donation = Donation(
            amount=amount,
            is_recurring=is_recurring,
            recurring_frequency='monthly' if is_recurring else None,
            recurring_status='one_time',
            name=name,
            email=email,
            phone=clean_text(data.get('phone')) or None,
            honor_name=clean_text(data.get('honor_name')) or None,
            honor_email=honor_email,
            sponsorship=clean_text(data.get('sponsorship')) or None,
            message=clean_multiline(data.get('message')) or None,
            payment_method=payment_method,
        )

        result = None
        if payment_method == 'check':
            if is_recurring:
                raise ValidationError('Monthly donations require online card payment')
            donation.payment_status = 'pending_check'
            donation.payment_reference = offline_reference('check')
        else:
            token = data.get('payment_token')
            if not token:
                raise ValidationError('Payment token is required')

            gateway = get_gateway(data.get('payment_processor'))
            if is_recurring and not gateway.supports_saved_cards:
                raise ValidationError(f'Monthly donations are not supported with {gateway.name}')

            description = f"Donation - {donation.sponsorship}" if donation.sponsorship else "Donation"
            result = gateway.charge(
                token,
                amount,
                email,
                name=name,
                description=f"Monthly {description}" if is_recurring else description,
                save_card=is_recurring
            )

            if not result.get('success'):
                logger.info(f"Donation declined for {email}: {result.get('error_code')}")
                return jsonify({
                    'success': False,
                    'error': result.get('error') or GENERIC_FAILURE,
                    'error_code': result.get('error_code')
                }), 400

            donation.payment_processor = gateway.name
            donation.payment_status = 'success'
            donation.payment_reference = result.get('transaction_id')

            if is_recurring:
                if result.get('card_ref'):
                    today = utc_today()
                    donation.recurring_status = 'active'
                    donation.card_ref = result['card_ref']
                    donation.billing_day = today.day
                    donation.next_charge_date = today + relativedelta(months=1)
                else:
                    # First gift went through but no card was saved for next month
                    donation.recurring_status = 'paused'
                    logger.warning(f"Monthly donation for {email} charged without a saved card; schedule paused")

        db = next(get_db())
        try:
            db.add(donation)
            db.commit()
            db.refresh(donation)
            donation_data = donation.to_dict()
            logger.info(f"Donation {donation.id} recorded: ${amount:.2f} "
                        f"({'monthly' if is_recurring else 'one-time'}, {donation.payment_status})")
        except Exception as e:
            db.rollback()
            if result is None:
                raise
            # Card was already charged; report success and leave the row for manual entry
            logger.error(f"Failed to save donation after successful charge "
                         f"(reference {donation.payment_reference}): {e}", exc_info=True)
            donation_data = {
                'id': None,
                'amount': amount,
                'is_recurring': is_recurring,
                'name': name,
                'email': email,
                'honor_name': donation.honor_name,
                'honor_email': honor_email,
                'sponsorship': donation.sponsorship,
                'message': donation.message,
                'payment_status': donation.payment_status,
                'payment_reference': donation.payment_reference,
                'next_charge_date': donation.next_charge_date.isoformat() if donation.next_charge_date else None,
            }
        finally:
            db.close()

        _donation_side_effects(donation_data, transaction_id=donation_data.get('payment_reference'))

        return jsonify({
            'success': True,
            'id': donation_data['id'],
            'amount': donation_data['amount'],
            'is_recurring': donation_data['is_recurring'],
            'payment_status': donation_data['payment_status'],
            'transaction_id': donation_data['payment_reference'],
            'next_charge_date': donation_data.get('next_charge_date')
        })

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except UnknownProcessorError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except (PaymentConfigurationError, requests.RequestException) as e:
        logger.error(f"Payment gateway error during donation: {e}", exc_info=True)
        return jsonify({'success': False, 'error': GENERIC_FAILURE}), 502
    except Exception as e:
        logger.error(f"Donation API error: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


@donate_api_bp.route('/payments/banquest-test', methods=['POST'])
def banquest_test_payment():
    """
    Run a test charge against the Banquest sandbox.

    Accepts either a payment_token or raw card fields
    (card_number, expiry_month, expiry_year, cvv). Not available in production.
    """
    gateway = BanquestGateway()
    if not gateway.is_sandbox:
        return jsonify({'success': False, 'error': 'Not found'}), 404

    try:
        data = request.get_json(silent=True) or {}
        email = clean_text(data.get('email'))
        if not email:
            raise ValidationError('Email is required')
        amount = parse_amount(data.get('amount'), 'amount')
        name = clean_text(data.get('name')) or None

        logger.info(f"Banquest sandbox test charge: ${amount:.2f} for {email}")

        if data.get('payment_token'):
            result = gateway.charge(data['payment_token'], amount, email, name=name,
                                    description='Banquest API Test Payment')
        else:
            result = gateway.charge_direct_card(
                data.get('card_number'),
                data.get('expiry_month'),
                data.get('expiry_year'),
                data.get('cvv'),
                amount,
                email,
                card_name=name,
                description='Banquest API Test Payment'
            )

        if result.get('success'):
            return jsonify({
                'success': True,
                'transaction_id': result.get('transaction_id'),
                'auth_code': result.get('auth_code'),
                'message': 'Payment processed successfully'
            })
        return jsonify({'success': False, 'error': result.get('error') or 'Payment failed',
                        'error_code': result.get('error_code')}), 400

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except (PaymentConfigurationError, requests.RequestException) as e:
        logger.error(f"Banquest test charge failed: {e}", exc_info=True)
        return jsonify({'success': False, 'error': GENERIC_FAILURE}), 502
    except Exception as e:
        logger.error(f"Banquest test API error: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500
