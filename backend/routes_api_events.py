"""
Events API Routes
Public event listing and detail, and event registration with payment.
"""

from flask import Blueprint, jsonify, request
import json
import logging

import requests

from database import get_db, Event, EventSponsorship, EventRegistration, utc_today
from pricing import compute_event_subtotal
from validators import (
    ValidationError, clean_text, clean_multiline, require_email, parse_count,
    parse_optional_amount, normalize_guests
)
from payment_gateways import (
    get_gateway, offline_reference, PaymentConfigurationError, UnknownProcessorError, GENERIC_FAILURE
)
from background import run_in_background
from email_config import notify
from sheets_sync import sync_event_registration

logger = logging.getLogger(__name__)
events_api_bp = Blueprint('events_api', __name__, url_prefix='/api/events')

# Registrations that hold a sponsorship slot
SLOT_HOLDING_STATUSES = ('pending', 'success', 'free', 'pending_check')


def _format_event_time(event):
    if event.start_time and event.end_time:
        return f"{event.start_time} - {event.end_time}"
    return event.start_time or ''


def _resolve_sponsorship(db, event, data):
    """
    Look up the selected tier for this event.

    Returns (sponsorship, price); price is None when no tier was chosen.
    A $0 tier takes the registrant's custom amount when one is given.
    """
    raw_id = data.get('sponsorship_id')
    if raw_id in (None, ''):
        return None, None

    try:
        sponsorship_id = int(raw_id)
    except (TypeError, ValueError):
        raise ValidationError('Invalid sponsorship selected')

    sponsorship = db.query(EventSponsorship).filter(
        EventSponsorship.id == sponsorship_id,
        EventSponsorship.event_id == event.id
    ).first()
    if not sponsorship:
        raise ValidationError('Invalid sponsorship selected')

    if sponsorship.max_available is not None:
        taken = db.query(EventRegistration).filter(
            EventRegistration.sponsorship_id == sponsorship.id,
            EventRegistration.payment_status.in_(SLOT_HOLDING_STATUSES)
        ).count()
        if taken >= sponsorship.max_available:
            raise ValidationError('This sponsorship is no longer available')

    price = sponsorship.price
    if not price:
        price = parse_optional_amount(data.get('amount'), 'amount') or 0
    return sponsorship, price


def _registration_side_effects(event_info, registration_data):
    """Sheet row, confirmation email and honoree notice, all fire-and-forget"""
    if registration_data.get('id'):
        run_in_background(
            f"sheets:registration:{registration_data['id']}",
            sync_event_registration,
            event_info['slug'],
            registration_data
        )

    run_in_background(
        'registration-confirmation',
        notify,
        'registration-confirmation',
        {
            'to_email': registration_data['email'],
            'name': registration_data['name'],
            'event_title': event_info['title'],
            'event_date': event_info['date_display'],
            'event_time': event_info['time'],
            'event_location': event_info['location'],
            'adults': registration_data['adults'],
            'kids': registration_data['kids'],
            'total': registration_data['subtotal'],
            'sponsorship': registration_data.get('sponsorship_name'),
            'transaction_id': registration_data.get('payment_reference'),
            'payment_status': registration_data['payment_status'],
        }
    )

    if registration_data.get('honoree_email'):
        run_in_background(
            'honoree-notice',
            notify,
            'honoree-notice',
            {
                'to_email': registration_data['honoree_email'],
                'honoree_name': registration_data.get('honoree_name'),
                'donor_name': registration_data['name'],
                'message': registration_data.get('message'),
            }
        )


# ----- Events API -----

@events_api_bp.route('', methods=['GET'])
def get_events():
    """Active events, split into upcoming (soonest first) and past (latest first)"""
    try:
        db = next(get_db())
        try:
            events = db.query(Event).filter(Event.is_active.is_(True)).order_by(Event.date.asc()).all()

            today = utc_today()
            upcoming = [e.to_dict() for e in events if e.date >= today]
            past = [e.to_dict() for e in sorted(events, key=lambda e: e.date, reverse=True) if e.date < today]

            return jsonify({
                'success': True,
                'events': [e.to_dict() for e in events],
                'upcoming': upcoming,
                'past': past,
                'count': len(events)
            })
        finally:
            db.close()

    except Exception as e:
        logger.error(f"Events list API error: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to fetch events'}), 500


@events_api_bp.route('/<slug>', methods=['GET'])
def get_event(slug):
    """Get one active event with its sponsorship tiers"""
    try:
        db = next(get_db())
        try:
            event = db.query(Event).filter(Event.slug == slug, Event.is_active.is_(True)).first()
            if not event:
                return jsonify({'success': False, 'error': 'Event not found'}), 404

            return jsonify({
                'success': True,
                'event': event.to_dict(),
                'sponsorships': [s.to_dict() for s in event.sponsorships]
            })
        finally:
            db.close()

    except Exception as e:
        logger.error(f"Event fetch API error for {slug}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


@events_api_bp.route('/<slug>/register', methods=['POST'])
def register_for_event(slug):
    """
    Register a party for an event.

    Expects JSON:
      - name, email (required)
      - adults (default 1, at least 1), kids (default 0)
      - sponsorship_id, amount (custom amount for a $0 tier)
      - message, guests [{name, email?}], honoree_name, honoree_email
      - payment_method: 'online' (default) or 'check'
      - payment_processor, payment_token (online only)
    """
    db = next(get_db())
    try:
        data = request.get_json(silent=True) or {}
        name = clean_text(data.get('name'))
        email = clean_text(data.get('email'))

        if not name or not email:
            return jsonify({'success': False, 'error': 'Name and email are required.'}), 400

        require_email(email)
        adults = parse_count(data.get('adults'), 'adults', default=1, minimum=1)
        kids = parse_count(data.get('kids'), 'kids', default=0, minimum=0)
        guests = normalize_guests(data.get('guests'))

        honoree_email = clean_text(data.get('honoree_email')) or None
        if honoree_email:
            require_email(honoree_email)

        event = db.query(Event).filter(Event.slug == slug).first()
        if not event:
            return jsonify({'success': False, 'error': 'Event not found'}), 404
        if not event.is_active:
            return jsonify({'success': False, 'error': 'Registration is closed for this event'}), 400

        sponsorship, sponsorship_price = _resolve_sponsorship(db, event, data)
        subtotal = compute_event_subtotal(
            adults, kids, event.price_per_adult, event.kids_price,
            sponsorship_price=sponsorship_price,
            family_cap=event.family_cap
        )

        payment_method = clean_text(data.get('payment_method') or 'online').lower()
        if payment_method not in ('online', 'check'):
            raise ValidationError('Invalid payment method')

        registration = EventRegistration(
            event_id=event.id,
            name=name,
            email=email,
            phone=clean_text(data.get('phone')) or None,
            adults=adults,
            kids=kids,
            sponsorship_id=sponsorship.id if sponsorship else None,
            message=clean_multiline(data.get('message')) or None,
            guests_data=json.dumps(guests) if guests else None,
            honoree_name=clean_text(data.get('honoree_name')) or None,
            honoree_email=honoree_email,
            subtotal=subtotal,
            payment_method=payment_method,
        )

        charged = False
        if subtotal == 0:
            registration.payment_status = 'free'
            registration.payment_reference = offline_reference('free')
        elif payment_method == 'check':
            registration.payment_status = 'pending_check'
            registration.payment_reference = offline_reference('check')
        else:
            token = data.get('payment_token')
            if not token:
                raise ValidationError('Payment token is required for online payment')

            gateway = get_gateway(data.get('payment_processor'))
            description = f"Event Registration - {event.title}"
            if sponsorship:
                description += f" ({sponsorship.name})"

            result = gateway.charge(token, subtotal, email, name=name, description=description)
            if not result.get('success'):
                logger.info(f"Registration payment declined for {email} ({slug}): {result.get('error_code')}")
                return jsonify({
                    'success': False,
                    'error': result.get('error') or GENERIC_FAILURE,
                    'error_code': result.get('error_code')
                }), 400

            charged = True
            registration.payment_processor = gateway.name
            registration.payment_status = 'success'
            registration.payment_reference = result.get('transaction_id')

        event_info = {
            'slug': event.slug,
            'title': event.title,
            'date_display': event.to_dict()['date_display'],
            'time': _format_event_time(event),
            'location': event.location or '',
        }

        try:
            db.add(registration)
            db.commit()
            db.refresh(registration)
            registration_data = registration.to_dict()
            logger.info(f"Registration {registration.id} for {slug}: {adults} adults, {kids} kids, "
                        f"${subtotal:.2f} ({registration.payment_status})")
        except Exception as e:
            db.rollback()
            if not charged:
                raise
            logger.error(f"Failed to save registration for {slug} after successful charge "
                         f"(reference {registration.payment_reference}): {e}", exc_info=True)
            registration_data = {
                'id': None,
                'name': name,
                'email': email,
                'adults': adults,
                'kids': kids,
                'subtotal': subtotal,
                'sponsorship_name': sponsorship.name if sponsorship else None,
                'honoree_name': registration.honoree_name,
                'honoree_email': honoree_email,
                'message': registration.message,
                'payment_status': registration.payment_status,
                'payment_reference': registration.payment_reference,
            }

        registration_data['sponsorship_price'] = sponsorship_price or 0
        _registration_side_effects(event_info, registration_data)

        return jsonify({
            'success': True,
            'registration_id': registration_data['id'],
            'subtotal': subtotal,
            'payment_status': registration_data['payment_status'],
            'payment_reference': registration_data['payment_reference']
        })

    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except UnknownProcessorError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except (PaymentConfigurationError, requests.RequestException) as e:
        logger.error(f"Payment gateway error during registration for {slug}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': GENERIC_FAILURE}), 502
    except Exception as e:
        logger.error(f"Registration API error for {slug}: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to save registration'}), 500
    finally:
        db.close()
