"""
Recurring Billing Cycle
Charges every due monthly donation once against its saved card and advances
or holds its schedule based on the outcome.

A donation is due when it is recurring, active, has a saved card and its
next_charge_date is today or earlier. Before charging, the cycle claims the
row with a conditional UPDATE so two overlapping runs cannot both charge it.
"""

import os
import logging
from datetime import timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy import or_

from database import Donation, get_db, utcnow, utc_today
from payment_gateways import get_gateway
from background import run_in_background
from email_config import notify

logger = logging.getLogger(__name__)

CLAIM_TIMEOUT_MINUTES = int(os.environ.get('BILLING_CLAIM_TIMEOUT_MINUTES', '30'))
NO_CARD_MESSAGE = 'No saved card reference'


def advance_charge_date(today, anchor_day):
    """
    Next charge date one month after today, on the anchor day of the month.

    Short months clamp to their last day; the anchor survives, so a Jan 31
    schedule runs Feb 28 then Mar 31.
    """
    return today + relativedelta(months=1, day=anchor_day or today.day)


def select_due_donations(db, today):
    """Active recurring donations with a saved card whose charge date has arrived"""
    return db.query(Donation).filter(
        Donation.is_recurring.is_(True),
        Donation.recurring_status == 'active',
        Donation.card_ref.isnot(None),
        Donation.next_charge_date <= today
    ).order_by(Donation.next_charge_date, Donation.id).all()


def claim_donation(db, donation_id, next_charge_date):
    """
    Atomically mark a donation as being charged.

    Succeeds only when the row is still due for the same date and nobody
    else holds a live claim on it.
    """
    now = utcnow()
    stale_before = now - timedelta(minutes=CLAIM_TIMEOUT_MINUTES)

    claimed = db.query(Donation).filter(
        Donation.id == donation_id,
        Donation.recurring_status == 'active',
        Donation.next_charge_date == next_charge_date,
        or_(Donation.charge_claimed_at.is_(None), Donation.charge_claimed_at < stale_before)
    ).update({Donation.charge_claimed_at: now}, synchronize_session=False)
    db.commit()
    return claimed == 1


def _charge_description(sponsorship):
    if sponsorship:
        return f"Monthly Donation - {sponsorship}"
    return "Monthly Donation"


def _charge(donation, gateway_factory):
    """Run one saved-card charge, turning any exception into a failure result"""
    if not donation.card_ref:
        return {'success': False, 'error': NO_CARD_MESSAGE}

    try:
        gateway = gateway_factory(donation.payment_processor or 'banquest')
        return gateway.charge_saved_card(
            donation.card_ref,
            donation.amount,
            donation.email,
            description=_charge_description(donation.sponsorship),
            idempotency_key=f"recurring-{donation.id}-{donation.next_charge_date.isoformat()}"
        )
    except Exception as e:
        logger.error(f"[BILLING] Exception charging donation {donation.id}: {e}", exc_info=True)
        return {'success': False, 'error': str(e) or 'Unknown error'}


def _record_success(db, donation, result, today):
    next_date = advance_charge_date(today, donation.billing_day or donation.next_charge_date.day)
    try:
        donation.payment_status = 'success'
        donation.payment_reference = result.get('transaction_id')
        donation.payment_error = None
        donation.next_charge_date = next_date
        donation.charge_claimed_at = None
        db.commit()
    except Exception as e:
        # The card was charged; the row is fixed by hand rather than failing the tally
        db.rollback()
        logger.error(f"[BILLING] Failed to update donation {donation.id} after successful charge: {e}",
                     exc_info=True)
    return next_date


def _record_failure(db, donation, error):
    try:
        donation.payment_status = 'failed'
        donation.payment_error = error
        donation.charge_claimed_at = None
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"[BILLING] Failed to update donation {donation.id} after failed charge: {e}",
                     exc_info=True)


def process_recurring_donations(today=None, gateway_factory=get_gateway, db=None):
    """
    Run one billing cycle.

    Args:
        today: Date to bill for (defaults to the current UTC date)
        gateway_factory: Callable mapping a processor name to a gateway
        db: Optional session; one is opened and closed when omitted

    Returns:
        dict: {'processed', 'successful', 'failed', 'skipped', 'errors'}
    """
    today = today or utc_today()
    results = {'processed': 0, 'successful': 0, 'failed': 0, 'skipped': 0, 'errors': []}

    owns_session = db is None
    if owns_session:
        db = next(get_db())

    try:
        due = select_due_donations(db, today)
        if not due:
            logger.info("[BILLING] No recurring donations due for processing")
            return results

        logger.info(f"[BILLING] Processing {len(due)} recurring donations for {today.isoformat()}")

        for donation in due:
            donation_id = donation.id
            try:
                if not claim_donation(db, donation_id, donation.next_charge_date):
                    results['skipped'] += 1
                    logger.info(f"[BILLING] Donation {donation_id} already claimed by another run, skipping")
                    continue

                db.refresh(donation)
                results['processed'] += 1
                result = _charge(donation, gateway_factory)

                if result.get('success'):
                    next_date = _record_success(db, donation, result, today)
                    results['successful'] += 1
                    logger.info(f"[BILLING] Charged donation {donation_id}: ${donation.amount:.2f}, "
                                f"next charge {next_date.isoformat()}")

                    run_in_background(
                        f'donation-confirmation:{donation_id}',
                        notify,
                        'donation-confirmation',
                        {
                            'to_email': donation.email,
                            'name': donation.name,
                            'amount': donation.amount,
                            'is_recurring': True,
                            'sponsorship': donation.sponsorship,
                            'transaction_id': result.get('transaction_id'),
                            'next_charge_date': next_date.isoformat(),
                        }
                    )
                else:
                    error = result.get('error') or 'Payment declined'
                    _record_failure(db, donation, error)
                    results['failed'] += 1
                    results['errors'].append(f"Donation {donation_id}: {error}")
                    logger.warning(f"[BILLING] Failed to charge donation {donation_id}: {error}")

            except Exception as e:
                db.rollback()
                results['failed'] += 1
                results['errors'].append(f"Donation {donation_id}: {e}")
                logger.error(f"[BILLING] Error processing donation {donation_id}: {e}", exc_info=True)

        logger.info(f"[BILLING] Cycle complete: {results['successful']} successful, "
                    f"{results['failed']} failed, {results['skipped']} skipped")
        return results

    finally:
        if owns_session:
            db.close()
