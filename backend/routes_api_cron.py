"""
Cron API Routes
HTTP trigger for the daily recurring-donation billing cycle.
"""

from flask import Blueprint, jsonify
import logging

from auth import is_cron_request_authorized
from recurring_billing import process_recurring_donations

logger = logging.getLogger(__name__)
cron_api_bp = Blueprint('cron_api', __name__, url_prefix='/api/cron')


@cron_api_bp.route('/process-recurring-donations', methods=['GET'])
def process_recurring():
    """Charge every due monthly donation; guarded by the CRON_SECRET bearer token"""
    if not is_cron_request_authorized():
        logger.warning("[CRON] Rejected billing trigger with missing or invalid secret")
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    try:
        logger.info("[CRON] Billing cycle triggered")
        results = process_recurring_donations()

        if results['processed'] == 0 and results['skipped'] == 0:
            return jsonify({
                'success': True,
                'message': 'No recurring donations due for processing',
                **results
            })

        logger.info(f"[CRON] Billing cycle finished: {results['successful']} successful, {results['failed']} failed")
        return jsonify({
            'success': True,
            'message': 'Recurring donations processed',
            **results
        })

    except Exception as e:
        logger.error(f"[CRON] Error processing recurring donations: {e}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to process recurring donations'}), 500
