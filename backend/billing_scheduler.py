"""
Recurring Billing Scheduler
Runs the monthly-donation billing cycle once a day at BILLING_RUN_TIME.
"""

from dotenv import load_dotenv

# Load environment variables FIRST before any other imports
load_dotenv()

import os
import sys
import schedule
import time
import logging
import argparse
from recurring_billing import process_recurring_donations

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

BILLING_RUN_TIME = os.environ.get('BILLING_RUN_TIME', '09:00')


def run_billing_job():
    """Job to run one billing cycle; returns the tally, or None if the cycle crashed"""
    logger.info("=" * 60)
    logger.info("Running recurring billing cycle...")
    logger.info("=" * 60)

    try:
        results = process_recurring_donations()
        logger.info(
            f"[BILLING] processed={results['processed']} successful={results['successful']} "
            f"failed={results['failed']} skipped={results['skipped']}"
        )
        for error in results['errors']:
            logger.warning(f"[BILLING] {error}")
        return results
    except Exception as e:
        logger.error(f"Billing cycle failed: {e}", exc_info=True)
        return None


def main(argv=None):
    """Main scheduler loop"""
    parser = argparse.ArgumentParser(description="Recurring Donation Billing Scheduler")
    parser.add_argument("--now", action="store_true", help="Run one billing cycle immediately and exit")
    args = parser.parse_args(argv)

    if args.now:
        logger.info("Running billing cycle immediately due to --now flag")
        results = run_billing_job()
        return 0 if results is not None and results['failed'] == 0 else 1

    logger.info("=" * 60)
    logger.info("Recurring Billing Scheduler Starting")
    logger.info("=" * 60)
    logger.info(f"Schedule: Every day at {BILLING_RUN_TIME}")

    schedule.every().day.at(BILLING_RUN_TIME).do(run_billing_job)

    logger.info(f"Next scheduled run: {schedule.next_run()}")
    logger.info("Press Ctrl+C to stop the scheduler")
    logger.info("=" * 60)

    try:
        while True:
            schedule.run_pending()
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
