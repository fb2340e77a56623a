import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import json
from datetime import date

import structlog

from stay_booking.db.engine import engine
from stay_booking.db.store import SqlBookingStore
from stay_booking.logging_config import setup_logging
from stay_booking.notifications.service import NotificationService
from stay_booking.notifications.transports import build_notifier_from_config
from stay_booking.scheduler.jobs import NotificationJobs
from stay_booking.scheduler.runner import build_scheduler
from stay_booking.services.bookings import BookingService

setup_logging()
logger = structlog.get_logger(__name__)

JOB_NAMES = ("expiry_sweep", "payment_reminder", "checkin_reminder", "feedback_request")


def main() -> None:
    """
    Run one scheduled job immediately.

    Usage:
        python scripts/run_job.py payment_reminder
        python scripts/run_job.py expiry_sweep --date 2025-12-24
    """
    parser = argparse.ArgumentParser(description="Run a notification job now")
    parser.add_argument("job", choices=JOB_NAMES)
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Business-local date to run for (YYYY-MM-DD); defaults to now",
    )
    args = parser.parse_args()

    store = SqlBookingStore(engine)
    notifications = NotificationService(engine, store, build_notifier_from_config())
    bookings = BookingService(engine, store, notifications)
    scheduler = build_scheduler(NotificationJobs(bookings, notifications), notifications)

    logger.info("manual_job_run", job=args.job, date=str(args.date) if args.date else None)
    try:
        report = scheduler.run_job(args.job, today=args.date)
    except Exception:
        logger.exception("manual_job_failed", job=args.job)
        raise

    print(json.dumps(report.as_dict(), indent=2))


if __name__ == "__main__":
    main()
