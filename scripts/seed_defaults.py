import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
from datetime import date

import structlog

from stay_booking.db.engine import engine
from stay_booking.db.readers.catalog import get_settings
from stay_booking.db.writers.catalog import (
    add_holidays,
    insert_missing_templates,
    upsert_room_types,
    upsert_settings,
)
from stay_booking.logging_config import setup_logging
from stay_booking.models.base import Base
from stay_booking.notifications.defaults import DEFAULT_TEMPLATES

setup_logging()
logger = structlog.get_logger(__name__)

DEFAULT_ROOM_TYPES = [
    {
        "name": "standard",
        "display_name": "Standard Double",
        "price": 2000,
        "holiday_surcharge": 500,
        "max_occupancy": 2,
        "display_order": 1,
    },
    {
        "name": "deluxe",
        "display_name": "Deluxe Double",
        "price": 2800,
        "holiday_surcharge": 700,
        "max_occupancy": 2,
        "display_order": 2,
    },
    {
        "name": "family",
        "display_name": "Family Room",
        "price": 3800,
        "holiday_surcharge": 1000,
        "max_occupancy": 4,
        "display_order": 3,
    },
]

DEFAULT_SETTINGS = {
    "deposit_percentage": "30",
    "enable_transfer": "1",
    "enable_card": "1",
    "weekday_settings": '{"weekdays": [1, 2, 3, 4, 5]}',
    "bank_name": "",
    "bank_branch": "",
    "bank_account": "",
    "account_name": "",
}


def main() -> None:
    """
    Insert default room types, settings, templates and optional holidays.

    Existing settings and templates are left as they are, so this is safe to
    re-run after admins have edited them. Room types are upserted.

    Usage:
        python scripts/seed_defaults.py
        python scripts/seed_defaults.py --create-tables --holiday 2025-12-25
    """
    parser = argparse.ArgumentParser(description="Seed default catalog data")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables from the models (for local SQLite; use alembic elsewhere)",
    )
    parser.add_argument(
        "--holiday",
        type=date.fromisoformat,
        action="append",
        default=[],
        help="Add a holiday override (repeatable)",
    )
    args = parser.parse_args()

    if args.create_tables:
        Base.metadata.create_all(engine)
        logger.info("tables_created")

    upsert_room_types(engine, DEFAULT_ROOM_TYPES)

    with engine.connect() as conn:
        existing = get_settings(conn, list(DEFAULT_SETTINGS))
    missing = {key: value for key, value in DEFAULT_SETTINGS.items() if existing[key] is None}
    if missing:
        upsert_settings(engine, missing)

    insert_missing_templates(engine, DEFAULT_TEMPLATES)

    if args.holiday:
        add_holidays(engine, args.holiday)

    logger.info("seed_completed", settings_added=sorted(missing))


if __name__ == "__main__":
    main()
