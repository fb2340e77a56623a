"""
Shared fixtures.

Every test runs against its own in-memory SQLite database, a controllable
clock and a recording mail transport, so nothing leaves the process.
"""

from __future__ import annotations

import os

# Must be set before stay_booking.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_SCHEMA"] = ""
os.environ["PAYMENT_ENV"] = "test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["BUSINESS_TIMEZONE"] = "Asia/Taipei"
os.environ["ADMIN_EMAIL"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Generator, Optional

import pytest
from sqlalchemy.engine import Engine

from stay_booking.db.engine import create_db_engine
from stay_booking.db.store import SqlBookingStore
from stay_booking.db.writers.bookings import insert_booking
from stay_booking.db.writers.catalog import (
    add_holidays,
    insert_missing_templates,
    upsert_addons,
    upsert_room_types,
    upsert_settings,
)
from stay_booking.db.writers._upsert import insert_ignore_conflict
from stay_booking.models.base import Base
from stay_booking.models.catalog import PromoCode
from stay_booking.notifications.defaults import DEFAULT_TEMPLATES
from stay_booking.notifications.service import NotificationService
from stay_booking.notifications.transports import (
    EmailMessage,
    MailTransport,
    Notifier,
    SendResult,
)
from stay_booking.services.bookings import BookingService

# 2025-12-20 10:00 in Asia/Taipei
FIXED_NOW = datetime(2025, 12, 20, 2, 0, tzinfo=timezone.utc)

BANK_SETTINGS = {
    "bank_name": "First Bank",
    "bank_branch": "Daan",
    "bank_account": "123-456-789",
    "account_name": "Seaside Inn Ltd.",
}


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingTransport(MailTransport):
    """Mail transport that stores messages; addresses in ``fail_for`` are refused."""

    name = "recording"

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.fail_for: set[str] = set()

    def send(self, message: EmailMessage) -> SendResult:
        if message.to in self.fail_for:
            return SendResult(success=False, transport=self.name, error="mailbox unavailable")
        self.sent.append(message)
        return SendResult(success=True, transport=self.name, message_id=f"msg-{len(self.sent)}")

    def subjects_for(self, address: str) -> list[str]:
        return [m.subject for m in self.sent if m.to == address]


@dataclass
class Services:
    engine: Engine
    clock: FakeClock
    transport: RecordingTransport
    store: SqlBookingStore
    notifications: NotificationService
    bookings: BookingService


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with every table created."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """
    Database with a small catalog:

    - ``standard``: 2000/night, +500 on holidays
    - ``deluxe``: 2800/night, +700 on holidays
    - ``breakfast`` addon at 300
    - promo codes ``TENOFF`` (10%) and ``MINUS500`` (500 off)
    - 2025-12-24 as a manual holiday
    - bank transfer details, 30% deposit and every default template
    """
    upsert_room_types(
        db_engine,
        [
            {
                "name": "standard",
                "display_name": "Standard Double",
                "price": 2000,
                "holiday_surcharge": 500,
                "max_occupancy": 2,
            },
            {
                "name": "deluxe",
                "display_name": "Deluxe Double",
                "price": 2800,
                "holiday_surcharge": 700,
                "max_occupancy": 2,
            },
        ],
    )
    upsert_addons(
        db_engine, [{"name": "breakfast", "display_name": "Breakfast", "price": 300}]
    )
    with db_engine.begin() as conn:
        for promo in (
            {"code": "TENOFF", "discount_type": "percent", "discount_value": 10},
            {"code": "MINUS500", "discount_type": "fixed", "discount_value": 500},
        ):
            insert_ignore_conflict(conn, PromoCode, promo, ["code"])
    upsert_settings(db_engine, {"deposit_percentage": "30", **BANK_SETTINGS})
    add_holidays(db_engine, [date(2025, 12, 24)], "Christmas Eve")
    insert_missing_templates(db_engine, DEFAULT_TEMPLATES)
    return db_engine


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def services(seeded_engine: Engine, clock: FakeClock, transport: RecordingTransport) -> Services:
    store = SqlBookingStore(seeded_engine, clock=clock)
    notifier = Notifier([transport], default_from="inn@example.com")
    notifications = NotificationService(seeded_engine, store, notifier)
    bookings = BookingService(seeded_engine, store, notifications, clock=clock)
    return Services(
        engine=seeded_engine,
        clock=clock,
        transport=transport,
        store=store,
        notifications=notifications,
        bookings=bookings,
    )


_row_counter = iter(range(10_000_000, 99_999_999))


def make_booking_row(
    created_at: datetime = FIXED_NOW,
    booking_id: Optional[str] = None,
    **overrides: Any,
) -> dict[str, Any]:
    """A complete bookings row; override any column by keyword."""
    row: dict[str, Any] = {
        "booking_id": booking_id or f"BK{next(_row_counter)}",
        "check_in_date": date(2025, 12, 24),
        "check_out_date": date(2025, 12, 26),
        "room_type": "standard",
        "room_type_display": "Standard Double",
        "guest_name": "Lin Mei",
        "guest_phone": "0912345678",
        "guest_email": "guest@example.com",
        "adults": 2,
        "children": 0,
        "payment_amount": "full",
        "payment_method": "transfer",
        "deposit_percentage": 30,
        "price_per_night": 2250,
        "nights": 2,
        "addons": None,
        "addons_total": 0,
        "promo_code": None,
        "discount_amount": 0,
        "total_amount": 4500,
        "final_amount": 4500,
        "bank_info": None,
        "status": "reserved",
        "payment_status": "pending",
        "created_at": created_at,
        "updated_at": created_at,
    }
    row.update(overrides)
    return row


@pytest.fixture
def add_booking(seeded_engine: Engine) -> Callable[..., dict[str, Any]]:
    """
    Insert a booking row directly, skipping availability checks.

    Returns a callable taking the same keywords as ``make_booking_row``.
    """

    def insert(**kwargs: Any) -> dict[str, Any]:
        row = make_booking_row(**kwargs)
        with seeded_engine.begin() as conn:
            insert_booking(conn, row)
        return row

    return insert
