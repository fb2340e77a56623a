"""Clock and business-timezone helpers."""

from datetime import date, datetime, timezone, tzinfo
from typing import Callable

from dateutil import tz

from stay_booking.config import BUSINESS_TIMEZONE

# Anything that returns the current time as an aware datetime; tests pass a fixed one.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This is the default clock for services and the scheduler; inject another
    callable to control time in tests.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def business_tz() -> tzinfo:
    """Return the tzinfo for BUSINESS_TIMEZONE (Asia/Taipei by default)."""
    zone = tz.gettz(BUSINESS_TIMEZONE)
    if zone is None:
        raise ValueError(f"Unknown BUSINESS_TIMEZONE: {BUSINESS_TIMEZONE}")
    return zone


def to_local(moment: datetime) -> datetime:
    """
    Convert an instant to business-local wall time.

    Naive datetimes are treated as UTC, which is how SQLite hands back
    ``DateTime(timezone=True)`` columns.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(business_tz())


def local_today(clock: Clock = utc_now) -> date:
    """Return today's date in the business timezone."""
    return to_local(clock()).date()


def local_midnight_utc(day: date) -> datetime:
    """Return the UTC instant at which ``day`` begins in the business timezone."""
    local = datetime(day.year, day.month, day.day, tzinfo=business_tz())
    return local.astimezone(timezone.utc)
