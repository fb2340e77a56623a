"""Typed views over the key/value ``settings`` table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import structlog
from sqlalchemy.engine import Connection

from stay_booking import config
from stay_booking.db.readers.catalog import get_holiday_dates, get_setting, get_settings
from stay_booking.pricing.engine import (
    DEFAULT_DEPOSIT_PERCENTAGE,
    HolidayCalendar,
    parse_weekday_setting,
)

logger = structlog.get_logger(__name__)

BOOKING_SETTING_KEYS = (
    "deposit_percentage",
    "bank_name",
    "bank_branch",
    "bank_account",
    "account_name",
    "enable_transfer",
    "enable_card",
    "admin_email",
    "hotel_name",
    "hotel_address",
    "hotel_phone",
    "hotel_email",
)


def setting_enabled(value: Optional[str]) -> bool:
    """A missing setting means enabled; otherwise only '1' and 'true' enable."""
    if value is None:
        return True
    return value.strip().lower() in ("1", "true")


@dataclass(frozen=True)
class BookingSettings:
    deposit_percentage: int = DEFAULT_DEPOSIT_PERCENTAGE
    bank_info: dict[str, str] = field(default_factory=dict)
    enable_transfer: bool = True
    enable_card: bool = True
    admin_email: Optional[str] = None
    hotel: dict[str, Optional[str]] = field(default_factory=dict)

    def method_enabled(self, payment_method: str) -> bool:
        if payment_method == "transfer":
            return self.enable_transfer
        if payment_method == "card":
            return self.enable_card
        return False


def load_booking_settings(conn: Connection) -> BookingSettings:
    """
    Read deposit, bank, payment-method and contact settings in one query.

    Args:
        conn (Connection): An active SQLAlchemy database connection.

    Returns:
        BookingSettings: Settings with defaults applied for missing keys
    """
    values = get_settings(conn, BOOKING_SETTING_KEYS)

    deposit = DEFAULT_DEPOSIT_PERCENTAGE
    raw_deposit = values.get("deposit_percentage")
    if raw_deposit:
        try:
            deposit = int(raw_deposit)
        except ValueError:
            logger.warning("deposit_percentage_invalid", value=raw_deposit)
        if not 0 < deposit <= 100:
            logger.warning("deposit_percentage_out_of_range", value=deposit)
            deposit = DEFAULT_DEPOSIT_PERCENTAGE

    bank_info = {
        "bankName": values.get("bank_name") or "",
        "bankBranch": values.get("bank_branch") or "",
        "account": values.get("bank_account") or "",
        "accountName": values.get("account_name") or "",
    }

    return BookingSettings(
        deposit_percentage=deposit,
        bank_info=bank_info,
        enable_transfer=setting_enabled(values.get("enable_transfer")),
        enable_card=setting_enabled(values.get("enable_card")),
        admin_email=values.get("admin_email") or config.ADMIN_EMAIL,
        hotel={key: values.get(key) for key in BOOKING_SETTING_KEYS if key.startswith("hotel_")},
    )


def load_holiday_calendar(conn: Connection, start: date, end: date) -> HolidayCalendar:
    """
    Build the holiday calendar covering ``[start, end)``.

    Only the overrides inside the range are loaded; the weekday rule comes from
    the ``weekday_settings`` setting.
    """
    weekday_raw = get_setting(conn, "weekday_settings")
    return HolidayCalendar(
        holidays=frozenset(get_holiday_dates(conn, start, end)),
        weekdays=parse_weekday_setting(weekday_raw),
    )
