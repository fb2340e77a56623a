"""
Holiday-aware price computation.

Everything in this module is a pure function of its arguments: the caller
loads the room type, the holiday calendar and the promo code, and passes them
in. Nothing here reads the database, the clock or a cache, so a quote is
reproducible from its inputs.

Example:
    >>> calendar = HolidayCalendar(holidays=frozenset({date(2025, 12, 24)}))
    >>> room = RoomRate("deluxe", "Deluxe", base_price=2000, holiday_surcharge=500)
    >>> quote = compute_price(date(2025, 12, 24), date(2025, 12, 26), room, calendar)
    >>> [n.price for n in quote.nightly], quote.total_amount
    ([2500, 2000], 4500)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

import structlog

from stay_booking.errors import InvalidRangeError, ValidationError

logger = structlog.get_logger(__name__)

MAX_NIGHTS = 365
DEFAULT_DEPOSIT_PERCENTAGE = 30

# Day numbers follow the admin panel convention: 0 = Sunday ... 6 = Saturday
DEFAULT_WEEKDAYS: frozenset[int] = frozenset({1, 2, 3, 4, 5})


def round_half_up(value: Decimal | int | float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_weekday_setting(raw: Optional[str]) -> frozenset[int]:
    """
    Parse the ``weekday_settings`` value into a set of weekday numbers.

    The stored format is ``{"weekdays": [1, 2, 3, 4, 5]}``. Anything missing or
    malformed falls back to Monday-Friday.

    Args:
        raw: JSON string from the settings table, or None

    Returns:
        frozenset[int]: Day numbers (0 = Sunday) that are priced as weekdays
    """
    if not raw:
        return DEFAULT_WEEKDAYS
    try:
        parsed = json.loads(raw)
        days = parsed.get("weekdays") if isinstance(parsed, dict) else None
        if not isinstance(days, list):
            raise ValueError("weekdays must be a list")
        weekdays = frozenset(int(d) for d in days if 0 <= int(d) <= 6)
    except (ValueError, TypeError) as e:
        logger.warning("weekday_settings_invalid", raw=raw, error=str(e))
        return DEFAULT_WEEKDAYS
    return weekdays


@dataclass(frozen=True)
class HolidayCalendar:
    """Manual holiday overrides plus the default weekday/weekend rule."""

    holidays: frozenset[date] = frozenset()
    weekdays: frozenset[int] = DEFAULT_WEEKDAYS

    def is_holiday(self, day: date) -> bool:
        """Manual override first, otherwise any day not configured as a weekday."""
        if day in self.holidays:
            return True
        day_number = (day.weekday() + 1) % 7  # Python Monday=0 -> Sunday=0 numbering
        return day_number not in self.weekdays


@dataclass(frozen=True)
class RoomRate:
    name: str
    display_name: str
    base_price: int
    holiday_surcharge: int = 0


@dataclass(frozen=True)
class NightlyPrice:
    date: date
    is_holiday: bool
    price: int


@dataclass(frozen=True)
class PriceQuote:
    """Per-night breakdown for a stay; ``nightly`` is ordered by date."""

    room: RoomRate
    nightly: tuple[NightlyPrice, ...]
    total_amount: int
    average_price_per_night: int

    @property
    def nights(self) -> int:
        return len(self.nightly)


@dataclass(frozen=True)
class AddonLine:
    name: str
    display_name: str
    price: int
    quantity: int = 1

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "price": self.price,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class Discount:
    code: str
    discount_type: str  # fixed | percent
    value: int

    def amount_for(self, subtotal: int) -> Decimal:
        """Unrounded discount for a subtotal, never more than the subtotal itself."""
        if self.discount_type == "percent":
            amount = Decimal(subtotal) * Decimal(min(max(self.value, 0), 100)) / Decimal(100)
        elif self.discount_type == "fixed":
            amount = Decimal(max(self.value, 0))
        else:
            raise ValidationError(f"Unknown discount type: {self.discount_type}", field="promoCode")
        return min(amount, Decimal(subtotal))


@dataclass(frozen=True)
class BookingTotals:
    quote: PriceQuote
    addons: tuple[AddonLine, ...] = field(default_factory=tuple)
    addons_total: int = 0
    discount_amount: int = 0
    total_amount: int = 0
    final_amount: int = 0
    payment_amount: str = "full"
    deposit_percentage: int = DEFAULT_DEPOSIT_PERCENTAGE
    discount: Optional[Discount] = None

    @property
    def remaining_amount(self) -> int:
        return max(self.total_amount - self.final_amount, 0)


def iter_nights(check_in: date, check_out: date) -> Iterable[date]:
    """Yield every night of a stay: check_in inclusive, check_out exclusive."""
    day = check_in
    while day < check_out:
        yield day
        day += timedelta(days=1)


def compute_price(
    check_in: date,
    check_out: date,
    room: RoomRate,
    calendar: HolidayCalendar,
) -> PriceQuote:
    """
    Price every night of a stay.

    Args:
        check_in: First night
        check_out: Departure date (not charged)
        room: Base rate and holiday surcharge
        calendar: Holiday overrides and weekday rule

    Returns:
        PriceQuote: Ordered nightly prices, total, and average per night

    Raises:
        InvalidRangeError: If check_out is not after check_in, or the stay exceeds MAX_NIGHTS
    """
    if check_out <= check_in:
        raise InvalidRangeError("Check-out date must be after check-in date", field="checkOutDate")
    if (check_out - check_in).days > MAX_NIGHTS:
        raise InvalidRangeError(f"Stays are limited to {MAX_NIGHTS} nights", field="checkOutDate")

    nightly = []
    for night in iter_nights(check_in, check_out):
        holiday = calendar.is_holiday(night)
        price = room.base_price + room.holiday_surcharge if holiday else room.base_price
        nightly.append(NightlyPrice(date=night, is_holiday=holiday, price=price))

    total = sum(n.price for n in nightly)
    return PriceQuote(
        room=room,
        nightly=tuple(nightly),
        total_amount=total,
        average_price_per_night=round_half_up(Decimal(total) / Decimal(len(nightly))),
    )


def compute_booking_totals(
    quote: PriceQuote,
    addons: Iterable[AddonLine] = (),
    discount: Optional[Discount] = None,
    payment_amount: str = "full",
    deposit_percentage: int = DEFAULT_DEPOSIT_PERCENTAGE,
) -> BookingTotals:
    """
    Turn a nightly quote into the amounts stored on a booking.

    ``total_amount`` is room nights plus addons minus the discount, and
    ``final_amount`` is what the guest pays now: the total, or the deposit
    share of it. The discount is subtracted once and rounding happens last.

    Args:
        quote: Result of compute_price
        addons: Selected addon lines
        discount: Promo discount, if a valid code was given
        payment_amount: ``deposit`` or ``full``
        deposit_percentage: Share of the total due up front for deposits

    Returns:
        BookingTotals: Amounts ready to persist

    Raises:
        ValidationError: For an unknown payment_amount or out-of-range deposit percentage
    """
    if payment_amount not in ("deposit", "full"):
        raise ValidationError("paymentAmount must be 'deposit' or 'full'", field="paymentAmount")
    if not 0 < deposit_percentage <= 100:
        raise ValidationError("Deposit percentage must be between 1 and 100")

    lines = tuple(addons)
    for line in lines:
        if line.quantity < 1 or line.price < 0:
            raise ValidationError(f"Invalid addon line: {line.name}", field="addons")
    addons_total = sum(line.line_total for line in lines)

    subtotal = quote.total_amount + addons_total
    discount_value = discount.amount_for(subtotal) if discount else Decimal(0)
    discounted = max(Decimal(subtotal) - discount_value, Decimal(0))

    rate = Decimal(deposit_percentage) / Decimal(100) if payment_amount == "deposit" else Decimal(1)

    return BookingTotals(
        quote=quote,
        addons=lines,
        addons_total=addons_total,
        discount_amount=round_half_up(discount_value),
        total_amount=round_half_up(discounted),
        final_amount=round_half_up(discounted * rate),
        payment_amount=payment_amount,
        deposit_percentage=deposit_percentage,
        discount=discount,
    )
