"""
Unit tests for the pure pricing engine.
"""

from __future__ import annotations

from datetime import date

import pytest

from stay_booking.errors import InvalidRangeError, ValidationError
from stay_booking.pricing.engine import (
    DEFAULT_WEEKDAYS,
    MAX_NIGHTS,
    AddonLine,
    Discount,
    HolidayCalendar,
    RoomRate,
    compute_booking_totals,
    compute_price,
    parse_weekday_setting,
    round_half_up,
)

STANDARD = RoomRate(
    name="standard", display_name="Standard", base_price=2000, holiday_surcharge=500
)
CHRISTMAS_EVE = HolidayCalendar(holidays=frozenset({date(2025, 12, 24)}))


@pytest.mark.unit
def test_holiday_override_gets_surcharge_and_weekday_does_not() -> None:
    """Test that a manual holiday is surcharged and the following Thursday is not."""
    quote = compute_price(date(2025, 12, 24), date(2025, 12, 26), STANDARD, CHRISTMAS_EVE)

    assert [n.price for n in quote.nightly] == [2500, 2000]
    assert [n.is_holiday for n in quote.nightly] == [True, False]
    assert quote.total_amount == 4500
    assert quote.average_price_per_night == 2250
    assert quote.nights == 2


@pytest.mark.unit
def test_weekend_nights_are_holidays_by_default() -> None:
    """Test that Saturday and Sunday count as holidays under the Monday-Friday rule."""
    quote = compute_price(date(2025, 12, 27), date(2025, 12, 29), STANDARD, HolidayCalendar())

    assert [n.date for n in quote.nightly] == [date(2025, 12, 27), date(2025, 12, 28)]
    assert all(n.is_holiday for n in quote.nightly)
    assert quote.total_amount == 5000


@pytest.mark.unit
def test_custom_weekdays_change_which_days_are_surcharged() -> None:
    """Test that configuring Saturday as a weekday removes its surcharge."""
    calendar = HolidayCalendar(weekdays=frozenset({1, 2, 3, 4, 5, 6}))

    quote = compute_price(date(2025, 12, 27), date(2025, 12, 29), STANDARD, calendar)

    assert [n.price for n in quote.nightly] == [2000, 2500]


@pytest.mark.unit
def test_same_inputs_give_equal_quotes() -> None:
    """Test that pricing depends only on its arguments."""
    first = compute_price(date(2025, 12, 24), date(2025, 12, 29), STANDARD, CHRISTMAS_EVE)
    second = compute_price(date(2025, 12, 24), date(2025, 12, 29), STANDARD, CHRISTMAS_EVE)

    assert first == second
    assert first is not second

    totals = [
        compute_booking_totals(
            first,
            addons=[AddonLine("breakfast", "Breakfast", 300, 2)],
            discount=Discount("TENOFF", "percent", 10),
            payment_amount="deposit",
            deposit_percentage=30,
        )
        for _ in range(2)
    ]
    assert totals[0] == totals[1]


@pytest.mark.unit
def test_nightly_breakdown_is_ordered_and_excludes_checkout_day() -> None:
    quote = compute_price(date(2025, 12, 29), date(2026, 1, 3), STANDARD, HolidayCalendar())

    days = [n.date for n in quote.nightly]
    assert days == sorted(days)
    assert days[0] == date(2025, 12, 29)
    assert days[-1] == date(2026, 1, 2)
    assert quote.total_amount == sum(n.price for n in quote.nightly)


@pytest.mark.unit
@pytest.mark.parametrize(
    "check_in,check_out",
    [
        (date(2025, 12, 24), date(2025, 12, 24)),
        (date(2025, 12, 24), date(2025, 12, 23)),
    ],
)
def test_empty_or_reversed_range_is_rejected(check_in: date, check_out: date) -> None:
    with pytest.raises(InvalidRangeError) as exc_info:
        compute_price(check_in, check_out, STANDARD, HolidayCalendar())

    assert exc_info.value.field == "checkOutDate"


@pytest.mark.unit
def test_overlong_stay_is_rejected() -> None:
    check_in = date(2025, 1, 1)
    last_allowed = date.fromordinal(check_in.toordinal() + MAX_NIGHTS)
    allowed = compute_price(check_in, last_allowed, STANDARD, HolidayCalendar())
    assert allowed.nights == MAX_NIGHTS

    with pytest.raises(InvalidRangeError):
        compute_price(
            check_in,
            date.fromordinal(check_in.toordinal() + MAX_NIGHTS + 1),
            STANDARD,
            HolidayCalendar(),
        )


@pytest.mark.unit
@pytest.mark.parametrize(
    "value,expected",
    [(2.5, 3), (3.5, 4), (0.5, 1), (1.49, 1), (1377.0, 1377), (-0.4, 0)],
)
def test_round_half_up(value: float, expected: int) -> None:
    assert round_half_up(value) == expected


@pytest.mark.unit
def test_full_payment_totals_with_addons_and_percent_discount() -> None:
    """Test that the discount applies to nights plus addons, once."""
    quote = compute_price(date(2025, 12, 24), date(2025, 12, 26), STANDARD, CHRISTMAS_EVE)
    breakfast = AddonLine(name="breakfast", display_name="Breakfast", price=300, quantity=2)

    totals = compute_booking_totals(
        quote, addons=[breakfast], discount=Discount("TENOFF", "percent", 10)
    )

    assert totals.addons_total == 600
    assert totals.discount_amount == 510
    assert totals.total_amount == 4590
    assert totals.final_amount == 4590
    assert totals.remaining_amount == 0


@pytest.mark.unit
def test_deposit_is_share_of_discounted_total() -> None:
    quote = compute_price(date(2025, 12, 24), date(2025, 12, 26), STANDARD, CHRISTMAS_EVE)
    breakfast = AddonLine(name="breakfast", display_name="Breakfast", price=300, quantity=2)

    totals = compute_booking_totals(
        quote,
        addons=[breakfast],
        discount=Discount("TENOFF", "percent", 10),
        payment_amount="deposit",
        deposit_percentage=30,
    )

    assert totals.total_amount == 4590
    assert totals.final_amount == 1377  # 4590 * 0.3
    assert totals.remaining_amount == 3213


@pytest.mark.unit
def test_fixed_discount_never_goes_below_zero() -> None:
    quote = compute_price(date(2025, 12, 25), date(2025, 12, 26), STANDARD, HolidayCalendar())

    totals = compute_booking_totals(quote, discount=Discount("BIG", "fixed", 999999))

    assert totals.discount_amount == 2000
    assert totals.total_amount == 0
    assert totals.final_amount == 0


@pytest.mark.unit
def test_unknown_discount_type_is_rejected() -> None:
    quote = compute_price(date(2025, 12, 25), date(2025, 12, 26), STANDARD, HolidayCalendar())

    with pytest.raises(ValidationError):
        compute_booking_totals(quote, discount=Discount("ODD", "bogo", 1))


@pytest.mark.unit
def test_invalid_payment_amount_and_deposit_percentage_are_rejected() -> None:
    quote = compute_price(date(2025, 12, 25), date(2025, 12, 26), STANDARD, HolidayCalendar())

    with pytest.raises(ValidationError) as exc_info:
        compute_booking_totals(quote, payment_amount="half")
    assert exc_info.value.field == "paymentAmount"

    with pytest.raises(ValidationError):
        compute_booking_totals(quote, payment_amount="deposit", deposit_percentage=0)


@pytest.mark.unit
def test_addon_with_zero_quantity_is_rejected() -> None:
    quote = compute_price(date(2025, 12, 25), date(2025, 12, 26), STANDARD, HolidayCalendar())

    with pytest.raises(ValidationError) as exc_info:
        compute_booking_totals(quote, addons=[AddonLine("breakfast", "Breakfast", 300, 0)])

    assert exc_info.value.field == "addons"


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"weekdays": [1, 2, 3, 4, 5, 6]}', frozenset({1, 2, 3, 4, 5, 6})),
        ('{"weekdays": [0, 7, 3]}', frozenset({0, 3})),
        (None, DEFAULT_WEEKDAYS),
        ("", DEFAULT_WEEKDAYS),
        ("not json", DEFAULT_WEEKDAYS),
        ('{"weekdays": "1,2"}', DEFAULT_WEEKDAYS),
        ("[1, 2]", DEFAULT_WEEKDAYS),
    ],
)
def test_parse_weekday_setting(raw: str | None, expected: frozenset[int]) -> None:
    assert parse_weekday_setting(raw) == expected
