"""
Integration tests for the booking state machine against an in-memory database.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from typing import Any, Callable
from unittest.mock import patch

import pytest
from sqlalchemy import select, update

from stay_booking.db.writers.catalog import upsert_settings
from stay_booking.errors import (
    BookingConflictError,
    InvalidRangeError,
    NotFoundError,
    ValidationError,
)
from stay_booking.models.bookings import Booking
from stay_booking.models.catalog import Addon, PromoCode
from stay_booking.services.bookings import BookingRequest, generate_booking_id, room_lock


def make_request(**overrides: Any) -> BookingRequest:
    values: dict[str, Any] = {
        "check_in": date(2025, 12, 24),
        "check_out": date(2025, 12, 26),
        "room_type": "standard",
        "guest_name": "Lin Mei",
        "guest_phone": "0912-345-678",
        "guest_email": "Guest@Example.com",
        "payment_method": "transfer",
        "adults": 2,
    }
    values.update(overrides)
    return BookingRequest(**values)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@pytest.mark.integration
def test_create_transfer_booking(services: Any) -> None:
    """Test that a transfer booking is priced, persisted and confirmed by mail."""
    result = services.bookings.create(make_request())
    booking = result.booking

    assert booking["booking_id"].startswith("BK") and len(booking["booking_id"]) == 10
    assert booking["status"] == "reserved"
    assert booking["payment_status"] == "pending"
    assert booking["nights"] == 2
    assert booking["price_per_night"] == 2250
    assert booking["total_amount"] == 4500
    assert booking["final_amount"] == 4500
    assert booking["guest_email"] == "guest@example.com"
    assert booking["guest_phone"] == "0912345678"
    assert booking["room_type_display"] == "Standard Double"
    assert booking["bank_info"]["bankName"] == "First Bank"
    assert booking["bank_info"]["account"] == "123-456-789"

    assert result.email_sent is True
    assert result.email_error is None
    assert services.transport.subjects_for("guest@example.com") == [
        f"[Booking confirmed] {booking['booking_id']}"
    ]
    assert services.store.sent_flags(booking["booking_id"]) == {"booking_confirmation"}


@pytest.mark.integration
def test_create_card_booking_waits_for_payment_before_confirming(services: Any) -> None:
    result = services.bookings.create(make_request(payment_method="card"))

    assert result.booking["bank_info"] is None
    assert services.transport.sent == []
    assert result.email_sent is False
    assert result.email_error == "No notification was sent"


@pytest.mark.integration
def test_admin_copy_is_sent_when_admin_email_configured(services: Any) -> None:
    upsert_settings(services.engine, {"admin_email": "owner@example.com"})

    result = services.bookings.create(make_request(payment_method="card"))

    assert result.email_sent is True
    assert services.transport.subjects_for("owner@example.com") == [
        f"[New booking] Lin Mei - {result.booking['booking_id']}"
    ]


@pytest.mark.integration
def test_deposit_with_addons_and_promo_code(services: Any) -> None:
    result = services.bookings.create(
        make_request(
            payment_amount="deposit",
            addons=[{"name": "breakfast", "quantity": 2}],
            promo_code="TENOFF",
        )
    )
    booking = result.booking

    assert booking["addons_total"] == 600
    assert booking["addons"] == [
        {"name": "breakfast", "display_name": "Breakfast", "price": 300, "quantity": 2}
    ]
    assert booking["discount_amount"] == 510
    assert booking["total_amount"] == 4590
    assert booking["final_amount"] == 1377
    assert booking["deposit_percentage"] == 30
    assert booking["promo_code"] == "TENOFF"


@pytest.mark.integration
def test_client_submitted_totals_are_ignored(services: Any) -> None:
    result = services.bookings.create(
        make_request(client_totals={"totalAmount": 1, "finalAmount": 1, "nights": 9})
    )

    assert result.booking["total_amount"] == 4500
    assert result.booking["final_amount"] == 4500


@pytest.mark.integration
def test_room_type_can_be_given_by_display_name(services: Any) -> None:
    result = services.bookings.create(make_request(room_type="Deluxe Double"))

    assert result.booking["room_type"] == "deluxe"
    assert result.booking["total_amount"] == 3500 + 2800


@pytest.mark.integration
def test_overlapping_booking_is_rejected(services: Any) -> None:
    services.bookings.create(make_request())

    with pytest.raises(BookingConflictError) as exc_info:
        services.bookings.create(
            make_request(check_in=date(2025, 12, 25), check_out=date(2025, 12, 27))
        )

    assert exc_info.value.field == "roomType"


@pytest.mark.integration
def test_concurrent_creates_for_same_dates_admit_exactly_one(services: Any) -> None:
    """Test that eight simultaneous requests for one room and stay yield one booking."""
    request = make_request()
    start = threading.Barrier(8)
    created: list[str] = []
    conflicts: list[BookingConflictError] = []
    unexpected: list[Exception] = []

    def book() -> None:
        start.wait()
        try:
            created.append(services.bookings.create(request).booking["booking_id"])
        except BookingConflictError as e:
            conflicts.append(e)
        except Exception as e:
            unexpected.append(e)

    threads = [threading.Thread(target=book) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert unexpected == []
    assert len(created) == 1
    assert len(conflicts) == 7
    with services.engine.connect() as conn:
        rows = conn.execute(select(Booking.booking_id).where(Booking.status != "cancelled"))
        assert [row[0] for row in rows] == created


@pytest.mark.integration
def test_adjacent_and_other_room_type_bookings_are_allowed(services: Any) -> None:
    """Test that checking in on another guest's check-out day is not a conflict."""
    services.bookings.create(make_request())

    services.bookings.create(
        make_request(check_in=date(2025, 12, 26), check_out=date(2025, 12, 27))
    )
    services.bookings.create(
        make_request(check_in=date(2025, 12, 22), check_out=date(2025, 12, 24))
    )
    services.bookings.create(make_request(room_type="deluxe"))


@pytest.mark.integration
def test_cancelled_booking_frees_its_dates(services: Any) -> None:
    first = services.bookings.create(make_request()).booking
    services.bookings.cancel(first["booking_id"])

    second = services.bookings.create(make_request()).booking

    assert second["status"] == "reserved"


@pytest.mark.integration
@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"guest_name": "  "}, "guestName"),
        ({"guest_email": "not-an-email"}, "guestEmail"),
        ({"guest_phone": "12345"}, "guestPhone"),
        ({"payment_method": "cash"}, "paymentMethod"),
        ({"payment_amount": "half"}, "paymentAmount"),
        ({"check_in": date(2025, 12, 19), "check_out": date(2025, 12, 21)}, "checkInDate"),
        ({"room_type": "penthouse"}, "roomType"),
        ({"addons": [{"name": "spa", "quantity": 1}]}, "addons"),
        ({"promo_code": "NOPE"}, "promoCode"),
    ],
)
def test_invalid_requests_are_rejected(
    services: Any, overrides: dict[str, Any], field: str
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        services.bookings.create(make_request(**overrides))

    assert exc_info.value.field == field
    assert services.transport.sent == []


@pytest.mark.integration
def test_reversed_dates_are_rejected(services: Any) -> None:
    with pytest.raises(InvalidRangeError):
        services.bookings.create(
            make_request(check_in=date(2025, 12, 26), check_out=date(2025, 12, 24))
        )


@pytest.mark.integration
def test_booking_for_today_is_allowed(services: Any) -> None:
    # The clock reads 2025-12-20 10:00 in business time
    result = services.bookings.create(
        make_request(check_in=date(2025, 12, 20), check_out=date(2025, 12, 21))
    )

    assert result.booking["check_in_date"] == date(2025, 12, 20)


@pytest.mark.integration
def test_disabled_payment_method_is_rejected(services: Any) -> None:
    upsert_settings(services.engine, {"enable_card": "0"})

    with pytest.raises(ValidationError) as exc_info:
        services.bookings.create(make_request(payment_method="card"))

    assert exc_info.value.field == "paymentMethod"


@pytest.mark.integration
def test_generated_ids_and_room_locks() -> None:
    booking_id = generate_booking_id()

    assert booking_id.startswith("BK") and booking_id[2:].isdigit() and len(booking_id) == 10
    assert room_lock("standard") is room_lock("standard")
    assert room_lock("standard") is not room_lock("deluxe")


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


@pytest.mark.integration
def test_mark_paid_activates_booking_and_sends_receipt(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.transport.sent.clear()
    paid_at = datetime(2025, 12, 20, 3, 0, tzinfo=timezone.utc)

    result = services.bookings.mark_paid(booking_id, trade_no="2512201100000001", paid_at=paid_at)

    assert result.changed is True
    assert result.booking["status"] == "active"
    assert result.booking["payment_status"] == "paid"
    assert result.booking["gateway_trade_no"] == "2512201100000001"
    assert result.booking["paid_at"].replace(tzinfo=timezone.utc) == paid_at
    assert services.transport.subjects_for("guest@example.com") == [
        f"[Payment received] {booking_id}"
    ]


@pytest.mark.integration
def test_mark_paid_is_idempotent(services: Any) -> None:
    """Test that a second payment notification changes nothing and sends no mail."""
    booking_id = services.bookings.create(make_request(payment_method="card")).booking["booking_id"]

    first = services.bookings.mark_paid(booking_id)
    second = services.bookings.mark_paid(booking_id)

    assert first.changed is True
    assert second.changed is False
    assert second.booking["status"] == "active"
    assert len(services.transport.sent) == 1
    assert services.transport.sent[0].subject == f"[Booking confirmed] {booking_id}"


@pytest.mark.integration
def test_payment_for_cancelled_booking_is_recorded_but_stays_cancelled(services: Any) -> None:
    booking_id = services.bookings.create(make_request(payment_method="card")).booking["booking_id"]
    services.bookings.cancel(booking_id)

    result = services.bookings.mark_paid(booking_id)

    assert result.changed is True
    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "paid"
    assert services.transport.sent == []


@pytest.mark.integration
def test_admin_payment_on_cancelled_transfer_booking_sends_no_receipt(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.bookings.cancel(booking_id)
    services.transport.sent.clear()

    booking = services.bookings.update(booking_id, {"payment_status": "paid"})

    assert booking["status"] == "cancelled"
    assert booking["payment_status"] == "paid"
    assert services.transport.sent == []


@pytest.mark.integration
def test_mark_paid_unknown_booking(services: Any) -> None:
    with pytest.raises(NotFoundError):
        services.bookings.mark_paid("BK00000000")


# ---------------------------------------------------------------------------
# Cancel / expire / delete
# ---------------------------------------------------------------------------


@pytest.mark.integration
def test_cancel_is_idempotent(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    first = services.bookings.cancel(booking_id)
    second = services.bookings.cancel(booking_id)

    assert first.changed is True
    assert second.changed is False
    assert second.booking["status"] == "cancelled"


@pytest.mark.integration
def test_active_booking_can_be_cancelled(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.bookings.mark_paid(booking_id)

    result = services.bookings.cancel(booking_id)

    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "paid"


@pytest.mark.integration
def test_expire_only_cancels_unpaid_reserved_bookings(services: Any) -> None:
    unpaid = services.bookings.create(make_request()).booking["booking_id"]
    paid = services.bookings.create(make_request(room_type="deluxe")).booking["booking_id"]
    services.bookings.mark_paid(paid)

    assert services.bookings.expire(unpaid) is True
    assert services.bookings.expire(unpaid) is False
    assert services.bookings.expire(paid) is False
    assert services.bookings.get(paid)["status"] == "active"


@pytest.mark.integration
def test_delete_requires_cancelled_booking(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.store.add_sent_flag(booking_id, "payment_reminder")

    with pytest.raises(ValidationError):
        services.bookings.delete(booking_id)

    services.bookings.cancel(booking_id)
    services.bookings.delete(booking_id)

    with pytest.raises(NotFoundError):
        services.bookings.get(booking_id)
    assert services.store.sent_flags(booking_id) == set()


# ---------------------------------------------------------------------------
# Admin updates
# ---------------------------------------------------------------------------


@pytest.mark.integration
def test_update_contact_fields(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    booking = services.bookings.update(
        booking_id, {"guest_name": "Chen Wei", "guest_phone": "0987 654 321"}
    )

    assert booking["guest_name"] == "Chen Wei"
    assert booking["guest_phone"] == "0987654321"
    assert booking["total_amount"] == 4500


@pytest.mark.integration
def test_update_dates_reprices_stay(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    booking = services.bookings.update(
        booking_id,
        {"check_in_date": date(2025, 12, 27), "check_out_date": date(2025, 12, 29)},
    )

    assert booking["check_in_date"] == date(2025, 12, 27)
    assert booking["nights"] == 2
    assert booking["total_amount"] == 5000
    assert booking["final_amount"] == 5000


@pytest.mark.integration
def test_update_payment_amount_reprices_deposit(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    booking = services.bookings.update(booking_id, {"payment_amount": "deposit"})

    assert booking["total_amount"] == 4500
    assert booking["final_amount"] == 1350


@pytest.mark.integration
def test_update_dates_keeps_booked_promo_and_addon_prices(services: Any) -> None:
    """Test that rescheduling works after the promo is retired and addon prices change."""
    booking_id = services.bookings.create(
        make_request(
            payment_amount="deposit",
            addons=[{"name": "breakfast", "quantity": 2}],
            promo_code="TENOFF",
        )
    ).booking["booking_id"]
    with services.engine.begin() as conn:
        conn.execute(update(PromoCode).where(PromoCode.code == "TENOFF").values(is_active=False))
        conn.execute(update(Addon).where(Addon.name == "breakfast").values(price=999))

    booking = services.bookings.update(booking_id, {"check_out_date": date(2025, 12, 25)})

    # one holiday night 2500 plus breakfast 600, less 10%
    assert booking["nights"] == 1
    assert booking["addons_total"] == 600
    assert booking["discount_amount"] == 310
    assert booking["total_amount"] == 2790
    assert booking["final_amount"] == 837
    assert booking["discount_type"] == "percent"
    assert booking["discount_value"] == 10


@pytest.mark.integration
def test_reprice_of_row_without_stored_promo_terms_keeps_discount_amount(
    services: Any, add_booking: Callable[..., dict[str, Any]]
) -> None:
    booking = add_booking(
        promo_code="MINUS500", discount_amount=500, total_amount=4000, final_amount=4000
    )

    updated = services.bookings.update(
        booking["booking_id"], {"check_out_date": date(2025, 12, 25)}
    )

    assert updated["discount_amount"] == 500
    assert updated["total_amount"] == 2000


@pytest.mark.integration
def test_update_into_occupied_dates_is_rejected(services: Any) -> None:
    services.bookings.create(make_request())
    later = services.bookings.create(
        make_request(check_in=date(2025, 12, 27), check_out=date(2025, 12, 29))
    ).booking["booking_id"]

    with pytest.raises(BookingConflictError):
        services.bookings.update(
            later, {"check_in_date": date(2025, 12, 25), "check_out_date": date(2025, 12, 28)}
        )

    assert services.bookings.get(later)["check_in_date"] == date(2025, 12, 27)


@pytest.mark.integration
def test_rescheduling_within_own_dates_is_not_a_conflict(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    booking = services.bookings.update(booking_id, {"check_out_date": date(2025, 12, 25)})

    assert booking["nights"] == 1
    assert booking["total_amount"] == 2500


@pytest.mark.integration
def test_update_marking_paid_activates_and_sends_receipt(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.transport.sent.clear()

    booking = services.bookings.update(booking_id, {"payment_status": "paid"})

    assert booking["status"] == "active"
    assert booking["paid_at"] is not None
    assert services.transport.subjects_for("guest@example.com") == [
        f"[Payment received] {booking_id}"
    ]


@pytest.mark.integration
@pytest.mark.parametrize(
    "patch_body",
    [{"status": "reserved"}, {"payment_status": "pending"}],
)
def test_status_fields_never_move_backwards(services: Any, patch_body: dict[str, str]) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.bookings.mark_paid(booking_id)

    with pytest.raises(ValidationError):
        services.bookings.update(booking_id, patch_body)


@pytest.mark.integration
def test_cancelled_booking_cannot_be_reactivated(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    services.bookings.cancel(booking_id)

    with pytest.raises(ValidationError):
        services.bookings.update(booking_id, {"status": "active"})


@pytest.mark.integration
def test_update_rejects_unknown_fields(services: Any) -> None:
    booking_id = services.bookings.create(make_request()).booking["booking_id"]

    with pytest.raises(ValidationError):
        services.bookings.update(booking_id, {"total_amount": 1})


@pytest.mark.integration
def test_update_lost_race_raises_conflict(services: Any) -> None:
    """Test that an edit based on a stale status does not overwrite a concurrent change."""
    booking_id = services.bookings.create(make_request()).booking["booking_id"]
    stale = services.bookings.get(booking_id)

    # Another writer cancels the booking right after the edit read it
    with services.engine.begin() as conn:
        conn.execute(
            update(Booking).where(Booking.booking_id == booking_id).values(status="cancelled")
        )
    with patch.object(services.bookings, "get", return_value=stale):
        with pytest.raises(BookingConflictError):
            services.bookings.update(booking_id, {"guest_name": "Chen Wei"})

    assert services.bookings.get(booking_id)["guest_name"] == "Lin Mei"
