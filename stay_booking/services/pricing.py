"""Loads pricing inputs from the database and runs the pure pricing engine."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy.engine import Connection

from stay_booking.db.readers.bookings import find_overlapping_bookings
from stay_booking.db.readers.catalog import get_room_type, list_room_types
from stay_booking.errors import InvalidRangeError, NotFoundError
from stay_booking.pricing.engine import PriceQuote, RoomRate, compute_price
from stay_booking.services.settings import load_holiday_calendar


def room_rate_from_row(row: dict[str, Any]) -> RoomRate:
    return RoomRate(
        name=row["name"],
        display_name=row["display_name"],
        base_price=int(row["price"] or 0),
        holiday_surcharge=int(row["holiday_surcharge"] or 0),
    )


def load_room_rate(conn: Connection, room_type: str) -> RoomRate:
    """
    Resolve a room type key (or display name) to its rate.

    Raises:
        NotFoundError: If no active room type matches
    """
    row = get_room_type(conn, room_type)
    if row is None:
        raise NotFoundError(f"Room type not found: {room_type}")
    return room_rate_from_row(row)


def quote_stay(conn: Connection, check_in: date, check_out: date, room_type: str) -> PriceQuote:
    """
    Price a stay with the room rate and holiday calendar currently in the database.

    Args:
        conn: Active database connection
        check_in: First night
        check_out: Departure date
        room_type: Room type key or display name

    Returns:
        PriceQuote: Nightly breakdown and totals

    Raises:
        NotFoundError: Unknown room type
        InvalidRangeError: check_out not after check_in, or stay too long
    """
    room = load_room_rate(conn, room_type)
    calendar = load_holiday_calendar(conn, check_in, check_out)
    return compute_price(check_in, check_out, room, calendar)


def unavailable_room_types(conn: Connection, check_in: date, check_out: date) -> list[str]:
    """
    Active room types already occupied on at least one night of the range.

    Raises:
        InvalidRangeError: check_out not after check_in
    """
    if check_out <= check_in:
        raise InvalidRangeError("Check-out date must be after check-in date", field="checkOutDate")
    return [
        room["name"]
        for room in list_room_types(conn)
        if find_overlapping_bookings(conn, room["name"], check_in, check_out)
    ]
