from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import and_, select
from sqlalchemy.engine import Connection

from stay_booking.models.bookings import Booking, BookingNotification

# Statuses that hold the room for their dates
OCCUPYING_STATUSES = ("reserved", "active")


@dataclass(frozen=True)
class BookingFilter:
    """
    Criteria for ``list_bookings``. Unset fields do not constrain the query.

    Datetime bounds are compared against ``created_at`` and should be
    timezone-aware UTC instants.
    """

    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    check_in_on: Optional[date] = None
    check_out_on: Optional[date] = None
    created_on_or_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: Optional[int] = None


def _row_to_dict(row: Any) -> dict[str, Any]:
    return dict(row._mapping)


def get_booking(conn: Connection, booking_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a booking by its public booking id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        booking_id (str): Public id such as ``BK12345678``.

    Returns:
        Optional[dict[str, Any]]: Column values, or None if not found
    """
    row = conn.execute(
        select(Booking.__table__).where(Booking.booking_id == booking_id)
    ).fetchone()
    return _row_to_dict(row) if row else None


def booking_id_exists(conn: Connection, booking_id: str) -> bool:
    result = conn.execute(select(Booking.id).where(Booking.booking_id == booking_id))
    return result.fetchone() is not None


def find_overlapping_bookings(
    conn: Connection,
    room_type: str,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[str] = None,
) -> list[str]:
    """
    Return ids of bookings that occupy ``room_type`` on any night of the range.

    Two stays overlap when each starts before the other ends; a check-out on
    the same day as another check-in is not an overlap.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        room_type (str): Room type key.
        check_in (date): First night of the candidate stay.
        check_out (date): Departure date of the candidate stay.
        exclude_booking_id (Optional[str]): Booking being rescheduled, ignored in the check.

    Returns:
        list[str]: Booking ids of reserved or active bookings that overlap
    """
    stmt = select(Booking.booking_id).where(
        and_(
            Booking.room_type == room_type,
            Booking.status.in_(OCCUPYING_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in,
        )
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.booking_id != exclude_booking_id)
    result = conn.execute(stmt)
    return [row[0] for row in result]


def list_bookings(conn: Connection, criteria: BookingFilter) -> list[dict[str, Any]]:
    """
    List bookings matching every set field of ``criteria``, oldest first.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        criteria (BookingFilter): Filter values.

    Returns:
        list[dict[str, Any]]: Matching bookings
    """
    stmt = select(Booking.__table__)
    if criteria.status is not None:
        stmt = stmt.where(Booking.status == criteria.status)
    if criteria.payment_status is not None:
        stmt = stmt.where(Booking.payment_status == criteria.payment_status)
    if criteria.payment_method is not None:
        stmt = stmt.where(Booking.payment_method == criteria.payment_method)
    if criteria.check_in_on is not None:
        stmt = stmt.where(Booking.check_in_date == criteria.check_in_on)
    if criteria.check_out_on is not None:
        stmt = stmt.where(Booking.check_out_date == criteria.check_out_on)
    if criteria.created_on_or_after is not None:
        stmt = stmt.where(Booking.created_at >= criteria.created_on_or_after)
    if criteria.created_before is not None:
        stmt = stmt.where(Booking.created_at < criteria.created_before)
    stmt = stmt.order_by(Booking.created_at, Booking.id)
    if criteria.limit is not None:
        stmt = stmt.limit(criteria.limit)
    return [_row_to_dict(row) for row in conn.execute(stmt)]


def get_sent_notifications(conn: Connection, booking_id: str) -> set[str]:
    """Return the notification keys already delivered for a booking."""
    result = conn.execute(
        select(BookingNotification.notification_key).where(
            BookingNotification.booking_id == booking_id
        )
    )
    return {row[0] for row in result}
