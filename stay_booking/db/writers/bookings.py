from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import and_, delete, insert, update
from sqlalchemy.engine import Connection

from stay_booking.db.writers._upsert import insert_ignore_conflict
from stay_booking.metrics import booking_transitions
from stay_booking.models.bookings import Booking, BookingNotification

logger = structlog.get_logger(__name__)


def insert_booking(conn: Connection, row: dict[str, Any]) -> None:
    """
    Insert a new booking row.

    Args:
        conn: Active database connection (within transaction)
        row: Column values; ``booking_id`` must be unique
    """
    conn.execute(insert(Booking).values(**row))
    logger.debug("booking_inserted", booking_id=row.get("booking_id"))


def update_booking_fields(
    conn: Connection, booking_id: str, changes: dict[str, Any], now: datetime
) -> bool:
    """
    Unconditionally update booking columns.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Public booking id
        changes: Column values to write
        now: Timestamp for ``updated_at``

    Returns:
        bool: True if the booking existed and was updated
    """
    result = conn.execute(
        update(Booking)
        .where(Booking.booking_id == booking_id)
        .values(**changes, updated_at=now)
    )
    return result.rowcount == 1


def compare_and_set(
    conn: Connection,
    booking_id: str,
    expected: dict[str, Any],
    changes: dict[str, Any],
    now: datetime,
) -> bool:
    """
    Apply ``changes`` only if every column in ``expected`` still holds that value.

    This is the only way status fields change, so a payment callback and the
    expiry sweep racing on one booking cannot both win: whichever UPDATE runs
    second matches zero rows.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Public booking id
        expected: Column -> value guard, e.g. ``{"payment_status": "pending"}``
        changes: Column -> new value
        now: Timestamp for ``updated_at``

    Returns:
        bool: True if this call applied the change, False if the guard did not match

    Example:
        >>> with engine.begin() as conn:
        ...     compare_and_set(conn, "BK12345678",
        ...                     {"status": "reserved", "payment_status": "pending"},
        ...                     {"status": "cancelled"}, utc_now())
    """
    guards = [Booking.booking_id == booking_id]
    guards.extend(getattr(Booking, column) == value for column, value in expected.items())

    result = conn.execute(update(Booking).where(and_(*guards)).values(**changes, updated_at=now))
    applied = result.rowcount == 1

    if applied:
        for field in ("status", "payment_status"):
            if field in changes and changes[field] != expected.get(field):
                booking_transitions.labels(field=field, to_state=changes[field]).inc()
    return applied


def add_sent_flag(conn: Connection, booking_id: str, notification_key: str) -> bool:
    """
    Record that a notification was delivered.

    Returns:
        bool: True if the flag was new, False if it was already set
    """
    return insert_ignore_conflict(
        conn,
        BookingNotification,
        {"booking_id": booking_id, "notification_key": notification_key},
        ["booking_id", "notification_key"],
    )


def delete_cancelled_booking(conn: Connection, booking_id: str) -> bool:
    """
    Hard-delete a booking, but only if it is already cancelled.

    Returns:
        bool: True if a row was deleted
    """
    result = conn.execute(
        delete(Booking).where(
            and_(Booking.booking_id == booking_id, Booking.status == "cancelled")
        )
    )
    if result.rowcount != 1:
        return False

    # Postgres cascades; SQLite does not enforce foreign keys by default
    conn.execute(
        delete(BookingNotification).where(BookingNotification.booking_id == booking_id)
    )
    return True
