"""
Booking Store: the persistence seam used by the state machine, the payment
gateway adapter and the scheduler.

``SqlBookingStore`` wraps the reader/writer functions, giving each call its
own transaction on the engine. Services depend on the ``BookingStore``
protocol so they can be driven against any engine (in tests, in-memory SQLite).
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import structlog
from sqlalchemy.engine import Engine

from stay_booking.db.readers.bookings import (
    BookingFilter,
    booking_id_exists,
    find_overlapping_bookings,
    get_booking,
    get_sent_notifications,
    list_bookings,
)
from stay_booking.db.writers.bookings import (
    add_sent_flag,
    compare_and_set,
    delete_cancelled_booking,
    insert_booking,
    update_booking_fields,
)
from stay_booking.errors import BookingConflictError
from stay_booking.metrics import booking_conflicts
from stay_booking.utils.datetime import Clock, utc_now

logger = structlog.get_logger(__name__)


class BookingStore(Protocol):
    def get(self, booking_id: str) -> Optional[dict[str, Any]]: ...

    def exists(self, booking_id: str) -> bool: ...

    def insert_if_available(self, row: dict[str, Any]) -> None: ...

    def reschedule(
        self, booking_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> bool: ...

    def find(self, criteria: BookingFilter) -> list[dict[str, Any]]: ...

    def update_fields(self, booking_id: str, changes: dict[str, Any]) -> bool: ...

    def compare_and_set(
        self, booking_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> bool: ...

    def sent_flags(self, booking_id: str) -> set[str]: ...

    def add_sent_flag(self, booking_id: str, notification_key: str) -> bool: ...

    def delete(self, booking_id: str) -> bool: ...


class SqlBookingStore:
    """BookingStore backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine, clock: Clock = utc_now) -> None:
        self.engine = engine
        self.clock = clock

    def get(self, booking_id: str) -> Optional[dict[str, Any]]:
        with self.engine.connect() as conn:
            return get_booking(conn, booking_id)

    def exists(self, booking_id: str) -> bool:
        with self.engine.connect() as conn:
            return booking_id_exists(conn, booking_id)

    def insert_if_available(self, row: dict[str, Any]) -> None:
        """
        Insert a booking unless its room type is already occupied on those dates.

        The overlap check and the insert share one transaction. Callers must
        also hold the room type's lock so two requests cannot both pass the check.

        Raises:
            BookingConflictError: If a reserved or active booking overlaps
            sqlalchemy.exc.IntegrityError: If ``booking_id`` is already taken
        """
        with self.engine.begin() as conn:
            clashes = find_overlapping_bookings(
                conn, row["room_type"], row["check_in_date"], row["check_out_date"]
            )
            if clashes:
                booking_conflicts.labels(room_type=row["room_type"]).inc()
                logger.info(
                    "booking_conflict",
                    room_type=row["room_type"],
                    check_in=str(row["check_in_date"]),
                    check_out=str(row["check_out_date"]),
                    conflicting=clashes,
                )
                raise BookingConflictError(
                    "The selected room is not available for these dates", field="roomType"
                )
            insert_booking(conn, row)

    def reschedule(
        self, booking_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> bool:
        """
        Move a booking to new dates or a new room type if the target is free.

        ``changes`` must carry the resulting ``room_type``, ``check_in_date`` and
        ``check_out_date``. The overlap check ignores the booking itself.

        Raises:
            BookingConflictError: If another booking occupies the target range
        """
        with self.engine.begin() as conn:
            clashes = find_overlapping_bookings(
                conn,
                changes["room_type"],
                changes["check_in_date"],
                changes["check_out_date"],
                exclude_booking_id=booking_id,
            )
            if clashes:
                booking_conflicts.labels(room_type=changes["room_type"]).inc()
                raise BookingConflictError(
                    "The selected room is not available for these dates", field="roomType"
                )
            return compare_and_set(conn, booking_id, expected, changes, self.clock())

    def find(self, criteria: BookingFilter) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return list_bookings(conn, criteria)

    def update_fields(self, booking_id: str, changes: dict[str, Any]) -> bool:
        with self.engine.begin() as conn:
            return update_booking_fields(conn, booking_id, changes, self.clock())

    def compare_and_set(
        self, booking_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> bool:
        with self.engine.begin() as conn:
            return compare_and_set(conn, booking_id, expected, changes, self.clock())

    def sent_flags(self, booking_id: str) -> set[str]:
        with self.engine.connect() as conn:
            return get_sent_notifications(conn, booking_id)

    def add_sent_flag(self, booking_id: str, notification_key: str) -> bool:
        with self.engine.begin() as conn:
            return add_sent_flag(conn, booking_id, notification_key)

    def delete(self, booking_id: str) -> bool:
        with self.engine.begin() as conn:
            return delete_cancelled_booking(conn, booking_id)
