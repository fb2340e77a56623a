"""
Domain exceptions for the booking lifecycle.

Routes translate these into HTTP status codes; the scheduler catches them per
item so one bad booking never stops a batch.
"""


class BookingError(Exception):
    """Base class for every error raised by the booking engine."""


class ValidationError(BookingError):
    """A request or patch was rejected before anything was persisted."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidRangeError(ValidationError):
    """Check-out is not after check-in, or the stay is otherwise out of range."""


class BookingConflictError(ValidationError):
    """The room type is already occupied for part of the requested dates."""


class NotFoundError(BookingError):
    """A booking, room type or template does not exist."""


class SignatureError(BookingError):
    """A gateway payload failed check value verification."""


class TransportError(BookingError):
    """Every configured mail transport failed for a message."""


class SchedulerItemError(BookingError):
    """A single candidate in a scheduled job could not be processed."""

    def __init__(self, job: str, booking_id: str, cause: Exception) -> None:
        super().__init__(f"{job} failed for {booking_id}: {cause}")
        self.job = job
        self.booking_id = booking_id
        self.cause = cause
