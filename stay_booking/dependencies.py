"""
FastAPI dependency injection providers.

Routes never build services themselves; they depend on these providers, which
tests replace through ``app.dependency_overrides`` (typically with services
wired to an in-memory SQLite engine, a fixed clock and a fake mail transport).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Generator

from fastapi import Depends
from sqlalchemy.engine import Engine

from stay_booking import config
from stay_booking.db.engine import engine
from stay_booking.db.store import SqlBookingStore
from stay_booking.notifications.service import NotificationService
from stay_booking.notifications.transports import Notifier, build_notifier_from_config
from stay_booking.payments.gateway import PaymentGateway, load_credentials
from stay_booking.services.bookings import BookingService
from stay_booking.utils.datetime import Clock, utc_now


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
    """
    yield engine


def get_clock() -> Clock:
    return utc_now


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    """Process-wide notifier built from the mail settings in the environment."""
    return build_notifier_from_config()


def get_booking_store(
    db_engine: Engine = Depends(get_db_engine),
    clock: Clock = Depends(get_clock),
) -> SqlBookingStore:
    return SqlBookingStore(db_engine, clock=clock)


def get_notification_service(
    db_engine: Engine = Depends(get_db_engine),
    store: SqlBookingStore = Depends(get_booking_store),
    notifier: Notifier = Depends(get_notifier),
) -> NotificationService:
    return NotificationService(db_engine, store, notifier)


def get_booking_service(
    db_engine: Engine = Depends(get_db_engine),
    store: SqlBookingStore = Depends(get_booking_store),
    notifications: NotificationService = Depends(get_notification_service),
    clock: Clock = Depends(get_clock),
) -> BookingService:
    return BookingService(db_engine, store, notifications, clock=clock)


def get_payment_gateway_factory(
    db_engine: Engine = Depends(get_db_engine),
    bookings: BookingService = Depends(get_booking_service),
    clock: Clock = Depends(get_clock),
) -> Callable[[], PaymentGateway]:
    """
    Deferred gateway construction for the gateway callbacks.

    Callback handlers call the factory inside their own error handling, so a
    credentials read that fails still produces the acknowledgement the gateway
    expects.
    """

    def build() -> PaymentGateway:
        with db_engine.connect() as conn:
            credentials = load_credentials(conn, config.PAYMENT_ENV)
        return PaymentGateway(credentials, bookings, clock=clock, base_url=config.PUBLIC_BASE_URL)

    return build


def get_payment_gateway(
    factory: Callable[[], PaymentGateway] = Depends(get_payment_gateway_factory),
) -> PaymentGateway:
    """
    Gateway for the configured PAYMENT_ENV.

    Credentials are read per request so merchant keys changed in the admin
    settings apply immediately.
    """
    return factory()
