# stay_booking/main.py

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stay_booking.config import ALLOWED_ORIGINS, SCHEDULER_ENABLED
from stay_booking.logging_config import setup_logging
from stay_booking.middleware import RequestIDMiddleware
from stay_booking.routes.admin import router as admin_router
from stay_booking.routes.bookings import router as bookings_router
from stay_booking.routes.health import router as health_router
from stay_booking.routes.metrics import router as metrics_router
from stay_booking.routes.payments import router as payments_router
from stay_booking.routes.pricing import router as pricing_router
from stay_booking.scheduler.runner import Scheduler

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Stay Booking API",
    description="Room booking, pricing, payment callbacks and guest notifications",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(pricing_router, prefix="/api", tags=["Pricing"])
app.include_router(bookings_router, prefix="/api", tags=["Bookings"])
app.include_router(payments_router, prefix="/api/payment", tags=["Payments"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])

scheduler: Optional[Scheduler] = None


def build_default_scheduler() -> Scheduler:
    """Wire the notification jobs to the process-wide engine and mail transports."""
    from stay_booking.db.engine import engine
    from stay_booking.db.store import SqlBookingStore
    from stay_booking.dependencies import get_notifier
    from stay_booking.notifications.service import NotificationService
    from stay_booking.scheduler.jobs import NotificationJobs
    from stay_booking.scheduler.runner import build_scheduler
    from stay_booking.services.bookings import BookingService

    store = SqlBookingStore(engine)
    notifications = NotificationService(engine, store, get_notifier())
    bookings = BookingService(engine, store, notifications)
    return build_scheduler(NotificationJobs(bookings, notifications), notifications)


@app.on_event("startup")
def startup_event() -> None:
    """Start the notification scheduler unless disabled."""
    global scheduler

    logger.info("FastAPI application starting up...")
    if SCHEDULER_ENABLED:
        scheduler = build_default_scheduler()
        scheduler.start()
    else:
        logger.info("scheduler_disabled")
    logger.info("FastAPI application initialized")


@app.on_event("shutdown")
def shutdown_event() -> None:
    if scheduler is not None:
        scheduler.stop(timeout=5)
