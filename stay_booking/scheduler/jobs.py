"""
Daily notification jobs.

Each job selects its candidates from the booking store for one business-local
"today", then handles them one at a time. A failure on one booking is logged
as a SchedulerItemError and counted; the rest of the batch still runs.

The three reminder jobs rely on the sent-flag kept by NotificationService, so
running a job twice on the same day mails nobody twice. The expiry sweep
cancels through BookingService.expire, whose compare-and-set never touches a
booking that got paid in the meantime.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping, Optional

import structlog

from stay_booking.db.readers.bookings import BookingFilter
from stay_booking.errors import SchedulerItemError, TransportError
from stay_booking.metrics import job_duration, job_items
from stay_booking.notifications.defaults import (
    CANCEL_NOTIFICATION,
    CHECKIN_REMINDER,
    FEEDBACK_REQUEST,
    PAYMENT_REMINDER,
)
from stay_booking.notifications.service import NotificationService
from stay_booking.services.bookings import BookingService
from stay_booking.utils.datetime import local_midnight_utc, to_local

logger = structlog.get_logger(__name__)

EXPIRY_SWEEP = "expiry_sweep"

DEFAULT_DAYS_BEFORE_CHECKIN = 1
DEFAULT_DAYS_AFTER_CHECKOUT = 1


@dataclass
class JobReport:
    """Counts for one job run. ``skipped_run`` is set when nothing was attempted."""

    job: str
    today: date
    candidates: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0
    skipped_run: Optional[str] = None
    errors: list[SchedulerItemError] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "today": self.today.isoformat(),
            "candidates": self.candidates,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "skipped_run": self.skipped_run,
        }


def _template_int(template: Mapping[str, Any], column: str, default: int) -> int:
    value = template.get(column)
    return int(value) if value is not None else default


class NotificationJobs:
    """
    The four scheduled jobs, each callable for an arbitrary ``now``.

    Args:
        bookings: State machine, used for expiry and for store access
        notifications: Template delivery with sent-flags
    """

    def __init__(self, bookings: BookingService, notifications: NotificationService) -> None:
        self.bookings = bookings
        self.notifications = notifications

    @property
    def store(self):
        return self.bookings.store

    def run(self, job: str, now: datetime) -> JobReport:
        """Run one job by name. Raises KeyError for an unknown job."""
        handlers = {
            PAYMENT_REMINDER: self.payment_reminders,
            CHECKIN_REMINDER: self.checkin_reminders,
            FEEDBACK_REQUEST: self.feedback_requests,
            EXPIRY_SWEEP: self.expiry_sweep,
        }
        handler = handlers[job]
        with job_duration.labels(job=job).time():
            report = handler(now)
        logger.info("job_finished", **report.as_dict())
        return report

    # ------------------------------------------------------------------
    # Reminder jobs
    # ------------------------------------------------------------------

    def payment_reminders(self, now: datetime) -> JobReport:
        """
        Remind transfer guests on the last day of their reservation window.

        A booking created on local day D is reminded on D + days_reserved.
        """
        today = to_local(now).date()
        report = JobReport(job=PAYMENT_REMINDER, today=today)
        template = self._load_template(PAYMENT_REMINDER, report)
        if template is None:
            return report

        days_reserved = self.notifications.days_reserved()
        created_on = today - timedelta(days=days_reserved)
        candidates = self.store.find(
            BookingFilter(
                status="reserved",
                payment_status="pending",
                payment_method="transfer",
                created_on_or_after=local_midnight_utc(created_on),
                created_before=local_midnight_utc(created_on + timedelta(days=1)),
            )
        )
        self._send_batch(report, template, candidates)
        return report

    def checkin_reminders(self, now: datetime) -> JobReport:
        """Remind paid guests ``days_before_checkin`` days before arrival."""
        today = to_local(now).date()
        report = JobReport(job=CHECKIN_REMINDER, today=today)
        template = self._load_template(CHECKIN_REMINDER, report)
        if template is None:
            return report

        days = _template_int(template, "days_before_checkin", DEFAULT_DAYS_BEFORE_CHECKIN)
        candidates = self.store.find(
            BookingFilter(
                status="active",
                payment_status="paid",
                check_in_on=today + timedelta(days=days),
            )
        )
        self._send_batch(report, template, candidates)
        return report

    def feedback_requests(self, now: datetime) -> JobReport:
        """Ask for feedback ``days_after_checkout`` days after departure."""
        today = to_local(now).date()
        report = JobReport(job=FEEDBACK_REQUEST, today=today)
        template = self._load_template(FEEDBACK_REQUEST, report)
        if template is None:
            return report

        days = _template_int(template, "days_after_checkout", DEFAULT_DAYS_AFTER_CHECKOUT)
        candidates = self.store.find(
            BookingFilter(status="active", check_out_on=today - timedelta(days=days))
        )
        self._send_batch(report, template, candidates)
        return report

    def _load_template(self, template_key: str, report: JobReport) -> Optional[dict[str, Any]]:
        template = self.notifications.get_template(template_key)
        if template is None:
            report.skipped_run = "template_disabled"
            logger.info("job_skipped_template_disabled", job=report.job, template=template_key)
        return template

    def _send_batch(
        self,
        report: JobReport,
        template: Mapping[str, Any],
        candidates: Iterable[dict[str, Any]],
    ) -> None:
        for booking in candidates:
            report.candidates += 1
            try:
                outcome = self.notifications.send_template(
                    report.job, booking, template=template
                )
                if outcome.failed:
                    raise TransportError(outcome.error or "mail delivery failed")
            except Exception as e:
                self._record_failure(report, booking["booking_id"], e)
                continue

            if outcome.sent:
                report.sent += 1
                job_items.labels(job=report.job, outcome="sent").inc()
            else:
                report.skipped += 1
                job_items.labels(job=report.job, outcome="skipped").inc()

    def _record_failure(self, report: JobReport, booking_id: str, cause: Exception) -> None:
        error = SchedulerItemError(report.job, booking_id, cause)
        report.failed += 1
        report.errors.append(error)
        job_items.labels(job=report.job, outcome="failed").inc()
        logger.error(
            "job_item_failed",
            job=report.job,
            booking_id=booking_id,
            error=str(cause),
            error_type=type(cause).__name__,
        )

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def expiry_sweep(self, now: datetime) -> JobReport:
        """
        Cancel transfer reservations whose payment window has passed.

        Bookings created before ``now - days_reserved`` that are still
        reserved and unpaid are cancelled one by one, then told so with
        ``cancel_notification`` (if that template is enabled). A booking
        paid between selection and cancellation is left alone.
        """
        report = JobReport(job=EXPIRY_SWEEP, today=to_local(now).date())
        days_reserved = self.notifications.days_reserved()
        candidates = self.store.find(
            BookingFilter(
                status="reserved",
                payment_status="pending",
                payment_method="transfer",
                created_before=now - timedelta(days=days_reserved),
            )
        )
        cancel_template = self.notifications.get_template(CANCEL_NOTIFICATION)

        for booking in candidates:
            report.candidates += 1
            booking_id = booking["booking_id"]
            try:
                if not self.bookings.expire(booking_id):
                    logger.info("expiry_skipped_changed", booking_id=booking_id)
                    report.skipped += 1
                    job_items.labels(job=EXPIRY_SWEEP, outcome="skipped").inc()
                    continue
                report.cancelled += 1
                job_items.labels(job=EXPIRY_SWEEP, outcome="cancelled").inc()

                if cancel_template is None:
                    continue
                outcome = self.notifications.send_template(
                    CANCEL_NOTIFICATION,
                    self.bookings.get(booking_id),
                    template=cancel_template,
                )
                if outcome.failed:
                    raise TransportError(outcome.error or "mail delivery failed")
                if outcome.sent:
                    report.sent += 1
            except Exception as e:
                self._record_failure(report, booking_id, e)

        return report
