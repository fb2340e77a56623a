"""
Template-driven notification delivery with per-booking sent-flags.

``NotificationService.send_template`` is the one path every mail takes:
booking confirmations, payment receipts and the scheduled reminders. It
skips bookings whose sent-flag is already set and records the flag only
after a transport reported success, so a failed send is retried by the next
run instead of being lost or duplicated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.engine import Engine

from stay_booking.db.readers.catalog import get_email_template, list_email_templates
from stay_booking.db.store import BookingStore
from stay_booking.db.writers.catalog import reset_email_templates, update_email_template
from stay_booking.errors import NotFoundError, ValidationError
from stay_booking.metrics import emails_sent
from stay_booking.notifications.defaults import DEFAULT_TEMPLATES, PAYMENT_REMINDER
from stay_booking.notifications.templates import (
    DEFAULT_DAYS_RESERVED,
    hotel_footer,
    render_template,
    validate_template,
)
from stay_booking.notifications.transports import EmailMessage, Notifier
from stay_booking.services.settings import load_booking_settings
from stay_booking.utils.datetime import to_local

logger = structlog.get_logger(__name__)

_EMAIL_LIKE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class NotificationOutcome:
    template_key: str
    booking_id: str
    sent: bool
    skipped: Optional[str] = None  # already_sent | template_disabled | no_recipient
    error: Optional[str] = None
    transport: Optional[str] = None

    @property
    def failed(self) -> bool:
        return not self.sent and self.skipped is None


class NotificationService:
    """
    Renders templates for bookings and dispatches them through a Notifier.

    Args:
        engine: Engine for template and settings reads
        store: Booking store for sent-flags
        notifier: Ordered mail transports
    """

    def __init__(self, engine: Engine, store: BookingStore, notifier: Notifier) -> None:
        self.engine = engine
        self.store = store
        self.notifier = notifier

    def get_template(self, template_key: str) -> Optional[dict[str, Any]]:
        """Return the template if it exists and is enabled."""
        with self.engine.connect() as conn:
            template = get_email_template(conn, template_key)
        if template is None or not template["is_enabled"]:
            return None
        return template

    def days_reserved(self) -> int:
        """Transfer reservation window, taken from the payment_reminder template."""
        with self.engine.connect() as conn:
            template = get_email_template(conn, PAYMENT_REMINDER)
        if template and template.get("days_reserved"):
            return int(template["days_reserved"])
        return DEFAULT_DAYS_RESERVED

    def send_template(
        self,
        template_key: str,
        booking: Mapping[str, Any],
        to: Optional[str] = None,
        track: bool = True,
        template: Optional[Mapping[str, Any]] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> NotificationOutcome:
        """
        Render and send one template for one booking.

        Args:
            template_key: Template to render
            booking: Booking columns
            to: Recipient, defaults to the guest
            track: Honour and set the sent-flag for ``template_key``
            template: Pre-loaded template row (scheduled jobs load it once per run)
            extra: Additional template variables

        Returns:
            NotificationOutcome: What happened; delivery failures are reported, not raised
        """
        booking_id = str(booking["booking_id"])
        log = logger.bind(template=template_key, booking_id=booking_id)

        if track and template_key in self.store.sent_flags(booking_id):
            log.info("notification_already_sent")
            emails_sent.labels(template=template_key, outcome="skipped").inc()
            return NotificationOutcome(template_key, booking_id, sent=False, skipped="already_sent")

        if template is None:
            template = self.get_template(template_key)
        if template is None:
            log.info("notification_template_disabled")
            emails_sent.labels(template=template_key, outcome="skipped").inc()
            return NotificationOutcome(
                template_key, booking_id, sent=False, skipped="template_disabled"
            )

        recipient = to or booking.get("guest_email")
        if not recipient:
            log.warning("notification_no_recipient")
            emails_sent.labels(template=template_key, outcome="skipped").inc()
            return NotificationOutcome(template_key, booking_id, sent=False, skipped="no_recipient")

        with self.engine.connect() as conn:
            settings = load_booking_settings(conn)
        rendered = render_template(
            template,
            booking,
            bank_info=booking.get("bank_info") or settings.bank_info,
            days_reserved=self.days_reserved(),
            extra=extra,
            footer=hotel_footer(settings.hotel),
        )

        result = self.notifier.send(
            EmailMessage(to=recipient, subject=rendered.subject, html=rendered.html)
        )
        if not result.success:
            log.warning("notification_failed", error=result.error, attempts=list(result.attempts))
            emails_sent.labels(template=template_key, outcome="failed").inc()
            return NotificationOutcome(
                template_key, booking_id, sent=False, error=result.error, transport=result.transport
            )

        if track:
            self.store.add_sent_flag(booking_id, template_key)
        emails_sent.labels(template=template_key, outcome="sent").inc()
        log.info("notification_sent", transport=result.transport, to=recipient)
        return NotificationOutcome(template_key, booking_id, sent=True, transport=result.transport)

    # ------------------------------------------------------------------
    # Template administration
    # ------------------------------------------------------------------

    def list_templates(self) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return list_email_templates(conn)

    def load_template(self, template_key: str) -> dict[str, Any]:
        """
        Fetch a template whether or not it is enabled.

        Raises:
            NotFoundError: Unknown template key
        """
        with self.engine.connect() as conn:
            template = get_email_template(conn, template_key)
        if template is None:
            raise NotFoundError(f"Email template not found: {template_key}")
        return template

    def save_template(self, template_key: str, values: Mapping[str, Any]) -> dict[str, Any]:
        """
        Validate and store an edited template.

        Args:
            template_key: Template to overwrite
            values: ``template_name``, ``subject`` and ``content`` plus any timing columns

        Returns:
            dict: The stored template

        Raises:
            ValidationError: Missing text, an email address used as name or subject,
                or template syntax errors
            NotFoundError: Unknown template key
        """
        for field in ("template_name", "subject", "content"):
            if not str(values.get(field) or "").strip():
                raise ValidationError(f"{field} is required", field=field)
            if field != "content" and _EMAIL_LIKE.match(str(values[field]).strip()):
                raise ValidationError(f"{field} cannot be an email address", field=field)
        validate_template(str(values["subject"]), str(values["content"]))

        if not update_email_template(self.engine, template_key, dict(values)):
            raise NotFoundError(f"Email template not found: {template_key}")
        return self.load_template(template_key)

    def reset_templates(self) -> list[dict[str, Any]]:
        """Restore every default template; custom keys are left alone."""
        reset_email_templates(self.engine, DEFAULT_TEMPLATES)
        return self.list_templates()

    def send_test(
        self,
        template_key: str,
        to: str,
        now: datetime,
        subject: Optional[str] = None,
        content: Optional[str] = None,
    ) -> NotificationOutcome:
        """
        Render a template against sample booking data and mail it to ``to``.

        ``subject``/``content`` replace the stored text, so unsaved edits can
        be previewed. Nothing is tracked.

        Raises:
            NotFoundError: Unknown template key
            ValidationError: Invalid recipient or template syntax
        """
        if not _EMAIL_LIKE.match(to.strip()):
            raise ValidationError("A valid email address is required", field="email")

        template = dict(self.load_template(template_key))
        if subject and content:
            validate_template(subject, content)
            template.update(subject=subject, content=content)

        logger.info("template_test_requested", template=template_key, to=to)
        return self.send_template(
            template_key, sample_booking(now), to=to.strip(), track=False, template=template
        )


def sample_booking(now: datetime) -> dict[str, Any]:
    """Placeholder booking used for template previews, a week from ``now``."""
    check_in = to_local(now).date() + timedelta(days=7)
    return {
        "booking_id": "BK00000000",
        "guest_name": "Sample Guest",
        "guest_email": "guest@example.com",
        "guest_phone": "0912345678",
        "check_in_date": check_in,
        "check_out_date": check_in + timedelta(days=2),
        "room_type": "standard",
        "room_type_display": "Standard Double",
        "nights": 2,
        "price_per_night": 2250,
        "addons": [{"name": "breakfast", "display_name": "Breakfast", "price": 300, "quantity": 2}],
        "addons_total": 600,
        "discount_amount": 0,
        "total_amount": 5100,
        "final_amount": 1530,
        "payment_method": "transfer",
        "payment_amount": "deposit",
        "deposit_percentage": 30,
        "created_at": now,
    }
