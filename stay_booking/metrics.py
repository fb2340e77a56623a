"""
Prometheus metrics for the booking lifecycle.

Every metric here is exposed on the /metrics endpoint. Label values are kept
low-cardinality (status names, template keys, transport names); booking ids
never appear as labels.

Example:
    >>> from stay_booking.metrics import bookings_created, job_duration
    >>> bookings_created.labels(payment_method="transfer").inc()
    >>> with job_duration.labels(job="payment_reminder").time():
    ...     run_payment_reminders(...)
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Booking Metrics
# =============================================================================

bookings_created = Counter(
    "stay_bookings_created_total",
    "Total number of bookings created",
    ["payment_method"],
)
"""
Counter for created bookings.

Labels:
    payment_method: transfer or card
"""

booking_transitions = Counter(
    "stay_booking_transitions_total",
    "Booking state transitions actually applied",
    ["field", "to_state"],
)
"""
Counter for applied state transitions. Idempotent no-ops are not counted.

Labels:
    field: status or payment_status
    to_state: the new value (active, cancelled, paid)
"""

booking_conflicts = Counter(
    "stay_booking_conflicts_total",
    "Booking attempts rejected because the room type was already taken",
    ["room_type"],
)

# =============================================================================
# Payment Metrics
# =============================================================================

payment_callbacks = Counter(
    "stay_payment_callbacks_total",
    "Payment gateway callbacks received",
    ["entry_point", "outcome"],
)
"""
Counter for gateway callbacks.

Labels:
    entry_point: server (ReturnURL) or browser (OrderResultURL)
    outcome: paid, duplicate, failed, invalid_signature, amount_mismatch, not_found
"""

# =============================================================================
# Notification Metrics
# =============================================================================

emails_sent = Counter(
    "stay_emails_total",
    "Notification mails by template and outcome",
    ["template", "outcome"],
)
"""
Counter for notification mails.

Labels:
    template: template key (payment_reminder, checkin_reminder, ...)
    outcome: sent, skipped, failed
"""

transport_attempts = Counter(
    "stay_mail_transport_attempts_total",
    "Mail delivery attempts per transport",
    ["transport", "status"],
)

# =============================================================================
# Scheduler Metrics
# =============================================================================

job_duration = Histogram(
    "stay_job_duration_seconds",
    "Duration of scheduled job runs in seconds",
    ["job"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, float("inf")),
)
"""
Histogram for scheduled job duration.

Labels:
    job: payment_reminder, checkin_reminder, feedback_request, expiry_sweep
"""

job_items = Counter(
    "stay_job_items_total",
    "Candidates processed by scheduled jobs",
    ["job", "outcome"],
)
