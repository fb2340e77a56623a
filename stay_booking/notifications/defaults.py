"""Default notification templates, inserted by scripts/seed_defaults.py when missing."""

from typing import Any

PAYMENT_REMINDER = "payment_reminder"
CHECKIN_REMINDER = "checkin_reminder"
FEEDBACK_REQUEST = "feedback_request"
BOOKING_CONFIRMATION = "booking_confirmation"
BOOKING_CONFIRMATION_ADMIN = "booking_confirmation_admin"
PAYMENT_COMPLETED = "payment_completed"
CANCEL_NOTIFICATION = "cancel_notification"

_BOOKING_SUMMARY = """
<ul>
  <li>Booking number: <strong>{{bookingId}}</strong></li>
  <li>Room: {{roomType}}</li>
  <li>Check-in: {{checkInDate}}</li>
  <li>Check-out: {{checkOutDate}} ({{nights}} nights)</li>
  {% if hasAddons %}<li>Add-ons: {{addonsList}} (NT$ {{addonsTotal}})</li>{% endif %}
  {% if hasDiscount %}<li>Discount: NT$ {{discountAmount}}</li>{% endif %}
  <li>Total: NT$ {{totalAmount}}</li>
</ul>
"""

_TRANSFER_DETAILS = """
{% if hasBankInfo %}
<h3>Transfer details</h3>
<p>
  {% if bankName %}Bank: {{bankName}}{{bankBranchDisplay}}<br>{% endif %}
  Account: {{bankAccount}}<br>
  {% if accountName %}Account name: {{accountName}}<br>{% endif %}
  Amount due: NT$ {{finalAmount}}
</p>
<p>Please transfer by <strong>{{paymentDeadline}}</strong> and tell us the last five digits
of your account. Reservations left unpaid after {{daysReserved}} days are cancelled.</p>
{% else %}
<p>We will send transfer details separately.</p>
{% endif %}
"""

DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "template_key": BOOKING_CONFIRMATION,
        "template_name": "Booking confirmation",
        "subject": "[Booking confirmed] {{bookingId}}",
        "content": (
            "<h2>Thank you, {{guestName}}</h2>"
            "<p>Your booking has been received.</p>"
            + _BOOKING_SUMMARY
            + "<p>Payment: {{paymentMethod}}, {{paymentAmount}}</p>"
            "{% if isDeposit %}<p>Deposit due now: NT$ {{finalAmount}}; "
            "balance of NT$ {{remainingAmount}} payable at check-in.</p>{% endif %}"
            "{% if isTransfer %}" + _TRANSFER_DETAILS + "{% endif %}"
        ),
    },
    {
        "template_key": BOOKING_CONFIRMATION_ADMIN,
        "template_name": "New booking (admin)",
        "subject": "[New booking] {{guestName}} - {{bookingId}}",
        "content": (
            "<h2>New booking {{bookingId}}</h2>"
            "<p>Guest: {{guestName}} / {{guestPhone}} / {{guestEmail}}</p>"
            + _BOOKING_SUMMARY
            + "<p>Payment: {{paymentMethod}}, {{paymentAmount}}, due now NT$ {{finalAmount}}</p>"
            "<p>Booked at {{bookingDateTime}}</p>"
        ),
    },
    {
        "template_key": PAYMENT_REMINDER,
        "template_name": "Transfer payment reminder",
        "subject": "[Payment reminder] Booking {{bookingId}} expires today",
        "content": (
            "<h2>Hello {{guestName}}</h2>"
            "<p>Today is the last day to pay for booking {{bookingId}}.</p>"
            + _TRANSFER_DETAILS
        ),
        "days_reserved": 3,
        "send_hour_payment_reminder": 9,
    },
    {
        "template_key": PAYMENT_COMPLETED,
        "template_name": "Payment received",
        "subject": "[Payment received] {{bookingId}}",
        "content": (
            "<h2>Hello {{guestName}}</h2>"
            "<p>We have received NT$ {{finalAmount}} for booking {{bookingId}}.</p>"
            "{% if isDeposit %}<p>The balance of NT$ {{remainingAmount}} is payable at check-in."
            "</p>{% endif %}" + _BOOKING_SUMMARY
        ),
    },
    {
        "template_key": CHECKIN_REMINDER,
        "template_name": "Check-in reminder",
        "subject": "[Check-in reminder] See you on {{checkInDate}}",
        "content": (
            "<h2>Hello {{guestName}}</h2>"
            "<p>This is a reminder that your stay begins on {{checkInDate}}.</p>"
            + _BOOKING_SUMMARY
            + "{% if isDeposit %}<p>Please bring the balance of NT$ {{remainingAmount}}.</p>"
            "{% endif %}"
        ),
        "days_before_checkin": 1,
        "send_hour_checkin": 9,
    },
    {
        "template_key": FEEDBACK_REQUEST,
        "template_name": "Feedback request",
        "subject": "How was your stay, {{guestName}}?",
        "content": (
            "<h2>Thank you for staying with us</h2>"
            "<p>We hope you enjoyed your {{nights}} nights in the {{roomType}}. "
            "We would love to hear about your stay.</p>"
        ),
        "days_after_checkout": 1,
        "send_hour_feedback": 10,
    },
    {
        "template_key": CANCEL_NOTIFICATION,
        "template_name": "Reservation cancelled",
        "subject": "[Booking cancelled] {{bookingId}}",
        "content": (
            "<h2>Hello {{guestName}}</h2>"
            "<p>Booking {{bookingId}} ({{checkInDate}} - {{checkOutDate}}) was cancelled because "
            "payment was not received within {{daysReserved}} days.</p>"
            "<p>You are welcome to book again at any time.</p>"
        ),
    },
]
