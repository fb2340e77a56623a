"""
Notification template rendering.

Templates are admin-editable Jinja2 HTML: ``{{ guestName }}`` placeholders and
``{% if isTransfer %}...{% else %}...{% endif %}`` blocks. Bodies render in a
sandboxed, autoescaping environment, so guest-supplied values are escaped and
never evaluated as template syntax. Subjects are plain text and render without
escaping.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional

from jinja2 import TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from stay_booking.errors import ValidationError
from stay_booking.utils.datetime import to_local

DEFAULT_DAYS_RESERVED = 3

PAYMENT_METHOD_LABELS = {"transfer": "Bank transfer", "card": "Credit card"}

BASIC_STYLE = (
    "body { font-family: 'Microsoft JhengHei', Arial, sans-serif; line-height: 1.8; color: #333;"
    " max-width: 600px; margin: 0 auto; padding: 20px; }"
    " h1, h2, h3 { color: #333; } p { margin: 10px 0; } ul, ol { padding-left: 30px; }"
)

_body_env = SandboxedEnvironment(autoescape=True)
_subject_env = SandboxedEnvironment(autoescape=False)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def format_amount(value: Any) -> str:
    """Render a currency amount with thousands separators (12500 -> '12,500')."""
    try:
        return f"{int(value or 0):,}"
    except (TypeError, ValueError):
        return str(value)


def format_date(value: Any) -> str:
    if isinstance(value, datetime):
        value = to_local(value).date()
    if isinstance(value, date):
        return f"{value.year}/{value.month}/{value.day}"
    return str(value or "")


def format_datetime(value: Any) -> str:
    if isinstance(value, datetime):
        local = to_local(value)
        return f"{local.year}/{local.month}/{local.day} {local:%H:%M:%S}"
    return str(value or "")


def payment_amount_label(booking: Mapping[str, Any]) -> str:
    if booking.get("payment_amount") == "deposit":
        return f"Deposit ({booking.get('deposit_percentage') or 30}%)"
    return "Full payment"


def addons_list_text(addons: Optional[list[dict[str, Any]]]) -> str:
    """One line per addon: ``Breakfast x2 (NT$ 600)``."""
    parts = []
    for addon in addons or []:
        quantity = int(addon.get("quantity") or 1)
        line_total = int(addon.get("price") or 0) * quantity
        label = addon.get("display_name") or addon.get("name") or ""
        parts.append(f"{label} x{quantity} (NT$ {line_total:,})")
    return ", ".join(parts)


def build_context(
    booking: Mapping[str, Any],
    bank_info: Optional[Mapping[str, Any]] = None,
    days_reserved: int = DEFAULT_DAYS_RESERVED,
    extra: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """
    Build the template context for a booking.

    Display values are preformatted strings; ``has*``/``is*`` entries are
    booleans for ``{% if %}`` blocks. Bank fields are plain strings, so
    ``{% if bankName %}`` tests whether one is set.

    Args:
        booking: Booking columns as returned by the store
        bank_info: Transfer details (bankName, bankBranch, account, accountName)
        days_reserved: Transfer reservation window, used for the payment deadline
        extra: Additional variables that override computed ones

    Returns:
        dict: Template context
    """
    bank = dict(bank_info or booking.get("bank_info") or {})
    total_amount = int(booking.get("total_amount") or 0)
    final_amount = int(booking.get("final_amount") or 0)
    booking_id = str(booking.get("booking_id") or "")
    created_at = booking.get("created_at")
    addons_text = addons_list_text(booking.get("addons"))

    check_in = booking.get("check_in_date")
    check_out = booking.get("check_out_date")
    nights = booking.get("nights")
    if not nights and isinstance(check_in, date) and isinstance(check_out, date):
        nights = max(1, (check_out - check_in).days)

    deadline = ""
    if isinstance(created_at, datetime):
        deadline = format_date(created_at + timedelta(days=days_reserved))

    context: dict[str, Any] = {
        "guestName": booking.get("guest_name") or "",
        "bookingId": booking_id,
        "bookingIdLast5": booking_id[-5:],
        "checkInDate": format_date(check_in),
        "checkOutDate": format_date(check_out),
        "roomType": booking.get("room_type_display") or booking.get("room_type") or "",
        "nights": str(nights or ""),
        "pricePerNight": format_amount(booking.get("price_per_night")),
        "totalAmount": format_amount(total_amount),
        "finalAmount": format_amount(final_amount),
        "remainingAmount": format_amount(max(total_amount - final_amount, 0)),
        "discountAmount": format_amount(booking.get("discount_amount")),
        "bankName": bank.get("bankName") or "",
        "bankBranch": bank.get("bankBranch") or "",
        "bankBranchDisplay": f" - {bank['bankBranch']}" if bank.get("bankBranch") else "",
        "bankAccount": bank.get("account") or "",
        "accountName": bank.get("accountName") or "",
        "daysReserved": str(days_reserved),
        "paymentDeadline": deadline,
        "addonsList": addons_text,
        "addonsTotal": format_amount(booking.get("addons_total")),
        "paymentMethod": PAYMENT_METHOD_LABELS.get(
            booking.get("payment_method") or "", booking.get("payment_method") or ""
        ),
        "paymentAmount": payment_amount_label(booking),
        "guestPhone": booking.get("guest_phone") or "",
        "guestEmail": booking.get("guest_email") or "",
        "bookingDate": format_date(created_at),
        "bookingDateTime": format_datetime(created_at),
        "hasAddons": bool(addons_text.strip()),
        "hasBankInfo": bool(bank.get("account")),
        "hasDiscount": int(booking.get("discount_amount") or 0) > 0,
        "isDeposit": booking.get("payment_amount") == "deposit",
        "isTransfer": booking.get("payment_method") == "transfer",
    }
    context["bankInfo"] = context["hasBankInfo"]
    for key, value in (extra or {}).items():
        context[key] = str(value)
    return context


def validate_template(subject: str, content: str) -> None:
    """
    Compile a subject and body without rendering them.

    Raises:
        ValidationError: Either part is not valid template syntax
    """
    for field, env, source in (
        ("subject", _subject_env, subject),
        ("content", _body_env, content),
    ):
        try:
            env.parse(source)
        except TemplateSyntaxError as e:
            raise ValidationError(f"Template syntax error on line {e.lineno}: {e.message}", field)


def ensure_html_document(content: str, footer: str = "") -> str:
    """Wrap fragments in a minimal HTML document and insert the footer before ``</body>``."""
    if "<html" not in content.lower():
        content = (
            '<!DOCTYPE html>\n<html>\n<head>\n<meta charset="UTF-8">\n'
            f"<style>{BASIC_STYLE}</style>\n</head>\n<body>\n{content}\n</body>\n</html>"
        )
    if footer:
        if "</body>" in content:
            content = content.replace("</body>", f"{footer}</body>", 1)
        else:
            content = content + footer
    return content


def hotel_footer(settings: Mapping[str, Optional[str]]) -> str:
    """Contact footer built from the hotel_* settings; empty if none are set."""
    lines = [
        html.escape(value)
        for value in (
            settings.get("hotel_name"),
            settings.get("hotel_address"),
            settings.get("hotel_phone"),
            settings.get("hotel_email"),
        )
        if value
    ]
    if not lines:
        return ""
    return (
        '<div class="footer" style="margin-top:30px;font-size:13px;color:#666;">'
        + "<br>".join(lines)
        + "</div>"
    )


def render_template(
    template: Mapping[str, Any],
    booking: Mapping[str, Any],
    bank_info: Optional[Mapping[str, Any]] = None,
    days_reserved: int = DEFAULT_DAYS_RESERVED,
    extra: Optional[Mapping[str, Any]] = None,
    footer: str = "",
) -> RenderedEmail:
    """
    Render a stored template for one booking.

    Args:
        template: Template row (needs ``subject`` and ``content``)
        booking: Booking columns
        bank_info: Transfer details to show, defaults to the booking's snapshot
        days_reserved: Transfer reservation window for ``paymentDeadline``
        extra: Additional variables
        footer: HTML inserted before ``</body>``

    Returns:
        RenderedEmail: Subject and HTML body

    Example:
        >>> rendered = render_template(
        ...     {"subject": "Booking {{ bookingId }}", "content": "<p>Hi {{ guestName }}</p>"},
        ...     {"booking_id": "BK12345678", "guest_name": "Lin"},
        ... )
        >>> rendered.subject
        'Booking BK12345678'
    """
    context = build_context(booking, bank_info, days_reserved, extra)

    body = _body_env.from_string(str(template["content"])).render(context)
    subject = _subject_env.from_string(str(template["subject"])).render(context)

    return RenderedEmail(subject=subject.strip(), html=ensure_html_document(body, footer))
