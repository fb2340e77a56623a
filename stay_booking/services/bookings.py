"""
Booking state machine.

Owns creation and every status change of a booking:

    status:          reserved -> active -> cancelled   (reserved -> cancelled too)
    payment_status:  pending  -> paid

Both fields only move forward, and every change is a compare-and-set against
the values the caller saw, so a payment callback, an admin edit and the
expiry sweep can run concurrently without a booking regressing. Mail goes out
after the state change is committed; a mail failure never undoes it.
"""

from __future__ import annotations

import re
import secrets
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from stay_booking.db.readers.catalog import get_addons_by_name, get_promo_code
from stay_booking.db.store import BookingStore
from stay_booking.errors import BookingConflictError, NotFoundError, ValidationError
from stay_booking.metrics import bookings_created
from stay_booking.notifications.defaults import (
    BOOKING_CONFIRMATION,
    BOOKING_CONFIRMATION_ADMIN,
    PAYMENT_COMPLETED,
)
from stay_booking.notifications.service import NotificationService
from stay_booking.pricing.engine import (
    AddonLine,
    BookingTotals,
    Discount,
    compute_booking_totals,
)
from stay_booking.services.pricing import quote_stay
from stay_booking.services.settings import load_booking_settings
from stay_booking.utils.datetime import Clock, local_today, utc_now

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^09\d{8}$")  # Taiwan mobile, separators removed

PAYMENT_METHODS = ("transfer", "card")
BOOKING_ID_ATTEMPTS = 5

ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "reserved": frozenset({"active", "cancelled"}),
    "active": frozenset({"cancelled"}),
    "cancelled": frozenset(),
}
ALLOWED_PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"paid"}),
    "paid": frozenset(),
}

PATCHABLE_FIELDS = frozenset(
    {
        "guest_name",
        "guest_phone",
        "guest_email",
        "adults",
        "children",
        "check_in_date",
        "check_out_date",
        "room_type",
        "payment_amount",
        "payment_method",
        "status",
        "payment_status",
    }
)
# Fields whose change requires pricing the stay again
PRICING_FIELDS = frozenset({"check_in_date", "check_out_date", "room_type", "payment_amount"})

# One lock per room type, shared by every BookingService in the process
_room_locks: dict[str, threading.Lock] = {}
_room_locks_guard = threading.Lock()


def room_lock(room_type: str) -> threading.Lock:
    """Return the process-wide lock serializing availability checks for a room type."""
    with _room_locks_guard:
        lock = _room_locks.get(room_type)
        if lock is None:
            lock = _room_locks[room_type] = threading.Lock()
        return lock


def generate_booking_id() -> str:
    """``BK`` followed by eight random digits."""
    return f"BK{secrets.randbelow(10**8):08d}"


def normalize_phone(raw: str) -> str:
    return re.sub(r"[-\s]", "", raw or "").strip()


def booked_addons(booking: dict[str, Any]) -> list[AddonLine]:
    """Addon lines at the prices stored on the booking."""
    return [
        AddonLine(
            name=item["name"],
            display_name=item.get("display_name") or item["name"],
            price=int(item.get("price") or 0),
            quantity=int(item.get("quantity") or 1),
        )
        for item in booking.get("addons") or []
    ]


def booked_discount(booking: dict[str, Any]) -> Optional[Discount]:
    """
    The promo terms stored on the booking.

    Rows written before the terms were stored only carry the amount; that
    amount is kept as a fixed discount.
    """
    code = booking.get("promo_code")
    if not code:
        return None
    if booking.get("discount_type") and booking.get("discount_value") is not None:
        return Discount(
            code=code,
            discount_type=booking["discount_type"],
            value=int(booking["discount_value"]),
        )
    if int(booking.get("discount_amount") or 0) > 0:
        return Discount(code=code, discount_type="fixed", value=int(booking["discount_amount"]))
    return None


@dataclass
class BookingRequest:
    check_in: date
    check_out: date
    room_type: str
    guest_name: str
    guest_phone: str
    guest_email: str
    payment_method: str
    payment_amount: str = "full"
    adults: int = 0
    children: int = 0
    addons: list[dict[str, Any]] = field(default_factory=list)  # [{"name": ..., "quantity": ...}]
    promo_code: Optional[str] = None
    client_totals: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreateResult:
    booking: dict[str, Any]
    email_sent: bool
    email_error: Optional[str] = None


@dataclass(frozen=True)
class TransitionResult:
    booking: dict[str, Any]
    changed: bool


class BookingService:
    """
    Creates bookings and applies status transitions.

    Args:
        engine: Engine for catalog and settings reads
        store: Booking persistence
        notifications: Template mail delivery
        clock: Current-time source; tests inject a fixed one
    """

    def __init__(
        self,
        engine: Engine,
        store: BookingStore,
        notifications: NotificationService,
        clock: Clock = utc_now,
    ) -> None:
        self.engine = engine
        self.store = store
        self.notifications = notifications
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, booking_id: str) -> dict[str, Any]:
        booking = self.store.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking not found: {booking_id}")
        return booking

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def validate_request(self, request: BookingRequest) -> BookingRequest:
        """
        Check guest fields, payment options and dates; return a normalized copy.

        Raises:
            ValidationError: For the first invalid field
            InvalidRangeError: If check_out is not after check_in
        """
        name = (request.guest_name or "").strip()
        if not name or len(name) > 100:
            raise ValidationError("Guest name is required", field="guestName")

        email = (request.guest_email or "").strip().lower()
        if not EMAIL_PATTERN.match(email) or len(email) > 255:
            raise ValidationError("A valid email address is required", field="guestEmail")

        phone = normalize_phone(request.guest_phone)
        if not PHONE_PATTERN.match(phone):
            raise ValidationError("A valid mobile number is required", field="guestPhone")

        if request.payment_method not in PAYMENT_METHODS:
            raise ValidationError("Unknown payment method", field="paymentMethod")
        if request.payment_amount not in ("deposit", "full"):
            raise ValidationError(
                "paymentAmount must be 'deposit' or 'full'", field="paymentAmount"
            )
        if request.adults < 0 or request.children < 0:
            raise ValidationError("Guest counts cannot be negative", field="adults")

        today = local_today(self.clock)
        if request.check_in < today:
            raise ValidationError("Check-in date cannot be in the past", field="checkInDate")

        return BookingRequest(
            check_in=request.check_in,
            check_out=request.check_out,
            room_type=request.room_type.strip(),
            guest_name=name,
            guest_phone=phone,
            guest_email=email,
            payment_method=request.payment_method,
            payment_amount=request.payment_amount,
            adults=request.adults,
            children=request.children,
            addons=list(request.addons),
            promo_code=(request.promo_code or "").strip() or None,
            client_totals=dict(request.client_totals),
        )

    def price_request(
        self, request: BookingRequest, deposit_percentage: int
    ) -> BookingTotals:
        """Compute authoritative totals from database prices; client figures are ignored."""
        with self.engine.connect() as conn:
            try:
                quote = quote_stay(conn, request.check_in, request.check_out, request.room_type)
            except NotFoundError as e:
                raise ValidationError(str(e), field="roomType") from e

            lines = []
            if request.addons:
                known = get_addons_by_name(conn, [a.get("name", "") for a in request.addons])
                for item in request.addons:
                    addon = known.get(item.get("name", ""))
                    if addon is None:
                        raise ValidationError(f"Unknown addon: {item.get('name')}", field="addons")
                    lines.append(
                        AddonLine(
                            name=addon["name"],
                            display_name=addon["display_name"],
                            price=int(addon["price"]),
                            quantity=int(item.get("quantity") or 1),
                        )
                    )

            discount = None
            if request.promo_code:
                promo = get_promo_code(conn, request.promo_code)
                if promo is None:
                    raise ValidationError("Promo code is invalid or expired", field="promoCode")
                discount = Discount(
                    code=promo["code"],
                    discount_type=promo["discount_type"],
                    value=int(promo["discount_value"]),
                )

        return compute_booking_totals(
            quote,
            addons=lines,
            discount=discount,
            payment_amount=request.payment_amount,
            deposit_percentage=deposit_percentage,
        )

    def create(self, request: BookingRequest) -> CreateResult:
        """
        Validate, price and persist a booking in ``reserved/pending``.

        Transfer bookings get their confirmation mail now; card bookings get it
        once the gateway reports payment. The admin is notified either way.

        Args:
            request: Guest submission

        Returns:
            CreateResult: Persisted booking plus the outcome of the mail step

        Raises:
            ValidationError: Invalid input, disabled payment method or unknown room/addon/promo
            InvalidRangeError: Empty or overlong date range
            BookingConflictError: Room type already taken for those dates
        """
        request = self.validate_request(request)

        with self.engine.connect() as conn:
            settings = load_booking_settings(conn)
        if not settings.method_enabled(request.payment_method):
            raise ValidationError(
                f"Payment method '{request.payment_method}' is currently disabled",
                field="paymentMethod",
            )

        totals = self.price_request(request, settings.deposit_percentage)
        self._log_client_mismatch(request, totals)

        quote = totals.quote
        row: dict[str, Any] = {
            "check_in_date": request.check_in,
            "check_out_date": request.check_out,
            "room_type": quote.room.name,
            "room_type_display": quote.room.display_name,
            "guest_name": request.guest_name,
            "guest_phone": request.guest_phone,
            "guest_email": request.guest_email,
            "adults": request.adults,
            "children": request.children,
            "payment_amount": totals.payment_amount,
            "payment_method": request.payment_method,
            "deposit_percentage": totals.deposit_percentage,
            "price_per_night": quote.average_price_per_night,
            "nights": quote.nights,
            "addons": [line.as_dict() for line in totals.addons] or None,
            "addons_total": totals.addons_total,
            "promo_code": request.promo_code,
            "discount_type": totals.discount.discount_type if totals.discount else None,
            "discount_value": totals.discount.value if totals.discount else None,
            "discount_amount": totals.discount_amount,
            "total_amount": totals.total_amount,
            "final_amount": totals.final_amount,
            "bank_info": settings.bank_info if request.payment_method == "transfer" else None,
            "status": "reserved",
            "payment_status": "pending",
        }

        with room_lock(quote.room.name):
            booking_id = self._insert_with_unique_id(row)

        bookings_created.labels(payment_method=request.payment_method).inc()
        booking = self.get(booking_id)
        logger.info(
            "booking_created",
            booking_id=booking_id,
            room_type=quote.room.name,
            check_in=str(request.check_in),
            check_out=str(request.check_out),
            payment_method=request.payment_method,
            total_amount=totals.total_amount,
            final_amount=totals.final_amount,
        )

        email_sent, email_error = self._notify_created(booking, settings.admin_email)
        return CreateResult(booking=booking, email_sent=email_sent, email_error=email_error)

    def _insert_with_unique_id(self, row: dict[str, Any]) -> str:
        for attempt in range(1, BOOKING_ID_ATTEMPTS + 1):
            booking_id = generate_booking_id()
            if self.store.exists(booking_id):
                continue
            now = self.clock()
            try:
                self.store.insert_if_available(
                    {**row, "booking_id": booking_id, "created_at": now, "updated_at": now}
                )
            except IntegrityError:
                logger.warning("booking_id_collision", booking_id=booking_id, attempt=attempt)
                continue
            return booking_id
        raise RuntimeError("Could not allocate a unique booking id")

    def _log_client_mismatch(self, request: BookingRequest, totals: BookingTotals) -> None:
        submitted = request.client_totals
        computed = {
            "totalAmount": totals.total_amount,
            "finalAmount": totals.final_amount,
            "nights": totals.quote.nights,
            "pricePerNight": totals.quote.average_price_per_night,
        }
        differences = {
            key: {"submitted": submitted[key], "computed": value}
            for key, value in computed.items()
            if submitted.get(key) is not None and int(submitted[key]) != value
        }
        if differences:
            logger.info("client_totals_ignored", differences=differences)

    def _notify_created(
        self, booking: dict[str, Any], admin_email: Optional[str]
    ) -> tuple[bool, Optional[str]]:
        outcomes = []
        try:
            if booking["payment_method"] == "transfer":
                outcomes.append(self.notifications.send_template(BOOKING_CONFIRMATION, booking))
            if admin_email:
                outcomes.append(
                    self.notifications.send_template(
                        BOOKING_CONFIRMATION_ADMIN, booking, to=admin_email
                    )
                )
        except Exception as e:
            logger.exception("booking_notification_crashed", booking_id=booking["booking_id"])
            return False, str(e)

        errors = [o.error or o.skipped or "" for o in outcomes if not o.sent]
        if not outcomes:
            return False, "No notification was sent"
        if errors:
            return False, "; ".join(e for e in errors if e)
        return True, None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_paid(
        self,
        booking_id: str,
        trade_no: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Record payment; a reserved booking becomes active.

        Idempotent: a booking that is already paid is returned unchanged and
        no mail is sent. A cancelled booking is marked paid but stays
        cancelled; the guest gets no confirmation and the event is logged for
        manual follow-up.

        Raises:
            NotFoundError: Unknown booking id
        """
        booking = self.get(booking_id)
        if booking["payment_status"] == "paid":
            logger.info("mark_paid_noop", booking_id=booking_id)
            return TransitionResult(booking=booking, changed=False)

        payment_changes: dict[str, Any] = {
            "payment_status": "paid",
            "paid_at": paid_at or self.clock(),
        }
        if trade_no:
            payment_changes["gateway_trade_no"] = trade_no

        changed = self.store.compare_and_set(
            booking_id,
            {"status": "reserved", "payment_status": "pending"},
            {**payment_changes, "status": "active"},
        ) or self.store.compare_and_set(booking_id, {"payment_status": "pending"}, payment_changes)

        booking = self.get(booking_id)
        if not changed:
            logger.info("mark_paid_lost_race", booking_id=booking_id)
            return TransitionResult(booking=booking, changed=False)

        if booking["status"] == "cancelled":
            logger.warning("payment_for_cancelled_booking", booking_id=booking_id)
        logger.info(
            "booking_paid", booking_id=booking_id, status=booking["status"], trade_no=trade_no
        )

        self._notify_paid(booking)
        return TransitionResult(booking=booking, changed=True)

    def _notify_paid(self, booking: dict[str, Any]) -> None:
        if booking["status"] == "cancelled":
            logger.warning("payment_notification_skipped", booking_id=booking["booking_id"])
            return

        template_key = (
            BOOKING_CONFIRMATION if booking["payment_method"] == "card" else PAYMENT_COMPLETED
        )
        try:
            self.notifications.send_template(template_key, booking)
        except Exception:
            logger.exception(
                "payment_notification_crashed",
                booking_id=booking["booking_id"],
                template=template_key,
            )

    def cancel(self, booking_id: str) -> TransitionResult:
        """
        Cancel a booking from any non-terminal status. Idempotent.

        Raises:
            NotFoundError: Unknown booking id
        """
        for _ in range(3):
            booking = self.get(booking_id)
            if booking["status"] == "cancelled":
                return TransitionResult(booking=booking, changed=False)
            if self.store.compare_and_set(
                booking_id, {"status": booking["status"]}, {"status": "cancelled"}
            ):
                logger.info("booking_cancelled", booking_id=booking_id, previous=booking["status"])
                return TransitionResult(booking=self.get(booking_id), changed=True)
        raise BookingConflictError("Booking is changing concurrently, try again")

    def expire(self, booking_id: str) -> bool:
        """
        Cancel an unpaid reserved booking. Never touches a booking that got paid.

        Returns:
            bool: True if this call cancelled it
        """
        cancelled = self.store.compare_and_set(
            booking_id,
            {"status": "reserved", "payment_status": "pending"},
            {"status": "cancelled"},
        )
        if cancelled:
            logger.info("booking_expired", booking_id=booking_id)
        return cancelled

    def update(self, booking_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """
        Apply an admin patch.

        Status fields may only move forward; setting ``payment_status=paid`` on
        a reserved booking also makes it active. Changing dates, room type or
        payment amount reprices the stay and persists the new totals.

        Raises:
            NotFoundError: Unknown booking id
            ValidationError: Unknown field or a status regression
            BookingConflictError: New dates clash with another booking, or a concurrent change
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        current = self.get(booking_id)
        changes = {k: v for k, v in patch.items() if v is not None and current.get(k) != v}
        if not changes:
            return current

        new_status = changes.get("status", current["status"])
        new_payment = changes.get("payment_status", current["payment_status"])
        if "status" in changes and new_status not in ALLOWED_STATUS_TRANSITIONS.get(
            current["status"], frozenset()
        ):
            raise ValidationError(
                f"Cannot change status from {current['status']} to {new_status}", field="status"
            )
        if "payment_status" in changes and new_payment not in ALLOWED_PAYMENT_TRANSITIONS.get(
            current["payment_status"], frozenset()
        ):
            raise ValidationError(
                f"Cannot change payment status from {current['payment_status']} to {new_payment}",
                field="payment_status",
            )
        became_paid = "payment_status" in changes
        if became_paid:
            changes["paid_at"] = self.clock()
            if new_status == "reserved":
                changes["status"] = "active"

        if "guest_email" in changes and not EMAIL_PATTERN.match(str(changes["guest_email"])):
            raise ValidationError("A valid email address is required", field="guest_email")
        if "guest_phone" in changes:
            changes["guest_phone"] = normalize_phone(str(changes["guest_phone"]))
            if not PHONE_PATTERN.match(changes["guest_phone"]):
                raise ValidationError("A valid mobile number is required", field="guest_phone")
        if "payment_method" in changes and changes["payment_method"] not in PAYMENT_METHODS:
            raise ValidationError("Unknown payment method", field="payment_method")

        expected = {"status": current["status"], "payment_status": current["payment_status"]}

        if PRICING_FIELDS & set(changes):
            changes.update(self._repriced_fields(current, changes))
            with room_lock(changes["room_type"]):
                applied = self.store.reschedule(booking_id, expected, changes)
        else:
            applied = self.store.compare_and_set(booking_id, expected, changes)

        if not applied:
            raise BookingConflictError("Booking changed while being edited, reload and retry")

        booking = self.get(booking_id)
        logger.info("booking_updated", booking_id=booking_id, fields=sorted(changes))
        if became_paid:
            self._notify_paid(booking)
        return booking

    def _repriced_fields(self, current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        """
        Reprice a stay after a date, room or payment-amount change.

        Nights follow the live room rates. Addons and the promo keep the terms
        stored on the booking, so a promo retired after booking still applies.
        """
        merged = {**current, **changes}
        with self.engine.connect() as conn:
            try:
                quote = quote_stay(
                    conn, merged["check_in_date"], merged["check_out_date"], merged["room_type"]
                )
            except NotFoundError as e:
                raise ValidationError(str(e), field="room_type") from e

        totals = compute_booking_totals(
            quote,
            addons=booked_addons(current),
            discount=booked_discount(current),
            payment_amount=merged["payment_amount"],
            deposit_percentage=int(current.get("deposit_percentage") or 30),
        )
        return {
            "room_type": quote.room.name,
            "room_type_display": quote.room.display_name,
            "check_in_date": merged["check_in_date"],
            "check_out_date": merged["check_out_date"],
            "price_per_night": quote.average_price_per_night,
            "nights": quote.nights,
            "addons_total": totals.addons_total,
            "discount_amount": totals.discount_amount,
            "total_amount": totals.total_amount,
            "final_amount": totals.final_amount,
        }

    def delete(self, booking_id: str) -> None:
        """
        Hard-delete a cancelled booking.

        Raises:
            NotFoundError: Unknown booking id
            ValidationError: Booking is not cancelled
        """
        booking = self.get(booking_id)
        if booking["status"] != "cancelled":
            raise ValidationError("Only cancelled bookings can be deleted", field="status")
        if not self.store.delete(booking_id):
            raise BookingConflictError("Booking changed while being deleted, reload and retry")
        logger.info("booking_deleted", booking_id=booking_id)
