"""
Payment gateway adapter (ECPay AIO checkout).

Outbound, it builds the signed auto-submit form that sends the guest to the
gateway. Inbound, it verifies the signed callbacks and turns a verified
success into ``BookingService.mark_paid``. The gateway calls two endpoints:

- ReturnURL: server-to-server notification. It must always be answered with
  the literal ``1|OK`` or the gateway keeps retrying.
- OrderResultURL: the guest's browser is redirected here with the same
  signed fields; it renders a success or failure page.

Both go through ``process_callback``. Because ``mark_paid`` is idempotent,
whichever arrives first commits the payment and the other is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.engine import Connection

from stay_booking import config
from stay_booking.db.readers.catalog import get_settings
from stay_booking.errors import NotFoundError, SignatureError
from stay_booking.metrics import payment_callbacks
from stay_booking.payments.checkmac import (
    CHECK_VALUE_FIELD,
    check_value_matches,
    compute_check_value,
)
from stay_booking.services.bookings import BookingService
from stay_booking.utils.datetime import Clock, business_tz, to_local, utc_now

logger = structlog.get_logger(__name__)

SERVER_ACK = "1|OK"
SUCCESS_CODE = "1"

TEST_ACTION_URL = "https://payment-stage.ecpay.com.tw/Cashier/AioCheckOut/V5"
PRODUCTION_ACTION_URL = "https://payment.ecpay.com.tw/Cashier/AioCheckOut/V5"

# Public sandbox merchant published by ECPay
TEST_MERCHANT_ID = "2000132"
TEST_HASH_KEY = "5294y06JbISpM5x9"
TEST_HASH_IV = "v77hoKGq4kWxNNIS"


@dataclass(frozen=True)
class GatewayCredentials:
    merchant_id: str
    hash_key: str
    hash_iv: str
    action_url: str
    env: str = "test"


def resolve_credentials(
    env: str,
    merchant_id: Optional[str] = None,
    hash_key: Optional[str] = None,
    hash_iv: Optional[str] = None,
) -> GatewayCredentials:
    """
    Pick credentials and the checkout URL for a gateway environment.

    ``test`` falls back to the public sandbox merchant. ``production`` requires
    all three values. The sandbox merchant id always uses the sandbox URL,
    whatever the environment says.

    Raises:
        ValueError: Unknown environment or missing production credentials
    """
    if env not in ("test", "production"):
        raise ValueError(f"Unknown payment environment: {env}")

    if env == "test":
        merchant_id = merchant_id or TEST_MERCHANT_ID
        hash_key = hash_key or TEST_HASH_KEY
        hash_iv = hash_iv or TEST_HASH_IV
    elif not (merchant_id and hash_key and hash_iv):
        raise ValueError(
            "Production payments need ECPAY_MERCHANT_ID_PROD, ECPAY_HASH_KEY_PROD"
            " and ECPAY_HASH_IV_PROD"
        )

    action_url = PRODUCTION_ACTION_URL if env == "production" else TEST_ACTION_URL
    if merchant_id == TEST_MERCHANT_ID and action_url != TEST_ACTION_URL:
        logger.warning("sandbox_merchant_in_production", merchant_id=merchant_id)
        action_url = TEST_ACTION_URL

    return GatewayCredentials(
        merchant_id=merchant_id,
        hash_key=hash_key,
        hash_iv=hash_iv,
        action_url=action_url,
        env=env,
    )


def credential_setting_keys(env: str) -> tuple[str, str, str]:
    """Settings keys for an environment; production keys carry a ``_prod`` suffix."""
    suffix = "_prod" if env == "production" else ""
    return (f"ecpay_merchant_id{suffix}", f"ecpay_hash_key{suffix}", f"ecpay_hash_iv{suffix}")


def load_credentials(conn: Connection, env: str = config.PAYMENT_ENV) -> GatewayCredentials:
    """
    Credentials for ``env`` from the admin settings, falling back to the environment.

    Test and production keep separate sets (``ecpay_*`` and ``ecpay_*_prod``).
    """
    if env == "production":
        from_env = (
            config.ECPAY_MERCHANT_ID_PROD,
            config.ECPAY_HASH_KEY_PROD,
            config.ECPAY_HASH_IV_PROD,
        )
    else:
        from_env = (config.ECPAY_MERCHANT_ID, config.ECPAY_HASH_KEY, config.ECPAY_HASH_IV)

    keys = credential_setting_keys(env)
    stored = get_settings(conn, list(keys))
    merchant_id, hash_key, hash_iv = (
        stored[key] or fallback for key, fallback in zip(keys, from_env)
    )
    return resolve_credentials(env, merchant_id=merchant_id, hash_key=hash_key, hash_iv=hash_iv)


class CallbackVerifier(ABC):
    """Decides whether an inbound gateway payload is authentic."""

    @abstractmethod
    def verify(self, data: Mapping[str, Any]) -> None:
        """Return normally if authentic, raise SignatureError otherwise."""


class CheckValueVerifier(CallbackVerifier):
    """Recomputes the check value with the merchant keys and compares."""

    def __init__(self, hash_key: str, hash_iv: str) -> None:
        self.hash_key = hash_key
        self.hash_iv = hash_iv

    def verify(self, data: Mapping[str, Any]) -> None:
        if not data.get(CHECK_VALUE_FIELD):
            raise SignatureError("Callback has no CheckMacValue")
        if not check_value_matches(data, self.hash_key, self.hash_iv):
            raise SignatureError("CheckMacValue does not match")


class AcceptAllVerifier(CallbackVerifier):
    """
    Accepts every payload without checking it.

    Only for driving the payment flow against a local simulator that cannot
    sign; it must be passed to PaymentGateway explicitly and is logged when used.
    """

    def verify(self, data: Mapping[str, Any]) -> None:
        logger.warning("callback_signature_not_checked", trade_no=data.get("MerchantTradeNo"))


@dataclass(frozen=True)
class PaymentForm:
    action_url: str
    params: dict[str, str]


@dataclass(frozen=True)
class PaymentCallback:
    merchant_trade_no: str
    trade_no: Optional[str]
    rtn_code: str
    rtn_msg: Optional[str]
    trade_amt: Optional[int]
    payment_date: Optional[str]
    payment_type: Optional[str]
    payment_type_charge_fee: Optional[str]
    trade_date: Optional[str]
    simulate_paid: bool

    @property
    def succeeded(self) -> bool:
        return self.rtn_code == SUCCESS_CODE


@dataclass(frozen=True)
class CallbackOutcome:
    # paid, duplicate, failed, invalid_signature, amount_mismatch, not_found or simulated_ignored
    outcome: str
    booking_id: Optional[str] = None
    booking: Optional[dict[str, Any]] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in ("paid", "duplicate")


def parse_callback(data: Mapping[str, Any]) -> PaymentCallback:
    """Map raw gateway fields to a PaymentCallback; does not verify anything."""
    raw_amount = data.get("TradeAmt")
    try:
        trade_amt = int(str(raw_amount)) if raw_amount not in (None, "") else None
    except ValueError:
        trade_amt = None
    return PaymentCallback(
        merchant_trade_no=str(data.get("MerchantTradeNo") or ""),
        trade_no=data.get("TradeNo"),
        rtn_code=str(data.get("RtnCode") or ""),
        rtn_msg=data.get("RtnMsg"),
        trade_amt=trade_amt,
        payment_date=data.get("PaymentDate"),
        payment_type=data.get("PaymentType"),
        payment_type_charge_fee=data.get("PaymentTypeChargeFee"),
        trade_date=data.get("TradeDate"),
        simulate_paid=str(data.get("SimulatePaid") or "0") == "1",
    )


def parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    """Parse ``yyyy/MM/dd HH:mm:ss`` business-local time to UTC; None if unparseable."""
    if not value:
        return None
    try:
        local = datetime.strptime(value, "%Y/%m/%d %H:%M:%S").replace(tzinfo=business_tz())
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


class PaymentGateway:
    """
    Builds signed checkout forms and commits verified callbacks.

    Args:
        credentials: Merchant credentials and checkout URL
        bookings: State machine used to mark bookings paid
        verifier: Callback authenticity check; defaults to check value verification
        clock: Current-time source
        base_url: Public base URL for the callback and return URLs

    Example:
        >>> gateway = PaymentGateway(resolve_credentials("test"), booking_service)
        >>> form = gateway.build_payment_form(booking)
        >>> form.params["CheckMacValue"]  # doctest: +SKIP
    """

    def __init__(
        self,
        credentials: GatewayCredentials,
        bookings: BookingService,
        verifier: Optional[CallbackVerifier] = None,
        clock: Clock = utc_now,
        base_url: str = config.PUBLIC_BASE_URL,
    ) -> None:
        self.credentials = credentials
        self.bookings = bookings
        self.clock = clock
        self.base_url = base_url.rstrip("/")
        self.verifier = verifier or CheckValueVerifier(credentials.hash_key, credentials.hash_iv)
        if not isinstance(self.verifier, CheckValueVerifier):
            logger.warning(
                "payment_gateway_custom_verifier",
                verifier=type(self.verifier).__name__,
                env=credentials.env,
            )

    def build_payment_form(self, booking: Mapping[str, Any]) -> PaymentForm:
        """
        Build the signed checkout form for a card booking.

        Args:
            booking: Booking columns; ``final_amount`` is what gets charged

        Returns:
            PaymentForm: Gateway URL and the fields to POST, CheckMacValue included
        """
        booking_id = str(booking["booking_id"])
        params: dict[str, str] = {
            "MerchantID": self.credentials.merchant_id,
            "MerchantTradeNo": booking_id[:20],
            "MerchantTradeDate": to_local(self.clock()).strftime("%Y/%m/%d %H:%M:%S"),
            "PaymentType": "aio",
            "TotalAmount": str(int(round(booking["final_amount"]))),
            "TradeDesc": f"Booking {booking_id}",
            "ItemName": f"Room booking {booking_id}",
            "ReturnURL": f"{self.base_url}/api/payment/return",
            "OrderResultURL": f"{self.base_url}/api/payment/result",
            "ClientBackURL": f"{self.base_url}/?bookingId={booking_id}",
            "ChoosePayment": "Credit",
            "EncryptType": "1",
            "CustomerName": str(booking.get("guest_name") or ""),
            "CustomerEmail": str(booking.get("guest_email") or ""),
            "CustomerPhone": str(booking.get("guest_phone") or ""),
        }
        params[CHECK_VALUE_FIELD] = compute_check_value(
            params, self.credentials.hash_key, self.credentials.hash_iv
        )
        logger.info(
            "payment_form_built",
            booking_id=booking_id,
            amount=params["TotalAmount"],
            env=self.credentials.env,
        )
        return PaymentForm(action_url=self.credentials.action_url, params=params)

    def verify(self, data: Mapping[str, Any]) -> None:
        """Raise SignatureError unless ``data`` passes the configured verifier."""
        self.verifier.verify(data)

    def process_callback(self, data: Mapping[str, Any], entry_point: str) -> CallbackOutcome:
        """
        Verify a callback and, on a verified success, mark the booking paid.

        Nothing is written unless the signature verifies, the gateway reports
        success and the paid amount matches the booking.

        Args:
            data: Raw gateway fields
            entry_point: ``server`` or ``browser`` (for logs and metrics)

        Returns:
            CallbackOutcome: What happened
        """
        outcome = self._process(data, entry_point)
        payment_callbacks.labels(entry_point=entry_point, outcome=outcome.outcome).inc()
        return outcome

    def _process(self, data: Mapping[str, Any], entry_point: str) -> CallbackOutcome:
        log = logger.bind(entry_point=entry_point, merchant_trade_no=data.get("MerchantTradeNo"))

        try:
            self.verify(data)
        except SignatureError as e:
            log.warning("payment_callback_invalid_signature", error=str(e))
            return CallbackOutcome("invalid_signature", message=str(e))

        callback = parse_callback(data)
        booking_id = callback.merchant_trade_no
        log.info(
            "payment_callback_verified",
            rtn_code=callback.rtn_code,
            rtn_msg=callback.rtn_msg,
            trade_no=callback.trade_no,
            trade_amt=callback.trade_amt,
        )

        try:
            booking = self.bookings.get(booking_id)
        except NotFoundError:
            log.warning("payment_callback_unknown_booking")
            return CallbackOutcome("not_found", booking_id=booking_id)

        if not callback.succeeded:
            log.info("payment_failed_at_gateway", rtn_msg=callback.rtn_msg)
            return CallbackOutcome(
                "failed", booking_id=booking_id, booking=booking, message=callback.rtn_msg
            )

        if callback.simulate_paid and self.credentials.env != "test":
            log.warning("simulated_payment_ignored")
            return CallbackOutcome("simulated_ignored", booking_id=booking_id, booking=booking)

        if callback.trade_amt is not None and callback.trade_amt != int(booking["final_amount"]):
            log.error(
                "payment_amount_mismatch",
                trade_amt=callback.trade_amt,
                final_amount=booking["final_amount"],
            )
            return CallbackOutcome(
                "amount_mismatch",
                booking_id=booking_id,
                booking=booking,
                message="Paid amount does not match the booking",
            )

        result = self.bookings.mark_paid(
            booking_id,
            trade_no=callback.trade_no,
            paid_at=parse_gateway_time(callback.payment_date),
        )
        return CallbackOutcome(
            "paid" if result.changed else "duplicate",
            booking_id=booking_id,
            booking=result.booking,
        )

    def handle_server_callback(self, data: Mapping[str, Any]) -> str:
        """
        Process the server-to-server notification and return the acknowledgement.

        Always returns ``1|OK``, including for invalid or failed callbacks, so
        the gateway stops retrying; the outcome is recorded in logs and metrics.
        """
        try:
            self.process_callback(data, entry_point="server")
        except Exception:
            logger.exception(
                "payment_server_callback_crashed", merchant_trade_no=data.get("MerchantTradeNo")
            )
        return SERVER_ACK

    def handle_browser_result(self, data: Mapping[str, Any]) -> CallbackOutcome:
        """Process the browser redirect; the caller renders the page from the outcome."""
        return self.process_callback(data, entry_point="browser")
