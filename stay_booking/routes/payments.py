"""Payment gateway routes: checkout form, server callback and browser result page."""

from html import escape
from typing import Any, Callable, Mapping

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from stay_booking.dependencies import (
    get_booking_service,
    get_payment_gateway,
    get_payment_gateway_factory,
)
from stay_booking.errors import BookingError
from stay_booking.payments.gateway import SERVER_ACK, CallbackOutcome, PaymentGateway
from stay_booking.routes._booking_helpers import http_error_for
from stay_booking.schemas.bookings import PaymentCreatePayload
from stay_booking.services.bookings import BookingService

logger = structlog.get_logger(__name__)
router = APIRouter()

_RESULT_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><title>{title}</title></head>
<body style="font-family: sans-serif; text-align: center; padding: 40px;">
  <h1>{title}</h1>
  <p>{message}</p>
  {details}
  <p><a href="/">Back to the booking page</a></p>
</body>
</html>
"""


def render_result_page(outcome: CallbackOutcome) -> str:
    """Build the page shown to the guest after the gateway redirect."""
    if outcome.success:
        title = "Payment successful"
        message = "Thank you, your payment has been received."
    elif outcome.outcome == "invalid_signature":
        title = "Payment could not be verified"
        message = "Please contact us with your booking number."
    else:
        title = "Payment failed"
        message = escape(outcome.message or "The payment was not completed.")

    details = ""
    if outcome.booking is not None:
        booking = outcome.booking
        details = (
            f"<p>Booking number: <strong>{escape(str(booking['booking_id']))}</strong></p>"
            f"<p>Amount: NT$ {int(booking['final_amount']):,}</p>"
        )
    return _RESULT_PAGE.format(title=title, message=message, details=details)


async def _callback_fields(request: Request) -> dict[str, Any]:
    if request.method == "GET":
        return dict(request.query_params)
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/create")
def create_payment(
    payload: PaymentCreatePayload,
    bookings: BookingService = Depends(get_booking_service),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, Any]:
    """
    Issue a fresh signed checkout form for an existing booking.

    Returns:
        dict: ``data.actionUrl`` and ``data.params`` to POST to the gateway
    """
    try:
        booking = bookings.get(payload.booking_id)
        if booking["payment_status"] == "paid":
            raise HTTPException(status_code=409, detail="Booking is already paid")
        if booking["status"] == "cancelled":
            raise HTTPException(status_code=409, detail="Booking is cancelled")
        form = gateway.build_payment_form(booking)
    except HTTPException:
        raise
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("payment_form_failed", booking_id=payload.booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": {"actionUrl": form.action_url, "params": form.params}}


@router.post("/return", response_class=PlainTextResponse)
async def payment_return(
    request: Request,
    gateway_factory: Callable[[], PaymentGateway] = Depends(get_payment_gateway_factory),
) -> PlainTextResponse:
    """
    Server-to-server payment notification.

    The body is always ``1|OK``; anything else makes the gateway retry.
    """
    try:
        data: Mapping[str, Any] = await _callback_fields(request)
        gateway = await run_in_threadpool(gateway_factory)
        ack = await run_in_threadpool(gateway.handle_server_callback, data)
    except Exception as e:
        logger.exception("payment_return_failed", error=str(e))
        ack = SERVER_ACK

    return PlainTextResponse(ack)


@router.api_route("/result", methods=["GET", "POST"], response_class=HTMLResponse)
async def payment_result(
    request: Request,
    gateway_factory: Callable[[], PaymentGateway] = Depends(get_payment_gateway_factory),
) -> HTMLResponse:
    """Browser redirect from the gateway; renders a success or failure page."""
    try:
        data = await _callback_fields(request)
        gateway = await run_in_threadpool(gateway_factory)
        outcome = await run_in_threadpool(gateway.handle_browser_result, data)
    except Exception as e:
        logger.exception("payment_result_failed", error=str(e))
        outcome = CallbackOutcome("failed", message="The payment result could not be processed.")

    return HTMLResponse(render_result_page(outcome), status_code=200)
