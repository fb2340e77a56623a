from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder

from stay_booking.dependencies import get_booking_service, get_payment_gateway
from stay_booking.errors import BookingError
from stay_booking.payments.gateway import PaymentGateway
from stay_booking.routes._booking_helpers import http_error_for
from stay_booking.schemas.bookings import BookingCreatePayload
from stay_booking.services.bookings import BookingRequest, BookingService

logger = structlog.get_logger(__name__)
router = APIRouter()


def request_from_payload(payload: BookingCreatePayload) -> BookingRequest:
    return BookingRequest(
        check_in=payload.check_in_date,
        check_out=payload.check_out_date,
        room_type=payload.room_type,
        guest_name=payload.guest_name,
        guest_phone=payload.guest_phone,
        guest_email=payload.guest_email,
        payment_method=payload.payment_method,
        payment_amount=payload.payment_amount,
        adults=payload.adults,
        children=payload.children,
        addons=[addon.model_dump() for addon in payload.addons],
        promo_code=payload.promo_code,
        client_totals={
            "pricePerNight": payload.price_per_night,
            "nights": payload.nights,
            "totalAmount": payload.total_amount,
            "finalAmount": payload.final_amount,
        },
    )


@router.post("/booking", status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreatePayload,
    bookings: BookingService = Depends(get_booking_service),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict[str, Any]:
    """
    Create a booking from a guest submission.

    Prices are recomputed on the server. For card bookings the response also
    carries the signed gateway form; if building it fails the booking still
    stands and ``paymentData`` is null.

    Args:
        payload: Guest submission
        bookings: Booking state machine
        gateway: Payment gateway adapter

    Returns:
        dict: bookingId, emailSent, emailError, paymentMethod and paymentData
    """
    try:
        result = bookings.create(request_from_payload(payload))
    except HTTPException:
        raise
    except BookingError as e:
        logger.info("booking_rejected", error=str(e), field=getattr(e, "field", None))
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("booking_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    booking = result.booking
    payment_data: Optional[dict[str, Any]] = None
    if booking["payment_method"] == "card":
        try:
            form = gateway.build_payment_form(booking)
            payment_data = {"actionUrl": form.action_url, "params": form.params}
        except Exception as e:
            logger.exception(
                "payment_form_failed", booking_id=booking["booking_id"], error=str(e)
            )

    return {
        "success": True,
        "message": "Booking received",
        "bookingId": booking["booking_id"],
        "emailSent": result.email_sent,
        "emailError": result.email_error,
        "paymentMethod": booking["payment_method"],
        "paymentData": payment_data,
        "totalAmount": booking["total_amount"],
        "finalAmount": booking["final_amount"],
    }


@router.get("/bookings/{booking_id}")
def get_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """Return a booking's stored fields."""
    try:
        booking = bookings.get(booking_id)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("booking_fetch_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(booking)}
