from datetime import date, timedelta
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.engine import Engine

from stay_booking.db.readers.catalog import list_holidays
from stay_booking.db.writers.catalog import add_holidays, delete_holiday
from stay_booking.dependencies import (
    get_booking_service,
    get_clock,
    get_db_engine,
    get_notification_service,
)
from stay_booking.errors import BookingError, ValidationError
from stay_booking.notifications.service import NotificationService
from stay_booking.routes._booking_helpers import http_error_for, require_admin
from stay_booking.schemas.admin import (
    EmailTemplatePayload,
    HolidayCreatePayload,
    TemplateTestPayload,
)
from stay_booking.schemas.bookings import BookingUpdatePayload
from stay_booking.services.bookings import BookingService
from stay_booking.utils.datetime import Clock

logger = structlog.get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


@router.patch("/bookings/{booking_id}")
def update_booking(
    booking_id: str,
    payload: BookingUpdatePayload,
    bookings: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """
    Edit a booking.

    Only fields present in the payload are applied. Status fields only move
    forward; date, room or payment-amount changes reprice the stay.

    Args:
        booking_id: Booking to edit
        payload: Fields to change
        bookings: Booking state machine

    Returns:
        dict: The updated booking
    """
    patch = payload.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided for update"
        )

    try:
        booking = bookings.update(booking_id, patch)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("booking_update_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(booking)}


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """Cancel a booking. Cancelling an already cancelled booking succeeds unchanged."""
    try:
        result = bookings.cancel(booking_id)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("booking_cancel_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "changed": result.changed,
        "data": jsonable_encoder(result.booking),
    }


@router.delete("/bookings/{booking_id}")
def delete_booking(
    booking_id: str,
    bookings: BookingService = Depends(get_booking_service),
) -> dict[str, str]:
    """Permanently delete a cancelled booking."""
    try:
        bookings.delete(booking_id)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("booking_delete_failed", booking_id=booking_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": f"Booking {booking_id} deleted"}


# ----------------------------------------------------------------------
# Holidays
# ----------------------------------------------------------------------

MAX_HOLIDAY_RANGE_DAYS = 366


def requested_holiday_dates(payload: HolidayCreatePayload) -> list[date]:
    """
    Expand a holiday payload into individual dates.

    Raises:
        ValidationError: Neither a date nor a complete range, or a reversed/overlong range
    """
    if payload.start_date and payload.end_date:
        days = (payload.end_date - payload.start_date).days
        if days < 0:
            raise ValidationError("endDate must not be before startDate", field="endDate")
        if days >= MAX_HOLIDAY_RANGE_DAYS:
            raise ValidationError(
                f"A holiday range may cover at most {MAX_HOLIDAY_RANGE_DAYS} days",
                field="endDate",
            )
        return [payload.start_date + timedelta(days=offset) for offset in range(days + 1)]
    if payload.holiday_date:
        return [payload.holiday_date]
    raise ValidationError("Provide holidayDate or startDate and endDate", field="holidayDate")


@router.get("/holidays")
def get_holidays(db_engine: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    try:
        with db_engine.connect() as conn:
            holidays = list_holidays(conn)
    except Exception as e:
        logger.exception("holidays_fetch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(holidays)}


@router.post("/holidays")
def create_holidays(
    payload: HolidayCreatePayload,
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Add one holiday or an inclusive range of them.

    Dates that are already holidays are skipped.

    Returns:
        dict: ``data.addedCount`` is the number of new dates
    """
    try:
        added = add_holidays(db_engine, requested_holiday_dates(payload), payload.holiday_name)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("holidays_add_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "message": f"Added {added} holidays", "data": {"addedCount": added}}


@router.delete("/holidays/{holiday_date}")
def remove_holiday(
    holiday_date: date,
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    try:
        deleted = delete_holiday(db_engine, holiday_date)
    except Exception as e:
        logger.exception("holiday_delete_failed", holiday_date=str(holiday_date), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"No holiday on {holiday_date}"
        )
    return {"success": True, "message": f"Holiday {holiday_date} deleted"}


# ----------------------------------------------------------------------
# Email templates
# ----------------------------------------------------------------------


@router.get("/email-templates")
def get_email_templates(
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    try:
        templates = notifications.list_templates()
    except Exception as e:
        logger.exception("email_templates_fetch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(templates)}


@router.get("/email-templates/{template_key}")
def get_email_template(
    template_key: str,
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    try:
        template = notifications.load_template(template_key)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("email_template_fetch_failed", template=template_key, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(template)}


@router.put("/email-templates/{template_key}")
def save_email_template(
    template_key: str,
    payload: EmailTemplatePayload,
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """
    Save an edited template.

    Fields left out of the payload or sent as null keep their stored values.
    Syntax errors are reported as 400 with the offending field.
    """
    try:
        template = notifications.save_template(
            template_key, payload.model_dump(exclude_none=True)
        )
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("email_template_save_failed", template=template_key, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(template)}


@router.post("/email-templates/reset-to-default")
def reset_email_templates(
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Restore the built-in templates, discarding edits to them."""
    try:
        templates = notifications.reset_templates()
    except Exception as e:
        logger.exception("email_templates_reset_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(templates)}


@router.post("/email-templates/{template_key}/test")
def send_test_email(
    template_key: str,
    payload: TemplateTestPayload,
    notifications: NotificationService = Depends(get_notification_service),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    """
    Send a template rendered with sample booking data.

    With ``useEditorContent`` the posted subject and content are rendered
    instead of the stored ones.
    """
    subject = payload.subject if payload.use_editor_content else None
    content = payload.content if payload.use_editor_content else None
    try:
        outcome = notifications.send_test(
            template_key, payload.email, clock(), subject=subject, content=content
        )
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("template_test_failed", template=template_key, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    if not outcome.sent:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=outcome.error or outcome.skipped or "Email could not be sent",
        )
    return {"success": True, "message": f"Test email sent to {payload.email}"}
