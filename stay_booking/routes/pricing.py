from datetime import date
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.engine import Engine

from stay_booking.db.readers.catalog import list_addons, list_room_types
from stay_booking.dependencies import get_db_engine
from stay_booking.errors import BookingError
from stay_booking.routes._booking_helpers import http_error_for
from stay_booking.services.pricing import quote_stay, unavailable_room_types

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/room-types")
def room_types(db_engine: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    """List active room types in display order."""
    try:
        with db_engine.connect() as conn:
            rows = list_room_types(conn)
    except Exception as e:
        logger.exception("room_types_fetch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": jsonable_encoder(rows)}


@router.get("/room-availability")
def room_availability(
    check_in: date = Query(..., alias="checkInDate"),
    check_out: date = Query(..., alias="checkOutDate"),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Room types that are already taken for part of a stay.

    Returns:
        dict: ``data`` lists the names of the fully booked room types
    """
    try:
        with db_engine.connect() as conn:
            unavailable = unavailable_room_types(conn, check_in, check_out)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("room_availability_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"success": True, "data": unavailable}


@router.get("/addons")
def addons(db_engine: Engine = Depends(get_db_engine)) -> dict[str, Any]:
    """List the add-ons guests can order with a booking."""
    try:
        with db_engine.connect() as conn:
            rows = list_addons(conn)
    except Exception as e:
        logger.exception("addons_fetch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "data": [
            {"name": row["name"], "displayName": row["display_name"], "price": row["price"]}
            for row in rows
        ],
    }


@router.get("/calculate-price")
def calculate_price(
    check_in: date = Query(..., alias="checkInDate"),
    check_out: date = Query(..., alias="checkOutDate"),
    room_type: Optional[str] = Query(None, alias="roomType"),
    room_type_name: Optional[str] = Query(None, alias="roomTypeName"),
    db_engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Quote a stay night by night.

    Args:
        check_in: First night
        check_out: Departure date
        room_type: Room type key or display name (``roomTypeName`` also accepted)
        db_engine: Database engine

    Returns:
        dict: Base price, surcharge, nights, total, average and the per-night breakdown
    """
    name = room_type or room_type_name
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "roomType is required", "field": "roomType"},
        )

    try:
        with db_engine.connect() as conn:
            quote = quote_stay(conn, check_in, check_out, name)
    except BookingError as e:
        raise http_error_for(e) from e
    except Exception as e:
        logger.exception("price_calculation_failed", room_type=name, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "data": {
            "roomType": quote.room.name,
            "basePrice": quote.room.base_price,
            "holidaySurcharge": quote.room.holiday_surcharge,
            "nights": quote.nights,
            "totalAmount": quote.total_amount,
            "averagePricePerNight": quote.average_price_per_night,
            "dailyPrices": [
                {
                    "date": night.date.isoformat(),
                    "isHoliday": night.is_holiday,
                    "price": night.price,
                }
                for night in quote.nightly
            ],
        },
    }
