from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AddonSelection(BaseModel):
    name: str = Field(..., description="Addon key")
    quantity: int = Field(1, ge=1, description="Number of units")


class BookingCreatePayload(BaseModel):
    """
    Schema for a guest booking submission.

    The price fields are what the booking page displayed; they are logged when
    they differ from the server's figures and otherwise ignored.
    """

    model_config = ConfigDict(populate_by_name=True)

    check_in_date: date = Field(..., alias="checkInDate")
    check_out_date: date = Field(..., alias="checkOutDate")
    room_type: str = Field(..., alias="roomType", description="Room type key or display name")
    guest_name: str = Field(..., alias="guestName")
    guest_phone: str = Field(..., alias="guestPhone")
    guest_email: str = Field(..., alias="guestEmail")
    payment_method: Literal["transfer", "card"] = Field(..., alias="paymentMethod")
    payment_amount: Literal["deposit", "full"] = Field("full", alias="paymentAmount")
    adults: int = Field(0, ge=0)
    children: int = Field(0, ge=0)
    addons: list[AddonSelection] = Field(default_factory=list)
    promo_code: Optional[str] = Field(None, alias="promoCode")

    price_per_night: Optional[int] = Field(None, alias="pricePerNight")
    nights: Optional[int] = None
    total_amount: Optional[int] = Field(None, alias="totalAmount")
    final_amount: Optional[int] = Field(None, alias="finalAmount")


class BookingUpdatePayload(BaseModel):
    """
    Schema for an admin edit. All fields are optional.
    Note: totals are recomputed when dates, room type or payment amount change.
    """

    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    adults: Optional[int] = Field(None, ge=0)
    children: Optional[int] = Field(None, ge=0)
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    room_type: Optional[str] = None
    payment_amount: Optional[Literal["deposit", "full"]] = None
    payment_method: Optional[Literal["transfer", "card"]] = None
    status: Optional[Literal["reserved", "active", "cancelled"]] = None
    payment_status: Optional[Literal["pending", "paid"]] = None


class PaymentCreatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: str = Field(..., alias="bookingId", description="Booking to pay for")
