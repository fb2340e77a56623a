# models/bookings.py

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from stay_booking.config import SCHEMA
from stay_booking.models.base import Base, JSONType, qualified


class Booking(Base):
    """
    ORM model for a guest booking.

    Holds the guest identity, the stay, and a snapshot of the price the engine
    computed at creation time. ``status`` and ``payment_status`` only ever move
    forward (reserved -> active -> cancelled, pending -> paid); the writers
    enforce that with conditional updates rather than read-then-write.
    """

    __tablename__ = "bookings"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(20), unique=True, nullable=False, index=True)

    check_in_date = Column(Date, nullable=False, index=True)
    check_out_date = Column(Date, nullable=False, index=True)
    room_type = Column(String(100), nullable=False, index=True)
    room_type_display = Column(String(255), nullable=True)

    guest_name = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=False)
    guest_email = Column(String(255), nullable=False)
    adults = Column(Integer, nullable=False, default=0)
    children = Column(Integer, nullable=False, default=0)

    payment_amount = Column(String(20), nullable=False)  # deposit | full
    payment_method = Column(String(20), nullable=False)  # transfer | card
    deposit_percentage = Column(Integer, nullable=False, default=30)

    price_per_night = Column(Integer, nullable=False)
    nights = Column(Integer, nullable=False)
    addons = Column(JSONType, nullable=True)
    addons_total = Column(Integer, nullable=False, default=0)
    promo_code = Column(String(50), nullable=True)
    discount_type = Column(String(20), nullable=True)  # fixed | percent, as booked
    discount_value = Column(Integer, nullable=True)
    discount_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    bank_info = Column(JSONType, nullable=True)

    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    status = Column(String(20), nullable=False, default="reserved", index=True)
    gateway_trade_no = Column(String(50), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class BookingNotification(Base):
    """
    Sent-flag for one notification type on one booking.

    A row exists only after the mail was delivered. The unique constraint makes
    flag-setting idempotent even when a payment callback and a scheduled job
    touch the same booking.
    """

    __tablename__ = "booking_notifications"
    __table_args__ = (
        UniqueConstraint("booking_id", "notification_key", name="uq_booking_notification"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        String(20),
        ForeignKey(f"{qualified('bookings')}.booking_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    notification_key = Column(String(50), nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
