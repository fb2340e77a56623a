"""SQLAlchemy models for the sellable catalog and site settings."""

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, text, true
from sqlalchemy.sql import func

from stay_booking.config import SCHEMA
from stay_booking.models.base import Base


class RoomType(Base):
    """
    ORM model for a bookable room type.

    ``name`` is the stable key stored on bookings; ``price`` is the base nightly
    rate and ``holiday_surcharge`` is added on nights the holiday calendar flags.
    """

    __tablename__ = "room_types"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    holiday_surcharge = Column(Integer, nullable=False, server_default=text("0"))
    max_occupancy = Column(Integer, nullable=False, server_default=text("2"))
    display_order = Column(Integer, nullable=False, server_default=text("0"))
    is_active = Column(Boolean, nullable=False, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Addon(Base):
    """Optional extra (breakfast, late check-out) priced per unit."""

    __tablename__ = "addons"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true())


class PromoCode(Base):
    """Discount code; ``discount_type`` is ``fixed`` (currency) or ``percent``."""

    __tablename__ = "promo_codes"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=true())


class Holiday(Base):
    """Manual holiday override; takes precedence over the weekday rule."""

    __tablename__ = "holidays"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    holiday_date = Column(Date, unique=True, nullable=False)
    holiday_name = Column(String(255), nullable=True)


class Setting(Base):
    """Key/value site setting edited from the admin panel."""

    __tablename__ = "settings"
    __table_args__ = {"schema": SCHEMA}

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    description = Column(String(255), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
