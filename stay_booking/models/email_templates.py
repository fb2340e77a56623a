from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, true
from sqlalchemy.sql import func

from stay_booking.config import SCHEMA
from stay_booking.models.base import Base


class EmailTemplate(Base):
    """
    ORM model for an editable notification template.

    The timing columns are only meaningful for the scheduled templates:
    payment_reminder uses ``days_reserved``/``send_hour_payment_reminder``,
    checkin_reminder uses ``days_before_checkin``/``send_hour_checkin`` and
    feedback_request uses ``days_after_checkout``/``send_hour_feedback``.
    """

    __tablename__ = "email_templates"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_key = Column(String(50), unique=True, nullable=False)
    template_name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, server_default=true())

    days_reserved = Column(Integer, nullable=True)
    send_hour_payment_reminder = Column(Integer, nullable=True)
    days_before_checkin = Column(Integer, nullable=True)
    send_hour_checkin = Column(Integer, nullable=True)
    days_after_checkout = Column(Integer, nullable=True)
    send_hour_feedback = Column(Integer, nullable=True)

    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
