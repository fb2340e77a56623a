from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HolidayCreatePayload(BaseModel):
    """
    Schema for adding holiday overrides.

    Either ``holidayDate`` or both ``startDate`` and ``endDate`` (inclusive)
    must be given.
    """

    model_config = ConfigDict(populate_by_name=True)

    holiday_date: Optional[date] = Field(None, alias="holidayDate")
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    holiday_name: Optional[str] = Field(None, alias="holidayName", max_length=255)


class EmailTemplatePayload(BaseModel):
    """Schema for saving an edited notification template."""

    template_name: str
    subject: str = Field(..., max_length=255)
    content: str
    is_enabled: Optional[bool] = None
    days_reserved: Optional[int] = Field(None, ge=1, le=30)
    send_hour_payment_reminder: Optional[int] = Field(None, ge=0, le=23)
    days_before_checkin: Optional[int] = Field(None, ge=0, le=30)
    send_hour_checkin: Optional[int] = Field(None, ge=0, le=23)
    days_after_checkout: Optional[int] = Field(None, ge=0, le=30)
    send_hour_feedback: Optional[int] = Field(None, ge=0, le=23)


class TemplateTestPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    use_editor_content: bool = Field(False, alias="useEditorContent")
    subject: Optional[str] = None
    content: Optional[str] = None
