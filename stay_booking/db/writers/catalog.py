from datetime import date
from typing import Any, Optional

import structlog
from sqlalchemy import delete, update
from sqlalchemy.engine import Engine

from stay_booking.db.writers._upsert import insert_ignore_conflict, upsert_with_distinct_check
from stay_booking.models.catalog import Addon, Holiday, RoomType, Setting
from stay_booking.models.email_templates import EmailTemplate

logger = structlog.get_logger(__name__)

# Editable template columns besides the key and the enabled flag
TEMPLATE_COLUMNS = [
    "template_name",
    "subject",
    "content",
    "days_reserved",
    "send_hour_payment_reminder",
    "days_before_checkin",
    "send_hour_checkin",
    "days_after_checkout",
    "send_hour_feedback",
]


def upsert_room_types(engine: Engine, data: list[dict[str, Any]]) -> None:
    """
    Upsert room types keyed by ``name``.

    Args:
        engine: SQLAlchemy Engine
        data: Room type dicts with name, display_name, price, holiday_surcharge, ...
    """
    with engine.begin() as conn:
        upsert_with_distinct_check(
            conn,
            RoomType,
            data,
            conflict_column="name",
            update_columns=["display_name", "price", "holiday_surcharge", "max_occupancy"],
        )
    logger.info("room_types_upserted", count=len(data))


def upsert_addons(engine: Engine, data: list[dict[str, Any]]) -> None:
    with engine.begin() as conn:
        upsert_with_distinct_check(
            conn, Addon, data, conflict_column="name", update_columns=["display_name", "price"]
        )
    logger.info("addons_upserted", count=len(data))


def upsert_settings(engine: Engine, values: dict[str, Optional[str]]) -> None:
    """
    Upsert key/value settings.

    Args:
        engine: SQLAlchemy Engine
        values: Setting key -> string value
    """
    rows = [{"key": key, "value": value} for key, value in values.items()]
    with engine.begin() as conn:
        upsert_with_distinct_check(
            conn, Setting, rows, conflict_column="key", update_columns=["value"]
        )
    logger.info("settings_upserted", keys=sorted(values))


def insert_missing_templates(engine: Engine, templates: list[dict[str, Any]]) -> int:
    """
    Insert default templates whose key is not in the table yet.

    Existing templates are never overwritten, since admins edit them.

    Returns:
        int: Number of templates inserted
    """
    inserted = 0
    with engine.begin() as conn:
        for template in templates:
            if insert_ignore_conflict(conn, EmailTemplate, template, ["template_key"]):
                inserted += 1
    logger.info("email_templates_seeded", inserted=inserted, total=len(templates))
    return inserted


def add_holidays(engine: Engine, days: list[date], holiday_name: Optional[str] = None) -> int:
    """
    Add manual holiday overrides, ignoring dates that already exist.

    Returns:
        int: Number of dates added
    """
    added = 0
    with engine.begin() as conn:
        for day in days:
            if insert_ignore_conflict(
                conn, Holiday, {"holiday_date": day, "holiday_name": holiday_name}, ["holiday_date"]
            ):
                added += 1
    logger.info("holidays_added", added=added, requested=len(days))
    return added


def delete_holiday(engine: Engine, day: date) -> bool:
    """
    Remove a manual holiday override.

    Returns:
        bool: False if the date was not a holiday
    """
    with engine.begin() as conn:
        result = conn.execute(delete(Holiday).where(Holiday.holiday_date == day))
    deleted = result.rowcount == 1
    logger.info("holiday_deleted", holiday_date=str(day), deleted=deleted)
    return deleted


def update_email_template(engine: Engine, template_key: str, values: dict[str, Any]) -> bool:
    """
    Overwrite the given columns of one template.

    Returns:
        bool: False if no template has that key
    """
    with engine.begin() as conn:
        result = conn.execute(
            update(EmailTemplate).where(EmailTemplate.template_key == template_key).values(**values)
        )
    updated = result.rowcount == 1
    logger.info(
        "email_template_updated", template=template_key, fields=sorted(values), updated=updated
    )
    return updated


def reset_email_templates(engine: Engine, templates: list[dict[str, Any]]) -> None:
    """
    Restore templates to the given defaults, re-enabling them.

    Keys missing from the table are inserted; other templates are untouched.
    """
    rows = [
        {
            "template_key": template["template_key"],
            **{column: template.get(column) for column in TEMPLATE_COLUMNS},
            "is_enabled": True,
        }
        for template in templates
    ]
    with engine.begin() as conn:
        upsert_with_distinct_check(
            conn,
            EmailTemplate,
            rows,
            conflict_column="template_key",
            update_columns=[*TEMPLATE_COLUMNS, "is_enabled"],
        )
    logger.info("email_templates_reset", templates=[row["template_key"] for row in rows])
