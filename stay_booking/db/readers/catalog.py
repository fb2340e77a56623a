from datetime import date
from typing import Any, Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from stay_booking.models.catalog import Addon, Holiday, PromoCode, RoomType, Setting
from stay_booking.models.email_templates import EmailTemplate


def get_room_type(conn: Connection, name: str) -> Optional[dict[str, Any]]:
    """
    Look up an active room type by key, falling back to its display name.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        name (str): Room type key or display name.

    Returns:
        Optional[dict[str, Any]]: Room type columns or None if not found
    """
    row = conn.execute(
        select(RoomType.__table__)
        .where(RoomType.is_active == True)  # noqa: E712
        .where(or_(RoomType.name == name, RoomType.display_name == name))
        .order_by(RoomType.name != name)
    ).fetchone()
    return dict(row._mapping) if row else None


def list_room_types(conn: Connection, include_inactive: bool = False) -> list[dict[str, Any]]:
    stmt = select(RoomType.__table__).order_by(RoomType.display_order, RoomType.id)
    if not include_inactive:
        stmt = stmt.where(RoomType.is_active == True)  # noqa: E712
    return [dict(row._mapping) for row in conn.execute(stmt)]


def get_addons_by_name(conn: Connection, names: Iterable[str]) -> dict[str, dict[str, Any]]:
    """Return active addons keyed by name; unknown names are simply absent."""
    wanted = list(set(names))
    if not wanted:
        return {}
    result = conn.execute(
        select(Addon.__table__)
        .where(Addon.name.in_(wanted))
        .where(Addon.is_active == True)  # noqa: E712
    )
    return {row._mapping["name"]: dict(row._mapping) for row in result}


def list_addons(conn: Connection) -> list[dict[str, Any]]:
    """Active addons, cheapest first."""
    result = conn.execute(
        select(Addon.__table__)
        .where(Addon.is_active == True)  # noqa: E712
        .order_by(Addon.price, Addon.id)
    )
    return [dict(row._mapping) for row in result]


def get_promo_code(conn: Connection, code: str) -> Optional[dict[str, Any]]:
    row = conn.execute(
        select(PromoCode.__table__).where(
            and_(PromoCode.code == code, PromoCode.is_active == True)  # noqa: E712
        )
    ).fetchone()
    return dict(row._mapping) if row else None


def get_holiday_dates(conn: Connection, start: date, end: date) -> set[date]:
    """
    Return manual holiday dates in ``[start, end)``.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        start (date): First date (inclusive).
        end (date): Last date (exclusive).

    Returns:
        set[date]: Holiday override dates inside the range
    """
    result = conn.execute(
        select(Holiday.holiday_date).where(
            and_(Holiday.holiday_date >= start, Holiday.holiday_date < end)
        )
    )
    return {row[0] for row in result}


def list_holidays(conn: Connection) -> list[dict[str, Any]]:
    """Every manual holiday override in date order."""
    result = conn.execute(
        select(Holiday.holiday_date, Holiday.holiday_name).order_by(Holiday.holiday_date)
    )
    return [dict(row._mapping) for row in result]


def get_setting(conn: Connection, key: str) -> Optional[str]:
    row = conn.execute(select(Setting.value).where(Setting.key == key)).fetchone()
    return row[0] if row else None


def get_settings(conn: Connection, keys: Iterable[str]) -> dict[str, Optional[str]]:
    """Return the requested settings; keys with no row map to None."""
    wanted = list(keys)
    found = {
        row.key: row.value
        for row in conn.execute(select(Setting.key, Setting.value).where(Setting.key.in_(wanted)))
    }
    return {key: found.get(key) for key in wanted}


def get_email_template(conn: Connection, template_key: str) -> Optional[dict[str, Any]]:
    """
    Fetch a notification template by key, enabled or not.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        template_key (str): e.g. ``payment_reminder``.

    Returns:
        Optional[dict[str, Any]]: Template columns, or None if the key is unknown
    """
    row = conn.execute(
        select(EmailTemplate.__table__).where(EmailTemplate.template_key == template_key)
    ).fetchone()
    return dict(row._mapping) if row else None


def list_email_templates(conn: Connection) -> list[dict[str, Any]]:
    result = conn.execute(select(EmailTemplate.__table__).order_by(EmailTemplate.id))
    return [dict(row._mapping) for row in result]
