"""
Dialect-aware INSERT ... ON CONFLICT helpers.

Postgres and SQLite both support ON CONFLICT, but through different
SQLAlchemy dialect constructs. These helpers pick the right one from the
connection so writers stay backend-agnostic.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def dialect_insert(conn: Connection, table: Any) -> Any:
    """Return an ``insert()`` construct that supports ``on_conflict_*`` for this backend."""
    if conn.dialect.name == "postgresql":
        return postgresql.insert(table)
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"ON CONFLICT is not supported for dialect {conn.dialect.name}")


def insert_ignore_conflict(
    conn: Connection, table: Any, row: dict[str, Any], conflict_columns: list[str]
) -> bool:
    """
    Insert one row unless it collides on ``conflict_columns``.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class
        row: Column values to insert
        conflict_columns: Columns of the unique constraint to ignore collisions on

    Returns:
        bool: True if a row was inserted, False if it already existed
    """
    stmt = (
        dialect_insert(conn, table)
        .values(**row)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )
    return conn.execute(stmt).rowcount == 1


def upsert_with_distinct_check(
    conn: Connection,
    table: Any,
    rows: list[dict[str, Any]],
    conflict_column: str,
    update_columns: list[str],
) -> None:
    """
    Upsert rows, rewriting only those whose ``update_columns`` actually changed.

    Used by the seed script so re-seeding is a no-op for unchanged catalog rows.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., RoomType, Setting)
        rows: List of row dicts to upsert
        conflict_column: Column name for ON CONFLICT
        update_columns: Columns to overwrite on conflict

    Example:
        >>> with engine.begin() as conn:
        ...     upsert_with_distinct_check(
        ...         conn, Setting, [{"key": "deposit_percentage", "value": "30"}],
        ...         conflict_column="key", update_columns=["value"],
        ...     )
    """
    if not rows:
        return

    stmt = dialect_insert(conn, table).values(rows)
    set_dict = {col: getattr(stmt.excluded, col) for col in update_columns}

    changed = None
    for col in update_columns:
        check = getattr(table, col).is_distinct_from(getattr(stmt.excluded, col))
        changed = check if changed is None else changed | check

    stmt = stmt.on_conflict_do_update(
        index_elements=[conflict_column],
        set_=set_dict,
        where=changed,
    )
    conn.execute(stmt)
