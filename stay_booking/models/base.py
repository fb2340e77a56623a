from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from stay_booking.config import SCHEMA

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models in this application inherit from this base class to provide
    consistent table metadata and ORM functionality across the database schema.
    """

    pass


def qualified(table_name: str) -> str:
    """Return ``schema.table`` when a schema is configured, else the bare table name."""
    return f"{SCHEMA}.{table_name}" if SCHEMA else table_name
