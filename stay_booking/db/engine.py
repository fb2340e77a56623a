"""
SQLAlchemy engine singleton with production-ready connection pooling.

Postgres gets a sized QueuePool. SQLite (local development and tests) gets
the settings SQLite needs instead: in-memory databases share one connection
through StaticPool so every session sees the same tables.
"""

from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from stay_booking.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Build an engine with pool settings appropriate for the backend.

    Args:
        url: SQLAlchemy database URL
        echo: Log emitted SQL (development only)

    Returns:
        Engine: Configured SQLAlchemy engine

    Example:
        >>> engine = create_db_engine("sqlite://")
        >>> Base.metadata.create_all(engine)
    """
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, echo=echo, **kwargs)

    return create_engine(
        url,
        future=True,
        pool_size=10,  # Number of connections to maintain in the pool
        max_overflow=20,  # Additional connections when pool is exhausted
        pool_pre_ping=True,  # Detect stale connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=echo,
    )


engine: Engine = create_db_engine(DATABASE_URL)


def check_engine_health(db_engine: Engine | None = None) -> bool:
    """
    Check if database engine is healthy and connections are working.

    Used by the /ready endpoint to verify database connectivity before
    allowing traffic to the service.

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
