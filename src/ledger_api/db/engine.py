"""SQLAlchemy engine configuration."""

from functools import lru_cache

from sqlalchemy import Engine, create_engine

from ledger_api.core.config import settings


def create_db_engine(database_url: str) -> Engine:
    """Create an engine with pool settings suited to the backend.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        A configured Engine.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Return the process-wide engine, created on first use."""
    return create_db_engine(settings.database_url)
