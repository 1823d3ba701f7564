"""SQLAlchemy declarative base."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Import all models here so they register with Base.metadata
def import_models() -> None:
    """Import all models to register them with SQLAlchemy metadata."""
    from ledger_api.models import (  # noqa: F401
        Category,
        MailboxSyncState,
        Transaction,
        User,
    )
