"""Database session management."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from ledger_api.db.engine import get_engine

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def open_session() -> Session:
    """Open a session bound to the process-wide engine."""
    return SessionLocal(bind=get_engine())


def sibling_session_factory(session: Session) -> sessionmaker[Session]:
    """Factory for new sessions on the same engine as ``session``."""
    return sessionmaker(bind=session.get_bind(), autoflush=False)


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = open_session()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
