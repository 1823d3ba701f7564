"""Database module for Ledger API."""

from ledger_api.db.base import Base
from ledger_api.db.engine import create_db_engine, get_engine
from ledger_api.db.session import SessionLocal, get_db, open_session

__all__ = ["Base", "create_db_engine", "get_engine", "SessionLocal", "get_db", "open_session"]
