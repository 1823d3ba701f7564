"""Pytest configuration and fixtures."""

import base64
import json
import os
from collections.abc import Callable, Generator
from datetime import timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_api.container import Container, build_container, get_container
from ledger_api.core.config import Settings
from ledger_api.core.timeutils import utcnow
from ledger_api.db.base import Base, import_models
from ledger_api.main import app
from ledger_api.models.category import Category
from ledger_api.models.mailbox_sync_state import MailboxSyncState
from ledger_api.models.user import User
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)
from ledger_api.repositories.user_repository import UserRepository
from ledger_api.routers.dependencies import get_watch_scheduler
from ledger_api.scripts.seed_categories import seed_default_categories
from ledger_api.services.gmail_client import HistoryPage
from ledger_api.services.transaction_extraction_service import (
    TransactionExtractionService,
)

# ============================================================================
# Helper functions
# ============================================================================


def get_test_database_url() -> str | None:
    """Get database URL from environment for integration tests.

    Returns None if DATABASE_URL is not set, indicating SQL Server is not available.
    """
    return os.environ.get("DATABASE_URL")


def encode_part(text_value: str) -> str:
    """Encode a body part the way Gmail does (base64url, no padding)."""
    return base64.urlsafe_b64encode(text_value.encode("utf-8")).decode("ascii").rstrip("=")


def build_envelope(
    email_address: str, history_id: str | int, message_id: str = "pubsub-1"
) -> dict[str, Any]:
    """Build a Pub/Sub push envelope carrying a Gmail notification."""
    data = json.dumps({"emailAddress": email_address, "historyId": history_id})
    return {
        "message": {
            "data": base64.b64encode(data.encode("utf-8")).decode("ascii"),
            "messageId": message_id,
            "publishTime": "2026-01-15T10:30:00Z",
        },
        "subscription": "projects/test/subscriptions/gmail",
    }


# ============================================================================
# FastAPI test client
# ============================================================================


@pytest.fixture
def client() -> TestClient:
    """Create a test client."""
    return TestClient(app)


# ============================================================================
# Unit test fixtures (SQLite in-memory)
# ============================================================================


@pytest.fixture
def test_engine():
    """Create an in-memory SQLite engine with the 'finance' schema attached.

    Uses StaticPool so that worker threads (bounded lookups, the TestClient)
    share the single connection holding the attached schema.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def setup_sqlite(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("ATTACH DATABASE ':memory:' AS finance")
        cursor.close()

    import_models()
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """Create a file-backed SQLite engine for tests that run real threads.

    Each pooled connection attaches the same 'finance' file, so concurrent
    sessions see one database and contend for its write lock.
    """
    finance_path = tmp_path / "finance.db"
    engine = create_engine(
        f"sqlite:///{tmp_path / 'main.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def setup_sqlite(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"ATTACH DATABASE '{finance_path}' AS finance")
        cursor.close()

    import_models()
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def file_sessions(file_engine) -> sessionmaker[Session]:
    """Session factory over the file-backed engine."""
    return sessionmaker(autoflush=False, bind=file_engine)


@pytest.fixture
def in_memory_db(test_engine) -> Generator[Session, None, None]:
    """Create an in-memory SQLite database session for unit testing."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_session(in_memory_db: Session) -> Session:
    """Alias for in_memory_db fixture (used by unit tests)."""
    return in_memory_db


@pytest.fixture
def test_settings() -> Settings:
    """Settings with test credentials and no external webhooks."""
    return Settings(
        database_url="sqlite://",
        anthropic_api_key="test-key",
        gmail_client_id="client-id",
        gmail_client_secret="client-secret",
        gmail_api_base_url="https://gmail.test/gmail/v1",
        oauth_token_url="https://oauth.test/token",
        gmail_pubsub_topic="projects/test/topics/gmail",
        discord_webhook_url="",
    )


# ============================================================================
# Data fixtures (committed, since services roll back on conflicts)
# ============================================================================


@pytest.fixture
def user(db_session: Session) -> User:
    """A committed user in Kathmandu time."""
    created = UserRepository(db_session).create(
        user_id="user-1", email="owner@example.com", timezone="Asia/Kathmandu"
    )
    db_session.commit()
    return created


@pytest.fixture
def other_user(db_session: Session) -> User:
    """A second committed user."""
    created = UserRepository(db_session).create(
        user_id="user-2", email="someone@example.com", timezone="UTC"
    )
    db_session.commit()
    return created


@pytest.fixture
def default_categories(db_session: Session) -> dict[str, Category]:
    """Seeded default categories keyed by name."""
    seed_default_categories(db_session)
    categories = db_session.query(Category).filter(Category.is_default.is_(True)).all()
    return {c.name: c for c in categories}


@pytest.fixture
def sync_state(db_session: Session, user: User) -> MailboxSyncState:
    """A healthy mailbox link with a valid token and cursor 1000."""
    repo = MailboxSyncStateRepository(db_session)
    state = repo.create(
        user_id=user.id,
        email_address="Owner@Example.com",
        access_token="access-token",
        refresh_token="refresh-token",
        expires_at=utcnow() + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/gmail.modify",
    )
    state.history_id = "1000"
    db_session.commit()
    return state


@pytest.fixture
def make_gmail_message() -> Callable[..., dict[str, Any]]:
    """Factory for Gmail API message resources."""

    def _make(
        message_id: str,
        body: str = "Your account XX1234 has been debited by NPR 500.00 at DARAZ on 2026-01-15.",
        subject: str = "Transaction Alert",
        sender: str = "Nabil Bank <alerts@nabilbank.com>",
        label_ids: list[str] | None = None,
        html: bool = False,
    ) -> dict[str, Any]:
        part = {
            "mimeType": "text/html" if html else "text/plain",
            "body": {"data": encode_part(body)},
        }
        return {
            "id": message_id,
            "threadId": f"thread-{message_id}",
            "labelIds": label_ids if label_ids is not None else ["INBOX", "UNREAD"],
            "snippet": body[:50],
            "payload": {
                "mimeType": "multipart/alternative",
                "headers": [
                    {"name": "From", "value": sender},
                    {"name": "Subject", "value": subject},
                    {"name": "To", "value": "owner@example.com"},
                ],
                "parts": [part],
            },
        }

    return _make


@pytest.fixture
def make_envelope() -> Callable[..., dict[str, Any]]:
    """Factory for Pub/Sub push envelopes."""
    return build_envelope


# ============================================================================
# Router fixtures (container over the in-memory session, mocked externals)
# ============================================================================


@pytest.fixture
def mock_gmail() -> MagicMock:
    """Gmail client reporting no history changes."""
    gmail = MagicMock()
    gmail.get_history.return_value = HistoryPage(history=[], history_id=None, next_page_token=None)
    return gmail


@pytest.fixture
def mock_extractor() -> MagicMock:
    """Extraction service with the real validity check."""
    extractor = MagicMock()
    extractor.is_valid_transaction.side_effect = TransactionExtractionService.is_valid_transaction
    return extractor


@pytest.fixture
def mock_scheduler() -> MagicMock:
    """Watch resync scheduler that records calls."""
    scheduler = MagicMock()
    scheduler.stop.return_value = True
    return scheduler


@pytest.fixture
def api_client(
    db_session: Session,
    test_settings: Settings,
    mock_gmail: MagicMock,
    mock_extractor: MagicMock,
    mock_scheduler: MagicMock,
) -> Generator[TestClient, None, None]:
    """Test client whose container uses the test session and mocked externals."""

    def override_get_container() -> Generator[Container, None, None]:
        yield build_container(
            db_session,
            test_settings,
            gmail_client=mock_gmail,
            extraction_service=mock_extractor,
            discord_service=MagicMock(),
        )

    app.dependency_overrides[get_container] = override_get_container
    app.dependency_overrides[get_watch_scheduler] = lambda: mock_scheduler
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# Integration test fixtures (SQL Server)
# ============================================================================


@pytest.fixture(scope="session")
def sqlserver_engine():
    """Create a SQL Server engine for integration tests."""
    url = get_test_database_url()
    if not url:
        pytest.skip("DATABASE_URL not set - skipping SQL Server integration tests")

    engine = create_engine(url)

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        pytest.skip(f"Could not connect to SQL Server: {e}")

    return engine


@pytest.fixture(scope="session")
def sqlserver_setup(sqlserver_engine):
    """Create the finance schema and all tables once per test session."""
    import_models()

    with sqlserver_engine.connect() as conn:
        conn.execute(
            text(
                "IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = 'finance') "
                "EXEC('CREATE SCHEMA finance')"
            )
        )
        conn.commit()

    Base.metadata.create_all(bind=sqlserver_engine)
    yield sqlserver_engine


@pytest.fixture
def sqlserver_session(sqlserver_setup) -> Generator[Session, None, None]:
    """Create a SQL Server session; data is cleaned up after each test."""
    engine = sqlserver_setup
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()

        with engine.connect() as conn:
            conn.execute(text("DELETE FROM finance.transactions"))
            conn.execute(text("DELETE FROM finance.mailbox_sync_states"))
            conn.execute(text("DELETE FROM finance.categories"))
            conn.execute(text("DELETE FROM finance.users"))
            conn.commit()


# ============================================================================
# Skip markers for conditional test execution
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (SQLite)")
    config.addinivalue_line("markers", "integration: Integration tests (SQL Server)")


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Automatically mark tests based on their location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "models" in str(item.fspath) or "repositories" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
