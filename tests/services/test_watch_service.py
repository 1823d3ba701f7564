"""Tests for GmailWatchService and WatchResyncScheduler."""

import asyncio
import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from ledger_api.core.config import Settings
from ledger_api.models.mailbox_sync_state import MailboxSyncState
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)
from ledger_api.services.gmail_client import WatchRegistration
from ledger_api.services.watch_service import GmailWatchService, WatchResyncScheduler


@pytest.fixture
def gmail() -> MagicMock:
    client = MagicMock()
    client.watch.return_value = WatchRegistration(history_id="500", expiration=datetime(2026, 1, 22))
    return client


@pytest.fixture
def watch_service(db_session: Session, test_settings: Settings, gmail: MagicMock) -> GmailWatchService:
    return GmailWatchService(db_session, MailboxSyncStateRepository(db_session), gmail, test_settings)


class TestStartWatch:
    """Tests for GmailWatchService.start_watch()."""

    def test_resets_cursor(
        self, watch_service: GmailWatchService, gmail: MagicMock, sync_state: MailboxSyncState
    ) -> None:
        """Test registration stores the returned cursor even when it is older."""
        registration = watch_service.start_watch("user-1", label_ids=["INBOX"])

        assert registration.history_id == "500"
        gmail.watch.assert_called_once_with("user-1", "projects/test/topics/gmail", ["INBOX"])
        assert sync_state.history_id == "500"
        assert sync_state.watch_expiration == datetime(2026, 1, 22)
        assert sync_state.watch_label_ids == ["INBOX"]

    def test_explicit_topic(
        self, watch_service: GmailWatchService, gmail: MagicMock, sync_state: MailboxSyncState
    ) -> None:
        """Test a requested topic overrides the configured one."""
        watch_service.start_watch("user-1", topic_name="projects/other/topics/mail")

        assert gmail.watch.call_args.args[1] == "projects/other/topics/mail"

    def test_stored_labels_reused(
        self,
        db_session: Session,
        watch_service: GmailWatchService,
        gmail: MagicMock,
        sync_state: MailboxSyncState,
    ) -> None:
        """Test renewal without labels keeps the previously watched ones."""
        sync_state.watch_label_ids = ["Label_7"]
        db_session.commit()

        watch_service.start_watch("user-1")

        assert gmail.watch.call_args.args[2] == ["Label_7"]

    def test_no_topic(
        self, db_session: Session, gmail: MagicMock, sync_state: MailboxSyncState
    ) -> None:
        """Test a missing topic is rejected before calling Gmail."""
        settings = Settings(database_url="sqlite://", gmail_pubsub_topic="")
        service = GmailWatchService(db_session, MailboxSyncStateRepository(db_session), gmail, settings)

        with pytest.raises(ValueError, match="topic"):
            service.start_watch("user-1")
        gmail.watch.assert_not_called()


class TestStopWatch:
    """Tests for GmailWatchService.stop_watch()."""

    def test_clears_expiration(
        self,
        db_session: Session,
        watch_service: GmailWatchService,
        gmail: MagicMock,
        sync_state: MailboxSyncState,
    ) -> None:
        """Test stopping clears the stored expiration but keeps the cursor."""
        sync_state.watch_expiration = datetime(2026, 1, 22)
        db_session.commit()

        watch_service.stop_watch("user-1")

        gmail.stop_watch.assert_called_once_with("user-1")
        assert sync_state.watch_expiration is None
        assert sync_state.history_id == "1000"


class TestWatchResyncScheduler:
    """Tests for WatchResyncScheduler."""

    def test_renews_on_interval(self) -> None:
        """Test the renew callable runs repeatedly until stopped."""
        calls: list[tuple] = []
        renewed = threading.Event()

        def renew(user_id, topic_name, label_ids) -> None:
            calls.append((user_id, topic_name, label_ids))
            if len(calls) >= 2:
                renewed.set()

        async def scenario() -> None:
            scheduler = WatchResyncScheduler(renew, interval_seconds=0.01)
            scheduler.start("user-1", "projects/test/topics/gmail", ["INBOX"])
            assert scheduler.is_running("user-1")
            for _ in range(200):
                if renewed.is_set():
                    break
                await asyncio.sleep(0.01)
            assert scheduler.stop("user-1") is True
            assert scheduler.is_running("user-1") is False

        asyncio.run(scenario())

        assert len(calls) >= 2
        assert calls[0] == ("user-1", "projects/test/topics/gmail", ["INBOX"])

    def test_failures_do_not_stop_job(self) -> None:
        """Test a failing renewal is retried on the next tick."""
        attempts: list[int] = []

        def renew(user_id, topic_name, label_ids) -> None:
            attempts.append(1)
            raise RuntimeError("Gmail unavailable")

        async def scenario() -> None:
            scheduler = WatchResyncScheduler(renew, interval_seconds=0.01)
            scheduler.start("user-1")
            for _ in range(200):
                if len(attempts) >= 2:
                    break
                await asyncio.sleep(0.01)
            assert scheduler.is_running("user-1")
            await scheduler.shutdown()

        asyncio.run(scenario())

        assert len(attempts) >= 2

    def test_restart_replaces_job(self) -> None:
        """Test starting again for a user keeps a single job."""
        async def scenario() -> None:
            scheduler = WatchResyncScheduler(lambda *args: None, interval_seconds=60)
            scheduler.start("user-1")
            scheduler.start("user-1", "projects/test/topics/other")
            assert scheduler.is_running("user-1")
            assert scheduler.stop("user-1") is True
            assert scheduler.stop("user-1") is False

        asyncio.run(scenario())

    def test_stop_without_job(self) -> None:
        """Test stopping a user without a job reports False."""
        scheduler = WatchResyncScheduler(lambda *args: None, interval_seconds=60)

        assert scheduler.stop("user-1") is False
        assert scheduler.is_running("user-1") is False

    def test_shutdown_stops_all(self) -> None:
        """Test shutdown cancels every job."""
        async def scenario() -> None:
            scheduler = WatchResyncScheduler(lambda *args: None, interval_seconds=60)
            scheduler.start("user-1")
            scheduler.start("user-2")

            await scheduler.shutdown()

            assert scheduler.is_running("user-1") is False
            assert scheduler.is_running("user-2") is False

        asyncio.run(scenario())
