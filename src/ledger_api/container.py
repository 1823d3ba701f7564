"""Composition root wiring repositories and services for one unit of work."""

from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from ledger_api.core.config import Settings, settings
from ledger_api.db.session import get_db, sibling_session_factory
from ledger_api.repositories.category_repository import CategoryRepository
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)
from ledger_api.repositories.transaction_repository import TransactionRepository
from ledger_api.repositories.user_repository import UserRepository
from ledger_api.services.category_resolver import CategoryResolver
from ledger_api.services.deduplication_gate import DeduplicationGate
from ledger_api.services.discord_service import DiscordService
from ledger_api.services.gmail_client import GmailClient
from ledger_api.services.history_reconciliation_service import (
    HistoryReconciliationService,
)
from ledger_api.services.notification_ingestion_service import (
    NotificationIngestionService,
)
from ledger_api.services.sms_ingestion_service import SmsIngestionService
from ledger_api.services.transaction_extraction_service import (
    TransactionExtractionService,
)
from ledger_api.services.transaction_recorder import TransactionRecorder
from ledger_api.services.watch_service import GmailWatchService


@dataclass
class Container:
    """Repositories and services sharing one database session."""

    session: Session
    settings: Settings
    user_repo: UserRepository
    category_repo: CategoryRepository
    transaction_repo: TransactionRepository
    sync_state_repo: MailboxSyncStateRepository
    gmail_client: GmailClient
    discord_service: DiscordService
    extraction_service: TransactionExtractionService
    category_resolver: CategoryResolver
    deduplication_gate: DeduplicationGate
    reconciliation_service: HistoryReconciliationService
    transaction_recorder: TransactionRecorder
    notification_service: NotificationIngestionService
    sms_service: SmsIngestionService
    watch_service: GmailWatchService

    def close(self) -> None:
        """Release HTTP connections; the session is closed by its owner."""
        self.gmail_client.close()
        self.discord_service.close()


def build_container(
    session: Session,
    app_settings: Settings,
    gmail_client: GmailClient | None = None,
    extraction_service: TransactionExtractionService | None = None,
    discord_service: DiscordService | None = None,
) -> Container:
    """Build every component for ``session``.

    The external clients can be passed in to replace the real ones.
    """
    user_repo = UserRepository(session)
    category_repo = CategoryRepository(session)
    transaction_repo = TransactionRepository(session)
    sync_state_repo = MailboxSyncStateRepository(session)

    gmail = gmail_client or GmailClient(session, sync_state_repo, app_settings)
    discord = discord_service or DiscordService(
        app_settings.discord_webhook_url, app_settings.frontend_base_url
    )
    extractor = extraction_service or TransactionExtractionService(
        api_key=app_settings.anthropic_api_key,
        model=app_settings.extraction_model,
        max_tokens=app_settings.extraction_max_tokens,
        timeout=app_settings.extraction_timeout_seconds,
    )

    resolver = CategoryResolver(session, category_repo)
    lookup_sessions = sibling_session_factory(session)
    dedup = DeduplicationGate(lookup_sessions, lookup_timeout=app_settings.lookup_timeout_seconds)
    reconciler = HistoryReconciliationService(gmail)
    recorder = TransactionRecorder(
        session, transaction_repo, user_repo, resolver, discord, app_settings
    )

    return Container(
        session=session,
        settings=app_settings,
        user_repo=user_repo,
        category_repo=category_repo,
        transaction_repo=transaction_repo,
        sync_state_repo=sync_state_repo,
        gmail_client=gmail,
        discord_service=discord,
        extraction_service=extractor,
        category_resolver=resolver,
        deduplication_gate=dedup,
        reconciliation_service=reconciler,
        transaction_recorder=recorder,
        notification_service=NotificationIngestionService(
            session,
            sync_state_repo,
            category_repo,
            gmail,
            reconciler,
            extractor,
            dedup,
            recorder,
            discord,
            lookup_session_factory=lookup_sessions,
            lookup_timeout=app_settings.lookup_timeout_seconds,
        ),
        sms_service=SmsIngestionService(category_repo, extractor, recorder, discord),
        watch_service=GmailWatchService(session, sync_state_repo, gmail, app_settings),
    )


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    return settings


def get_container(
    db: Annotated[Session, Depends(get_db)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[Container, None, None]:
    """Dependency that provides a container for the request's session."""
    container = build_container(db, app_settings)
    try:
        yield container
    finally:
        container.close()


ContainerDep = Annotated[Container, Depends(get_container)]
