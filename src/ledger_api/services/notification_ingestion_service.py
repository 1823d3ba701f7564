"""NotificationIngestionService for Gmail push notifications.

A notification moves through these stages::

    RECEIVED -> DECODED -> ACCOUNT_RESOLVED -> RECONCILED
      -> per message: DEDUP_CHECKED -> FETCHED -> EXTRACTED
         -> CATEGORY_RESOLVED -> PERSISTED -> LABEL_UPDATED
      -> CURSOR_ADVANCED -> ACKNOWLEDGED

Only a malformed envelope is rejected. Every other failure is acknowledged
and left to the history cursor: a batch where everything failed keeps the
cursor where it was, so the next notification covers the same range again.
"""

import base64
import binascii
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_api.core.timeouts import LookupTimeoutError, SessionFactory, query_with_timeout
from ledger_api.db.session import sibling_session_factory
from ledger_api.models.mailbox_sync_state import MailboxSyncState
from ledger_api.repositories.category_repository import CategoryRepository
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateRepository,
)
from ledger_api.services.deduplication_gate import DeduplicationGate, is_duplicate_error
from ledger_api.services.discord_service import DiscordService
from ledger_api.services.gmail_client import (
    UNREAD_LABEL,
    GmailAPIError,
    GmailClient,
    GmailNotFoundError,
)
from ledger_api.services.gmail_message import get_body, get_headers, parse_sender_address
from ledger_api.services.history_reconciliation_service import (
    HistoryReconciliationService,
    HistorySyncError,
    MailboxAuthError,
)
from ledger_api.services.transaction_extraction_service import (
    CategoryInfo,
    TransactionExtractionService,
)
from ledger_api.services.transaction_recorder import TransactionRecorder

logger = logging.getLogger(__name__)


class IngestionStage(str, Enum):
    """Where a notification or message was when it stopped."""

    RECEIVED = "received"
    DECODED = "decoded"
    ACCOUNT_RESOLVED = "account_resolved"
    RECONCILED = "reconciled"
    DEDUP_CHECKED = "dedup_checked"
    FETCHED = "fetched"
    EXTRACTED = "extracted"
    CATEGORY_RESOLVED = "category_resolved"
    PERSISTED = "persisted"
    LABEL_UPDATED = "label_updated"
    CURSOR_ADVANCED = "cursor_advanced"
    ACKNOWLEDGED = "acknowledged"


class MalformedNotificationError(Exception):
    """Raised when a push envelope cannot be decoded."""

    pass


@dataclass
class GmailNotification:
    """Decoded payload of a Gmail push notification."""

    email_address: str
    history_id: str
    message_id: str | None = None
    publish_time: str | None = None


@dataclass
class MessageError:
    """A failure recorded against one message (or ``history``/``auth``)."""

    message_id: str
    stage: IngestionStage
    error: str


@dataclass
class ProcessNotificationResult:
    """Summary of one notification's batch."""

    success: bool
    history_id: str
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: list[MessageError] = field(default_factory=list)
    transaction_ids: list[str] = field(default_factory=list)
    cursor_advanced: bool = False

    @property
    def total_failure(self) -> bool:
        return self.failed_count > 0 and self.processed_count == 0 and self.skipped_count == 0


@dataclass
class IngestionOutcome:
    """What happened to a push notification; always acknowledged."""

    status: Literal["processed", "unknown_account", "lookup_failed"]
    notification: GmailNotification
    result: ProcessNotificationResult | None = None


def _b64decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    if "-" in data or "_" in data:
        return base64.urlsafe_b64decode(padded)
    return base64.b64decode(padded, validate=True)


def decode_notification(envelope: Mapping[str, Any]) -> GmailNotification:
    """Decode a Pub/Sub push envelope into a GmailNotification.

    Raises:
        MalformedNotificationError: If the envelope or its payload is invalid.
    """
    message = envelope.get("message") if isinstance(envelope, Mapping) else None
    if not isinstance(message, Mapping) or not message.get("data"):
        raise MalformedNotificationError("Invalid message format: missing message.data")

    try:
        decoded = _b64decode(str(message["data"])).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, ValueError) as e:
        raise MalformedNotificationError(f"Could not decode message.data: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedNotificationError("Notification payload is not an object")
    email_address = payload.get("emailAddress")
    history_id = payload.get("historyId")
    if not email_address or history_id in (None, ""):
        raise MalformedNotificationError("Notification payload missing emailAddress or historyId")

    return GmailNotification(
        email_address=str(email_address),
        history_id=str(history_id),
        message_id=message.get("messageId"),
        publish_time=message.get("publishTime"),
    )


def _sync_state_id(session: Session, email_address: str) -> str | None:
    state = MailboxSyncStateRepository(session).find_by_email_address(email_address)
    return state.id if state is not None else None


class NotificationIngestionService:
    """Turns a push notification into persisted transactions."""

    def __init__(
        self,
        session: Session,
        sync_state_repository: MailboxSyncStateRepository,
        category_repository: CategoryRepository,
        gmail_client: GmailClient,
        reconciliation_service: HistoryReconciliationService,
        extraction_service: TransactionExtractionService,
        deduplication_gate: DeduplicationGate,
        transaction_recorder: TransactionRecorder,
        discord_service: DiscordService,
        lookup_session_factory: SessionFactory | None = None,
        lookup_timeout: float = 10.0,
    ) -> None:
        self._session = session
        # Bounded lookups never run on the unit-of-work session
        self._lookup_session_factory = lookup_session_factory or sibling_session_factory(session)
        self._sync_state_repo = sync_state_repository
        self._category_repo = category_repository
        self._gmail = gmail_client
        self._reconciler = reconciliation_service
        self._extractor = extraction_service
        self._dedup = deduplication_gate
        self._recorder = transaction_recorder
        self._discord = discord_service
        self._lookup_timeout = lookup_timeout

    def handle_push(self, envelope: Mapping[str, Any]) -> IngestionOutcome:
        """Decode, resolve the mailbox and process one push notification.

        Raises:
            MalformedNotificationError: If the envelope cannot be decoded;
                the only case that should not be acknowledged.
        """
        notification = decode_notification(envelope)
        logger.info(
            "Gmail notification %s for %s at history %s",
            notification.message_id,
            notification.email_address,
            notification.history_id,
        )

        try:
            state_id = query_with_timeout(
                self._lookup_session_factory,
                lambda lookup: _sync_state_id(lookup, notification.email_address),
                self._lookup_timeout,
                label=f"mailbox lookup for {notification.email_address}",
            )
            state = self._session.get(MailboxSyncState, state_id) if state_id is not None else None
        except (LookupTimeoutError, SQLAlchemyError) as e:
            logger.error("Mailbox lookup failed for %s: %s", notification.email_address, e)
            return IngestionOutcome(status="lookup_failed", notification=notification)

        if state is None:
            logger.warning(
                "No mailbox linked for notified address %s; acknowledging",
                notification.email_address,
            )
            return IngestionOutcome(status="unknown_account", notification=notification)

        result = self.process_notification(state, notification)
        return IngestionOutcome(status="processed", notification=notification, result=result)

    def process_notification(
        self, state: MailboxSyncState, notification: GmailNotification
    ) -> ProcessNotificationResult:
        """Process every message added since the stored cursor.

        Args:
            state: The notified mailbox's sync state.
            notification: The decoded notification.

        Returns:
            ProcessNotificationResult; ``success`` is False for auth or
            history failures and when every message failed.
        """
        user_id = state.user_id
        result = ProcessNotificationResult(success=True, history_id=notification.history_id)
        logger.info(
            "Processing notification for user %s: stored history %s, notified %s",
            user_id,
            state.history_id,
            notification.history_id,
        )

        try:
            delta = self._reconciler.reconcile(
                user_id, state.history_id, fallback_cursor=notification.history_id
            )
        except MailboxAuthError as e:
            self._sync_state_repo.mark_unhealthy(state)
            self._session.commit()
            result.success = False
            result.errors.append(MessageError("auth", IngestionStage.RECONCILED, str(e)))
            return result
        except HistorySyncError as e:
            result.success = False
            result.errors.append(MessageError("history", IngestionStage.RECONCILED, str(e)))
            return result

        if delta.cursor_expired:
            result.errors.append(
                MessageError("history", IngestionStage.RECONCILED, "History ID expired or not found")
            )

        if delta.added_message_ids:
            categories = [
                CategoryInfo(id=c.id, name=c.name, icon=c.icon)
                for c in self._category_repo.find_all_for_user(user_id)
            ]
            timezone_name = self._recorder.user_timezone(user_id)
            allowed_senders = {s.lower() for s in (state.filter_sender_emails or [])}
            for message_id in delta.added_message_ids:
                self._process_message(
                    user_id, message_id, categories, timezone_name, allowed_senders, result
                )

        logger.info(
            "Processed %d message(s), %d failed, %d skipped",
            result.processed_count,
            result.failed_count,
            result.skipped_count,
        )

        if result.total_failure:
            result.success = False
            logger.error(
                "Every message failed for user %s; keeping history cursor at %s",
                user_id,
                state.history_id,
            )
            return result

        if self._sync_state_repo.advance_history_id(state, notification.history_id):
            self._session.commit()
            result.cursor_advanced = True
            logger.info("Advanced history cursor to %s for user %s", notification.history_id, user_id)
        return result

    def _process_message(
        self,
        user_id: str,
        message_id: str,
        categories: list[CategoryInfo],
        timezone_name: str,
        allowed_senders: set[str],
        result: ProcessNotificationResult,
    ) -> None:
        stage = IngestionStage.DEDUP_CHECKED
        try:
            if not self._dedup.should_process(message_id):
                result.skipped_count += 1
                return

            stage = IngestionStage.FETCHED
            try:
                message = self._gmail.get_message(user_id, message_id, format="full")
            except GmailNotFoundError:
                logger.warning("Message %s not found (may have been deleted)", message_id)
                result.skipped_count += 1
                return

            headers = get_headers(message)
            body = get_body(message)
            sender = parse_sender_address(headers.get("from"))
            if allowed_senders and sender not in allowed_senders:
                logger.info("Message %s from %s is not an allowed sender; skipping", message_id, sender)
                result.skipped_count += 1
                return
            logger.info(
                "Email %s from %s: %s",
                message_id,
                headers.get("from", "Unknown"),
                headers.get("subject", "(No Subject)"),
            )

            stage = IngestionStage.EXTRACTED
            extraction = self._extractor.extract_from_email(
                body, categories, subject=headers.get("subject"), sender=headers.get("from")
            )
            if extraction.failed:
                self._discord.notify_extractor_failed("email", extraction.error)
                result.failed_count += 1
                result.errors.append(MessageError(message_id, stage, extraction.error or "Extraction failed"))
                return
            if not self._extractor.is_valid_transaction(extraction):
                logger.info("Email %s is not a transaction email, skipping", message_id)
                result.processed_count += 1
                return

            stage = IngestionStage.CATEGORY_RESOLVED
            try:
                recorded = self._recorder.record(
                    user_id, extraction, body, email_id=message_id, timezone_name=timezone_name
                )
            except IntegrityError as e:
                if not is_duplicate_error(e):
                    raise
                logger.info("Duplicate email %s detected (concurrent run), skipping", message_id)
                result.skipped_count += 1
                return

            stage = IngestionStage.LABEL_UPDATED
            if UNREAD_LABEL in (message.get("labelIds") or []):
                try:
                    self._gmail.mark_as_read(user_id, message_id)
                except GmailAPIError as e:
                    logger.error("Failed to mark message %s as read: %s", message_id, e)
                except SQLAlchemyError:
                    # Token refresh commits through the shared session
                    self._session.rollback()
                    logger.exception("Failed to mark message %s as read", message_id)
                except Exception:
                    logger.exception("Failed to mark message %s as read", message_id)

            self._recorder.notify(recorded, "gmail")
            result.processed_count += 1
            result.transaction_ids.append(recorded.transaction.id)
        except Exception as e:
            self._session.rollback()
            logger.exception("Failed to process message %s at %s", message_id, stage.value)
            result.failed_count += 1
            result.errors.append(MessageError(message_id, stage, str(e)))
