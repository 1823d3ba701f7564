"""HistoryReconciliationService for turning a history cursor into a mailbox delta."""

import logging
from dataclasses import dataclass, field
from typing import Any

from ledger_api.services.gmail_client import (
    GmailAuthError,
    GmailClient,
    GmailNotFoundError,
)

logger = logging.getLogger(__name__)


class MailboxAuthError(Exception):
    """Raised when the mailbox credential is invalid or revoked.

    Retrying will not help; the mailbox link needs re-authorization.
    """

    pass


class HistorySyncError(Exception):
    """Raised when the history fetch failed for a retryable reason."""

    pass


@dataclass
class LabelChange:
    """A label added to or removed from a message."""

    message_id: str
    label_ids: list[str]
    added: bool


@dataclass
class HistoryDelta:
    """Mailbox changes since a cursor."""

    new_cursor: str | None
    added_message_ids: list[str] = field(default_factory=list)
    removed_message_ids: list[str] = field(default_factory=list)
    label_changes: list[LabelChange] = field(default_factory=list)
    cursor_expired: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.added_message_ids or self.removed_message_ids or self.label_changes)


def _message_id(entry: dict[str, Any]) -> str | None:
    message = entry.get("message") or {}
    return message.get("id")


def _append_unique(target: list[str], seen: set[str], message_id: str | None) -> None:
    if message_id and message_id not in seen:
        seen.add(message_id)
        target.append(message_id)


class HistoryReconciliationService:
    """Fetches the mailbox change delta since a cursor.

    Reconciliation reads from the provider only and never touches stored
    state, so it can be repeated safely by the webhook and the resync loop.
    """

    def __init__(self, gmail_client: GmailClient) -> None:
        """Initialize the service.

        Args:
            gmail_client: Client used to page through the history API.
        """
        self._gmail = gmail_client

    def reconcile(
        self,
        user_id: str,
        since_cursor: str | None,
        fallback_cursor: str | None = None,
    ) -> HistoryDelta:
        """Collect the changes since ``since_cursor``.

        Args:
            user_id: Owner of the mailbox.
            since_cursor: Stored cursor; may be None before the first sync.
            fallback_cursor: Cursor to start from when nothing is stored yet
                (usually the one carried by the push notification).

        Returns:
            HistoryDelta with message ids de-duplicated in first-seen order.
            An expired cursor yields an empty delta with ``cursor_expired``.

        Raises:
            MailboxAuthError: If the credential is missing, invalid or revoked.
            HistorySyncError: On any other fetch failure.
        """
        start = since_cursor or fallback_cursor
        if not start:
            logger.warning("No history cursor available for user %s; nothing to reconcile", user_id)
            return HistoryDelta(new_cursor=None)

        delta = HistoryDelta(new_cursor=start)
        seen_added: set[str] = set()
        seen_removed: set[str] = set()
        page_token: str | None = None

        try:
            while True:
                page = self._gmail.get_history(user_id, start, page_token=page_token)
                for entry in page.history:
                    for added in entry.get("messagesAdded") or []:
                        _append_unique(delta.added_message_ids, seen_added, _message_id(added))
                    for deleted in entry.get("messagesDeleted") or []:
                        _append_unique(delta.removed_message_ids, seen_removed, _message_id(deleted))
                    for key, is_added in (("labelsAdded", True), ("labelsRemoved", False)):
                        for change in entry.get(key) or []:
                            message_id = _message_id(change)
                            if message_id:
                                delta.label_changes.append(
                                    LabelChange(
                                        message_id=message_id,
                                        label_ids=list(change.get("labelIds") or []),
                                        added=is_added,
                                    )
                                )
                if page.history_id:
                    delta.new_cursor = page.history_id
                page_token = page.next_page_token
                if not page_token:
                    break
        except GmailNotFoundError:
            logger.warning("History id %s not found or expired for user %s", start, user_id)
            return HistoryDelta(new_cursor=None, cursor_expired=True)
        except GmailAuthError as e:
            logger.error("Mailbox credential invalid for user %s: %s", user_id, e)
            raise MailboxAuthError(str(e)) from e
        except Exception as e:
            logger.error("Failed to fetch history for user %s: %s", user_id, e)
            raise HistorySyncError(str(e)) from e

        # Messages both added and deleted within the window are gone already
        removed = set(delta.removed_message_ids)
        delta.added_message_ids = [m for m in delta.added_message_ids if m not in removed]

        logger.info(
            "History since %s for user %s: %d added, %d removed, %d label changes",
            start,
            user_id,
            len(delta.added_message_ids),
            len(delta.removed_message_ids),
            len(delta.label_changes),
        )
        return delta
