"""MailboxSyncStateRepository for linked mailboxes and their history cursors."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_api.core.timeutils import utcnow
from ledger_api.models.mailbox_sync_state import MailboxSyncState


class MailboxSyncStateNotFoundError(Exception):
    """Raised when no mailbox sync state exists for a user or address."""

    pass


def history_id_is_newer(candidate: str, current: str | None) -> bool:
    """Return True if ``candidate`` is past ``current`` in the change stream.

    Gmail history ids are decimal strings that only increase. Non-numeric
    values cannot be ordered and are never treated as newer than a known
    cursor.
    """
    if current is None:
        return True
    try:
        return int(candidate) > int(current)
    except (TypeError, ValueError):
        return False


class MailboxSyncStateRepository:
    """Repository for per-user mailbox credentials and sync cursor."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create(
        self,
        user_id: str,
        email_address: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        scope: str = "",
    ) -> MailboxSyncState:
        """Create a mailbox link after OAuth authorization."""
        state = MailboxSyncState(
            user_id=user_id,
            email_address=email_address.strip().lower(),
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            scope=scope,
            is_healthy=True,
        )
        self._session.add(state)
        self._session.flush()
        return state

    def find_by_user_id(self, user_id: str) -> MailboxSyncState | None:
        """Find the mailbox link for a user."""
        stmt = select(MailboxSyncState).where(MailboxSyncState.user_id == user_id)
        return self._session.execute(stmt).scalars().first()

    def get_by_user_id(self, user_id: str) -> MailboxSyncState:
        """Get the mailbox link for a user.

        Raises:
            MailboxSyncStateNotFoundError: If the user has no linked mailbox.
        """
        state = self.find_by_user_id(user_id)
        if state is None:
            raise MailboxSyncStateNotFoundError(f"No mailbox linked for user {user_id}")
        return state

    def find_by_email_address(self, email_address: str) -> MailboxSyncState | None:
        """Find the mailbox link for an address (case-insensitive)."""
        stmt = select(MailboxSyncState).where(
            MailboxSyncState.email_address == email_address.strip().lower()
        )
        state = self._session.execute(stmt).scalars().first()
        if state is None:
            # Addresses stored before normalization
            stmt = select(MailboxSyncState).where(
                MailboxSyncState.email_address == email_address
            )
            state = self._session.execute(stmt).scalars().first()
        return state

    def update_credentials(
        self,
        user_id: str,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None,
        email_address: str | None = None,
        scope: str | None = None,
    ) -> MailboxSyncState:
        """Store refreshed or re-authorized OAuth credentials.

        Raises:
            MailboxSyncStateNotFoundError: If the user has no linked mailbox.
        """
        state = self.get_by_user_id(user_id)
        state.access_token = access_token
        state.expires_at = expires_at
        if refresh_token is not None:
            state.refresh_token = refresh_token
        if email_address is not None:
            state.email_address = email_address.strip().lower()
        if scope is not None:
            state.scope = scope
        state.updated_at = utcnow()
        return state

    def advance_history_id(self, state: MailboxSyncState, history_id: str) -> bool:
        """Move the cursor forward to ``history_id``.

        Args:
            state: The sync state to update.
            history_id: Cursor value reported by the provider.

        Returns:
            True if the cursor moved, False if ``history_id`` was not newer.
        """
        if not history_id_is_newer(history_id, state.history_id):
            return False
        state.history_id = history_id
        state.updated_at = utcnow()
        return True

    def reset_history_id(
        self,
        user_id: str,
        history_id: str,
        watch_expiration: datetime | None = None,
        label_ids: list[str] | None = None,
    ) -> MailboxSyncState:
        """Set the cursor after an explicit watch registration.

        This is the only path that may move the cursor backwards.

        Raises:
            MailboxSyncStateNotFoundError: If the user has no linked mailbox.
        """
        state = self.get_by_user_id(user_id)
        state.history_id = history_id
        state.watch_expiration = watch_expiration
        if label_ids is not None:
            state.watch_label_ids = list(label_ids)
        state.is_healthy = True
        state.updated_at = utcnow()
        return state

    def set_filter_sender_emails(self, user_id: str, sender_emails: list[str]) -> MailboxSyncState:
        """Replace the sender allow-list for a user's mailbox."""
        state = self.get_by_user_id(user_id)
        state.filter_sender_emails = [s.strip().lower() for s in sender_emails if s.strip()]
        return state

    def mark_unhealthy(self, state: MailboxSyncState) -> None:
        """Flag the mailbox link as needing re-authorization."""
        state.is_healthy = False
        state.updated_at = utcnow()

    def delete_by_user_id(self, user_id: str) -> None:
        """Remove a user's mailbox link (credential revoked).

        Raises:
            MailboxSyncStateNotFoundError: If the user has no linked mailbox.
        """
        state = self.get_by_user_id(user_id)
        self._session.delete(state)
