"""MailboxSyncState model: per-user OAuth credentials and history cursor."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_api.core.timeutils import utcnow
from ledger_api.db.base import Base


class MailboxSyncState(Base):
    """Stores a user's linked mailbox and its position in the change stream.

    ``history_id`` stays null until the first watch registration and only moves
    forward afterwards, except when a watch is explicitly re-registered.
    """

    __tablename__ = "mailbox_sync_states"
    __table_args__ = (
        Index("IX_mailbox_sync_states_email", "email_address"),
        Index("IX_mailbox_sync_states_user", "user_id"),
        {"schema": "finance"},
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("finance.users.id", ondelete="CASCADE"), nullable=False
    )
    email_address: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False, default="")
    history_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    watch_label_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    filter_sender_emails: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )  # sender allow-list, empty = accept all
    watch_expiration: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_healthy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="mailbox_sync_states")

    def __repr__(self) -> str:
        return (
            f"<MailboxSyncState(id='{self.id}', email='{self.email_address}', "
            f"history_id={self.history_id!r})>"
        )


# Import at bottom to avoid circular imports
from ledger_api.models.user import User  # noqa: E402
