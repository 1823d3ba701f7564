"""User model for application user profiles."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_api.core.timeutils import utcnow
from ledger_api.db.base import Base


class User(Base):
    """Application-level user profile; ``id`` matches the auth provider's subject."""

    __tablename__ = "users"
    __table_args__ = {"schema": "finance"}

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="Asia/Kathmandu"
    )  # IANA timezone name
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    categories: Mapped[list["Category"]] = relationship("Category", back_populates="user")
    mailbox_sync_states: Mapped[list["MailboxSyncState"]] = relationship(
        "MailboxSyncState", back_populates="user"
    )

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', email='{self.email}')>"


# Import at bottom to avoid circular imports
from ledger_api.models.category import Category  # noqa: E402
from ledger_api.models.mailbox_sync_state import MailboxSyncState  # noqa: E402
