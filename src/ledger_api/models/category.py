"""Category model for system default and per-user spending categories."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_api.core.timeutils import utcnow
from ledger_api.db.base import Base

UNCATEGORIZED_NAME = "Uncategorized"


class Category(Base):
    """Stores spending categories.

    System defaults have no owner and ``is_default`` set. A user's effective
    category set is the defaults plus the categories they own.
    """

    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="UQ_categories_user_name"),
        Index("IX_categories_user", "user_id"),
        {"schema": "finance"},
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("finance.users.id", ondelete="CASCADE"), nullable=True
    )  # null for system defaults
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_ai_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    user: Mapped["User | None"] = relationship("User", back_populates="categories")
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    @property
    def is_uncategorized(self) -> bool:
        return self.name.lower() == UNCATEGORIZED_NAME.lower()

    def __repr__(self) -> str:
        return f"<Category(id='{self.id}', name='{self.name}', user_id={self.user_id!r})>"


# Import at bottom to avoid circular imports
from ledger_api.models.transaction import Transaction  # noqa: E402
from ledger_api.models.user import User  # noqa: E402
