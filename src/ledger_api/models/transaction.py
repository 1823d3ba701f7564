"""Transaction model for ledger entries derived from bank notifications."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_api.core.timeutils import utcnow
from ledger_api.db.base import Base

TRANSACTION_TYPES = ("debit", "credit")


class Transaction(Base):
    """Stores financial transactions.

    ``email_id`` is the provider's message id and is unique, so a source
    message can produce at most one transaction even under concurrent delivery.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="CK_transactions_amount_positive"),
        CheckConstraint("type IN ('debit', 'credit')", name="CK_transactions_type"),
        Index("IX_transactions_user_date", "user_id", "transaction_date"),
        # Filtered so that many transactions without a message id can coexist
        Index(
            "UX_transactions_email_id",
            "email_id",
            unique=True,
            mssql_where=text("email_id IS NOT NULL"),
            sqlite_where=text("email_id IS NOT NULL"),
        ),
        {"schema": "finance"},
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("finance.users.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("finance.categories.id", ondelete="SET NULL"), nullable=True
    )

    # Core transaction data
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(6), nullable=False)  # debit | credit
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="NPR")

    # Extracted metadata
    merchant: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_number: Mapped[str | None] = mapped_column(
        String(16), nullable=True
    )  # last digits only
    bank_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    transaction_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Source tracking
    email_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    raw_email_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Extraction metadata
    ai_confidence: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    ai_extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_ai_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    category: Mapped["Category | None"] = relationship(
        "Category", back_populates="transactions"
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id='{self.id}', type={self.type}, amount={self.amount}, "
            f"email_id={self.email_id!r})>"
        )


# Import at bottom to avoid circular imports
from ledger_api.models.category import Category  # noqa: E402
