"""TransactionRepository for ledger entries."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_api.models.transaction import TRANSACTION_TYPES, Transaction


class TransactionNotFoundError(Exception):
    """Raised when a transaction is not found."""

    pass


class TransactionRepository:
    """Repository for transaction persistence and lookup."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create(
        self,
        user_id: str,
        amount: Decimal,
        type: str,
        category_id: str | None = None,
        currency: str = "NPR",
        merchant: str | None = None,
        account_number: str | None = None,
        bank_name: str | None = None,
        transaction_date: datetime | None = None,
        remarks: str | None = None,
        email_id: str | None = None,
        raw_email_content: str | None = None,
        ai_confidence: Decimal | None = None,
        ai_extracted_data: dict[str, Any] | None = None,
        is_ai_created: bool = False,
    ) -> Transaction:
        """Create a transaction and flush it.

        Args:
            user_id: Owning user.
            amount: Positive magnitude.
            type: "debit" or "credit".
            category_id: Optional category.
            currency: ISO currency code.
            merchant: Merchant name if known.
            account_number: Account/card suffix if known.
            bank_name: Bank name if known.
            transaction_date: When the transaction happened, if stated.
            remarks: Free-text remarks from the message.
            email_id: Provider message id (unique).
            raw_email_content: Bounded excerpt of the source message.
            ai_confidence: Extraction confidence in [0, 1].
            ai_extracted_data: Structured extraction payload for audit.
            is_ai_created: Whether the pipeline created the transaction.

        Returns:
            The created Transaction.

        Raises:
            ValueError: If amount is not positive or type is unknown.
            sqlalchemy.exc.IntegrityError: If ``email_id`` already exists.
        """
        if amount <= 0:
            raise ValueError(f"Transaction amount must be positive, got {amount}")
        if type not in TRANSACTION_TYPES:
            raise ValueError(f"Unknown transaction type: {type}")

        transaction = Transaction(
            user_id=user_id,
            category_id=category_id,
            amount=amount,
            type=type,
            currency=currency,
            merchant=merchant,
            account_number=account_number,
            bank_name=bank_name,
            transaction_date=transaction_date,
            remarks=remarks,
            email_id=email_id,
            raw_email_content=raw_email_content,
            ai_confidence=ai_confidence,
            ai_extracted_data=ai_extracted_data,
            is_ai_created=is_ai_created,
        )
        self._session.add(transaction)
        self._session.flush()
        return transaction

    def get(self, transaction_id: str) -> Transaction:
        """Get a transaction by ID.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist.
        """
        transaction = self._session.get(Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    def find_by_email_id(self, email_id: str) -> Transaction | None:
        """Find the transaction created from a provider message, if any."""
        stmt = select(Transaction).where(Transaction.email_id == email_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def find_all_for_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[Transaction]:
        """List a user's transactions, newest first."""
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self._session.execute(stmt).scalars().all())

    def update(
        self,
        transaction_id: str,
        category_id: str | None = None,
        merchant: str | None = None,
        remarks: str | None = None,
        transaction_date: datetime | None = None,
    ) -> Transaction:
        """Update the user-editable fields of a transaction.

        Args:
            transaction_id: The transaction ID.
            category_id: New category (None to keep current).
            merchant: New merchant (None to keep current).
            remarks: New remarks (None to keep current).
            transaction_date: New date (None to keep current).

        Returns:
            The updated Transaction.

        Raises:
            TransactionNotFoundError: If the transaction doesn't exist.
        """
        transaction = self.get(transaction_id)

        if category_id is not None:
            transaction.category_id = category_id
        if merchant is not None:
            transaction.merchant = merchant
        if remarks is not None:
            transaction.remarks = remarks
        if transaction_date is not None:
            transaction.transaction_date = transaction_date

        return transaction
