"""TransactionRecorder for persisting extracted transactions."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_api.core.config import Settings
from ledger_api.core.timeutils import local_to_utc
from ledger_api.models.transaction import Transaction
from ledger_api.repositories.transaction_repository import TransactionRepository
from ledger_api.repositories.user_repository import UserRepository
from ledger_api.services.category_resolver import CategoryResolver, ResolvedCategory
from ledger_api.services.discord_service import (
    DiscordService,
    NewTransactionNotice,
    TransactionSource,
)
from ledger_api.services.transaction_extraction_service import ExtractionResult

logger = logging.getLogger(__name__)


@dataclass
class RecordedTransaction:
    """A persisted transaction and the category it was filed under."""

    transaction: Transaction
    category: ResolvedCategory


class TransactionRecorder:
    """Resolves the category of an extraction and stores the transaction.

    Dates stated in a message are wall-clock times in the user's timezone
    and are stored as UTC.
    """

    def __init__(
        self,
        session: Session,
        transaction_repository: TransactionRepository,
        user_repository: UserRepository,
        category_resolver: CategoryResolver,
        discord_service: DiscordService,
        settings: Settings,
    ) -> None:
        self._session = session
        self._transaction_repo = transaction_repository
        self._user_repo = user_repository
        self._resolver = category_resolver
        self._discord = discord_service
        self._settings = settings

    def user_timezone(self, user_id: str) -> str:
        user = self._user_repo.find_by_id(user_id)
        if user is None or not user.timezone:
            return self._settings.default_timezone
        return user.timezone

    def record(
        self,
        user_id: str,
        extraction: ExtractionResult,
        raw_content: str,
        email_id: str | None = None,
        timezone_name: str | None = None,
    ) -> RecordedTransaction:
        """Resolve the category and commit a new transaction.

        Args:
            user_id: Owning user.
            extraction: A result that passed ``is_valid_transaction``.
            raw_content: Source text; truncated before storage.
            email_id: Provider message id, if the source has one.
            timezone_name: User timezone; looked up when omitted.

        Returns:
            RecordedTransaction.

        Raises:
            ValueError: If the extraction carries no transaction.
            sqlalchemy.exc.IntegrityError: If the insert conflicts; the
                session has been rolled back.
        """
        extracted = extraction.transaction
        if extracted is None:
            raise ValueError("Extraction result carries no transaction")

        category = self._resolver.resolve_or_create(extracted.category, user_id)

        transaction_date = None
        if extracted.date is not None:
            transaction_date = local_to_utc(
                extracted.date, extracted.time, timezone_name or self.user_timezone(user_id)
            )

        audit: dict[str, Any] = dict(extraction.raw_output)
        if extraction.category_degraded or category.degraded:
            audit["category_degraded"] = True
            logger.warning(
                "Category resolution degraded for %s; filed under %s",
                email_id or "message",
                category.name,
            )

        try:
            transaction = self._transaction_repo.create(
                user_id=user_id,
                amount=extracted.amount,
                type=extracted.type,
                category_id=category.category_id,
                currency=self._settings.default_currency,
                merchant=extracted.merchant,
                account_number=extracted.account_last_four,
                bank_name=extracted.bank_name,
                transaction_date=transaction_date,
                remarks=extracted.remarks,
                email_id=email_id,
                raw_email_content=raw_content[: self._settings.raw_content_max_length],
                ai_confidence=extracted.confidence,
                ai_extracted_data=audit,
                is_ai_created=True,
            )
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            raise

        logger.info(
            "Transaction saved: %s %s from %s [%s]",
            extracted.type,
            extracted.amount,
            extracted.merchant or "Unknown",
            f"{category.name} (new)" if category.created else category.name,
        )
        return RecordedTransaction(transaction=transaction, category=category)

    def notify(self, recorded: RecordedTransaction, source: TransactionSource) -> None:
        """Announce a recorded transaction downstream."""
        transaction = recorded.transaction
        self._discord.notify_new_transaction(
            NewTransactionNotice(
                id=transaction.id,
                amount=str(transaction.amount),
                type=transaction.type,  # type: ignore[arg-type]
                merchant=transaction.merchant,
                source=source,
                category=recorded.category.name,
                transaction_date=(
                    transaction.transaction_date.isoformat()
                    if transaction.transaction_date
                    else None
                ),
            )
        )
