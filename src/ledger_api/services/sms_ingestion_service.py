"""SmsIngestionService for transactions submitted as SMS text."""

import logging

from ledger_api.repositories.category_repository import CategoryRepository
from ledger_api.services.discord_service import DiscordService
from ledger_api.services.transaction_extraction_service import (
    CategoryInfo,
    TransactionExtractionService,
)
from ledger_api.services.transaction_recorder import RecordedTransaction, TransactionRecorder

logger = logging.getLogger(__name__)


class NotATransactionError(Exception):
    """Raised when an SMS does not yield a valid transaction."""

    pass


class SmsIngestionService:
    """Extracts and stores a transaction from a bank SMS.

    SMS messages have no provider id, so there is no duplicate check:
    submitting the same text twice records two transactions.
    """

    def __init__(
        self,
        category_repository: CategoryRepository,
        extraction_service: TransactionExtractionService,
        transaction_recorder: TransactionRecorder,
        discord_service: DiscordService,
    ) -> None:
        self._category_repo = category_repository
        self._extractor = extraction_service
        self._recorder = transaction_recorder
        self._discord = discord_service

    def ingest(self, user_id: str, sms_body: str, sender: str | None = None) -> RecordedTransaction:
        """Extract a transaction from ``sms_body`` and store it.

        Args:
            user_id: Owning user.
            sms_body: The SMS text.
            sender: SMS sender id or number, if known.

        Returns:
            The recorded transaction and its category.

        Raises:
            NotATransactionError: If nothing valid could be extracted.
        """
        categories = [
            CategoryInfo(id=c.id, name=c.name, icon=c.icon)
            for c in self._category_repo.find_all_for_user(user_id)
        ]
        extraction = self._extractor.extract_from_sms(sms_body, categories, sender=sender)
        if extraction.failed:
            self._discord.notify_extractor_failed("sms", extraction.error)
        if not self._extractor.is_valid_transaction(extraction):
            raise NotATransactionError("Could not extract valid transaction from SMS")

        recorded = self._recorder.record(user_id, extraction, sms_body)
        self._recorder.notify(recorded, "api_sms")
        logger.info("Recorded SMS transaction %s for user %s", recorded.transaction.id, user_id)
        return recorded
