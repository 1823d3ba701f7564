"""Business logic services."""

from ledger_api.services.category_resolver import CategoryResolver, ResolvedCategory
from ledger_api.services.deduplication_gate import DeduplicationGate, is_duplicate_error
from ledger_api.services.discord_service import DiscordService, NewTransactionNotice
from ledger_api.services.gmail_client import (
    GmailAPIError,
    GmailAuthError,
    GmailClient,
    GmailCredentialsMissingError,
    GmailNotFoundError,
    GmailTransientError,
)
from ledger_api.services.history_reconciliation_service import (
    HistoryDelta,
    HistoryReconciliationService,
    HistorySyncError,
    MailboxAuthError,
)
from ledger_api.services.notification_ingestion_service import (
    GmailNotification,
    IngestionStage,
    MalformedNotificationError,
    NotificationIngestionService,
    ProcessNotificationResult,
    decode_notification,
)
from ledger_api.services.sms_ingestion_service import NotATransactionError, SmsIngestionService
from ledger_api.services.transaction_extraction_service import (
    CategoryInfo,
    CreateNew,
    ExtractionResult,
    SelectExisting,
    TransactionExtractionError,
    TransactionExtractionService,
    Uncategorized,
)
from ledger_api.services.transaction_recorder import RecordedTransaction, TransactionRecorder
from ledger_api.services.watch_service import GmailWatchService, WatchResyncScheduler

__all__ = [
    "CategoryInfo",
    "CategoryResolver",
    "CreateNew",
    "DeduplicationGate",
    "DiscordService",
    "ExtractionResult",
    "GmailAPIError",
    "GmailAuthError",
    "GmailClient",
    "GmailCredentialsMissingError",
    "GmailNotFoundError",
    "GmailNotification",
    "GmailTransientError",
    "GmailWatchService",
    "HistoryDelta",
    "HistoryReconciliationService",
    "HistorySyncError",
    "IngestionStage",
    "MailboxAuthError",
    "MalformedNotificationError",
    "NewTransactionNotice",
    "NotATransactionError",
    "NotificationIngestionService",
    "ProcessNotificationResult",
    "RecordedTransaction",
    "ResolvedCategory",
    "SelectExisting",
    "SmsIngestionService",
    "TransactionExtractionError",
    "TransactionExtractionService",
    "TransactionRecorder",
    "Uncategorized",
    "WatchResyncScheduler",
    "decode_notification",
    "is_duplicate_error",
]
