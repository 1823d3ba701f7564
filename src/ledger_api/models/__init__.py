"""SQLAlchemy models for the Ledger API application."""

from ledger_api.models.category import UNCATEGORIZED_NAME, Category
from ledger_api.models.mailbox_sync_state import MailboxSyncState
from ledger_api.models.transaction import TRANSACTION_TYPES, Transaction
from ledger_api.models.user import User

__all__ = [
    "Category",
    "MailboxSyncState",
    "TRANSACTION_TYPES",
    "Transaction",
    "UNCATEGORIZED_NAME",
    "User",
]
