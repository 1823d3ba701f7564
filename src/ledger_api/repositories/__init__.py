"""Repository layer for data access patterns."""

from ledger_api.repositories.category_repository import (
    CategoryNotFoundError,
    CategoryRepository,
    DefaultCategoryImmutableError,
)
from ledger_api.repositories.mailbox_sync_state_repository import (
    MailboxSyncStateNotFoundError,
    MailboxSyncStateRepository,
    history_id_is_newer,
)
from ledger_api.repositories.transaction_repository import (
    TransactionNotFoundError,
    TransactionRepository,
)
from ledger_api.repositories.user_repository import UserNotFoundError, UserRepository

__all__ = [
    "CategoryNotFoundError",
    "CategoryRepository",
    "DefaultCategoryImmutableError",
    "MailboxSyncStateNotFoundError",
    "MailboxSyncStateRepository",
    "TransactionNotFoundError",
    "TransactionRepository",
    "UserNotFoundError",
    "UserRepository",
    "history_id_is_newer",
]
