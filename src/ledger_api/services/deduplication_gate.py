"""DeduplicationGate for at-most-once processing of provider messages."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_api.core.timeouts import SessionFactory, query_with_timeout
from ledger_api.repositories.transaction_repository import TransactionRepository

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION_MARKERS = (
    "unique constraint",
    "duplicate key",
    "unique key",
    "23505",  # PostgreSQL unique_violation
    "2627",  # SQL Server unique constraint violation
    "2601",  # SQL Server duplicate key in unique index
)


def is_duplicate_error(error: BaseException) -> bool:
    """Return True if ``error`` is a uniqueness violation from the database.

    Foreign key and check constraint failures also raise IntegrityError and are
    not duplicates.
    """
    if not isinstance(error, IntegrityError):
        return False
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in _UNIQUE_VIOLATION_MARKERS)


class DeduplicationGate:
    """Skips messages that already produced a transaction.

    The existence check saves a model call; it is not atomic with the later
    insert, so the unique ``email_id`` constraint plus ``is_duplicate_error``
    catch the concurrent case.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        lookup_timeout: float = 10.0,
    ) -> None:
        """Initialize the gate.

        Args:
            session_factory: Opens the short-lived session each existence
                check runs on, separate from the caller's unit of work.
            lookup_timeout: Seconds to wait for the existence check.
        """
        self._session_factory = session_factory
        self._lookup_timeout = lookup_timeout

    def should_process(self, email_id: str) -> bool:
        """Check whether a message still needs extraction.

        Args:
            email_id: Provider message id.

        Returns:
            False if a transaction already exists for the message.

        Raises:
            LookupTimeoutError: If the lookup does not finish in time.
        """

        def existing_id(session: Session) -> str | None:
            existing = TransactionRepository(session).find_by_email_id(email_id)
            return existing.id if existing is not None else None

        transaction_id = query_with_timeout(
            self._session_factory,
            existing_id,
            self._lookup_timeout,
            label=f"transaction lookup for {email_id}",
        )
        if transaction_id is not None:
            logger.info("Message %s already processed as %s; skipping extraction", email_id, transaction_id)
            return False
        return True
