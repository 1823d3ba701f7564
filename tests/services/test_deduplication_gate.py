"""Tests for DeduplicationGate and is_duplicate_error."""

import threading
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_api.core.timeouts import LookupTimeoutError
from ledger_api.db.session import sibling_session_factory
from ledger_api.models.user import User
from ledger_api.repositories.transaction_repository import TransactionRepository
from ledger_api.services.deduplication_gate import DeduplicationGate, is_duplicate_error


class TestShouldProcess:
    """Tests for DeduplicationGate.should_process()."""

    def test_new_message(self, db_session: Session, user: User) -> None:
        """Test an unseen message should be processed."""
        gate = DeduplicationGate(sibling_session_factory(db_session))

        assert gate.should_process("msg-new") is True

    def test_processed_message(self, db_session: Session, user: User) -> None:
        """Test a message with a transaction is skipped."""
        repo = TransactionRepository(db_session)
        repo.create(user_id=user.id, amount=Decimal("1"), type="debit", email_id="msg-1")
        db_session.commit()
        gate = DeduplicationGate(sibling_session_factory(db_session))

        assert gate.should_process("msg-1") is False

    @patch("ledger_api.services.deduplication_gate.TransactionRepository")
    def test_slow_lookup_times_out(self, mock_repo_cls: MagicMock) -> None:
        """Test a hanging lookup raises instead of blocking the handler."""
        release = threading.Event()
        mock_repo_cls.return_value.find_by_email_id.side_effect = lambda _email_id: release.wait(5)
        gate = DeduplicationGate(MagicMock(), lookup_timeout=0.05)

        try:
            with pytest.raises(LookupTimeoutError):
                gate.should_process("msg-1")
        finally:
            release.set()

    @patch("ledger_api.services.deduplication_gate.TransactionRepository")
    def test_abandoned_lookup_keeps_its_own_session(
        self, mock_repo_cls: MagicMock, db_session: Session, user: User
    ) -> None:
        """Test a timed-out lookup finishes on its own session while the caller commits."""
        release = threading.Event()
        closed = threading.Event()
        lookup_session = MagicMock(spec=Session)
        lookup_session.close.side_effect = lambda: closed.set()
        mock_repo_cls.return_value.find_by_email_id.side_effect = lambda _email_id: release.wait(5)
        gate = DeduplicationGate(lambda: lookup_session, lookup_timeout=0.05)

        try:
            with pytest.raises(LookupTimeoutError):
                gate.should_process("msg-1")

            TransactionRepository(db_session).create(
                user_id=user.id, amount=Decimal("1"), type="debit", email_id="msg-2"
            )
            db_session.commit()
        finally:
            release.set()

        assert closed.wait(1)
        mock_repo_cls.assert_called_once_with(lookup_session)
        assert lookup_session is not db_session
        assert TransactionRepository(db_session).find_by_email_id("msg-2") is not None

    @patch("ledger_api.services.deduplication_gate.TransactionRepository")
    def test_lookup_errors_propagate(self, mock_repo_cls: MagicMock) -> None:
        """Test database errors surface to the caller and the lookup session is closed."""
        lookup_session = MagicMock(spec=Session)
        mock_repo_cls.return_value.find_by_email_id.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError, match="connection lost"):
            DeduplicationGate(lambda: lookup_session).should_process("msg-1")
        lookup_session.close.assert_called_once()

class TestIsDuplicateError:
    """Tests for is_duplicate_error()."""

    @pytest.mark.parametrize(
        "message",
        [
            "UNIQUE constraint failed: transactions.email_id",
            "Violation of UNIQUE KEY constraint 'UQ_x'. Cannot insert duplicate key (2627)",
            'duplicate key value violates unique constraint "transactions_email_id_key"',
        ],
    )
    def test_unique_violations(self, message: str) -> None:
        """Test uniqueness failures from each backend are recognized."""
        error = IntegrityError("INSERT", {}, Exception(message))

        assert is_duplicate_error(error) is True

    def test_foreign_key_violation(self) -> None:
        """Test other integrity failures are not duplicates."""
        error = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

        assert is_duplicate_error(error) is False

    def test_non_integrity_error(self) -> None:
        """Test unrelated exceptions are not duplicates."""
        assert is_duplicate_error(ValueError("unique constraint")) is False
