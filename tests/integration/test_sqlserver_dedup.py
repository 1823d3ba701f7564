"""Integration tests for duplicate protection on SQL Server."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_api.db.session import sibling_session_factory
from ledger_api.repositories.category_repository import CategoryRepository
from ledger_api.repositories.transaction_repository import TransactionRepository
from ledger_api.repositories.user_repository import UserRepository
from ledger_api.services.deduplication_gate import DeduplicationGate, is_duplicate_error


@pytest.fixture
def sqlserver_user(sqlserver_session: Session) -> str:
    UserRepository(sqlserver_session).create(user_id="it-user", email="it@example.com")
    sqlserver_session.commit()
    return "it-user"


def test_duplicate_email_id_detected(sqlserver_session: Session, sqlserver_user: str) -> None:
    """Test SQL Server's unique violation is recognized as a duplicate."""
    repo = TransactionRepository(sqlserver_session)
    repo.create(user_id=sqlserver_user, amount=Decimal("10.00"), type="debit", email_id="it-m1")
    sqlserver_session.commit()

    with pytest.raises(IntegrityError) as exc_info:
        repo.create(user_id=sqlserver_user, amount=Decimal("10.00"), type="debit", email_id="it-m1")

    assert is_duplicate_error(exc_info.value) is True
    sqlserver_session.rollback()


def test_multiple_sms_transactions_without_email_id(
    sqlserver_session: Session, sqlserver_user: str
) -> None:
    """Test transactions without a message id do not collide on SQL Server."""
    repo = TransactionRepository(sqlserver_session)
    repo.create(user_id=sqlserver_user, amount=Decimal("1.00"), type="debit")
    repo.create(user_id=sqlserver_user, amount=Decimal("2.00"), type="credit")
    sqlserver_session.commit()

    assert len(repo.find_all_for_user(sqlserver_user)) == 2


def test_gate_sees_committed_transaction(sqlserver_session: Session, sqlserver_user: str) -> None:
    """Test the existence check finds a committed message id."""
    repo = TransactionRepository(sqlserver_session)
    repo.create(user_id=sqlserver_user, amount=Decimal("10.00"), type="debit", email_id="it-m2")
    sqlserver_session.commit()

    gate = DeduplicationGate(sibling_session_factory(sqlserver_session))

    assert gate.should_process("it-m2") is False
    assert gate.should_process("it-m3") is True


def test_category_name_unique_per_user(sqlserver_session: Session, sqlserver_user: str) -> None:
    """Test the per-user category name constraint."""
    repo = CategoryRepository(sqlserver_session)
    repo.create(name="Fitness", user_id=sqlserver_user)
    sqlserver_session.commit()

    with pytest.raises(IntegrityError) as exc_info:
        repo.create(name="Fitness", user_id=sqlserver_user)

    assert is_duplicate_error(exc_info.value) is True
    sqlserver_session.rollback()
