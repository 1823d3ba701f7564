"""Tests for UserRepository."""

import pytest
from sqlalchemy.orm import Session

from ledger_api.models.user import User
from ledger_api.repositories.user_repository import UserNotFoundError, UserRepository


class TestUserRepository:
    """Tests for UserRepository lookups."""

    def test_create_and_get(self, db_session: Session) -> None:
        """Test creating a user and getting it back."""
        repo = UserRepository(db_session)

        repo.create(user_id="user-3", email="three@example.com", timezone="Asia/Kolkata")

        assert repo.get("user-3").timezone == "Asia/Kolkata"

    def test_get_missing_raises(self, db_session: Session) -> None:
        """Test getting a missing user raises."""
        with pytest.raises(UserNotFoundError):
            UserRepository(db_session).get("missing")

    def test_find_by_email(self, db_session: Session, user: User) -> None:
        """Test finding a user by email."""
        repo = UserRepository(db_session)

        assert repo.find_by_email("owner@example.com").id == user.id
        assert repo.find_by_email("nobody@example.com") is None
