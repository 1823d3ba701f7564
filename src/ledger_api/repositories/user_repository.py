"""UserRepository for application user profiles."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_api.models.user import User


class UserNotFoundError(Exception):
    """Raised when a user is not found."""

    pass


class UserRepository:
    """Repository for user profile lookups."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def create(self, user_id: str, email: str, timezone: str = "Asia/Kathmandu") -> User:
        """Create a user profile."""
        user = User(id=user_id, email=email, timezone=timezone)
        self._session.add(user)
        self._session.flush()
        return user

    def find_by_id(self, user_id: str) -> User | None:
        """Find a user by ID."""
        return self._session.get(User, user_id)

    def get(self, user_id: str) -> User:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        user = self.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def find_by_email(self, email: str) -> User | None:
        """Find a user by email address."""
        stmt = select(User).where(User.email == email)
        return self._session.execute(stmt).scalar_one_or_none()
