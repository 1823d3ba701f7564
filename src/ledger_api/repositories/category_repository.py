"""CategoryRepository for system default and per-user categories."""

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from ledger_api.models.category import UNCATEGORIZED_NAME, Category


class CategoryNotFoundError(Exception):
    """Raised when a category is not found."""

    pass


class DefaultCategoryImmutableError(Exception):
    """Raised when trying to modify or delete a system default category."""

    pass


class CategoryRepository:
    """Repository for category lookups and creation."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy database session.
        """
        self._session = session

    def _visible_to(self, user_id: str):  # type: ignore[no-untyped-def]
        return or_(Category.user_id.is_(None), Category.user_id == user_id)

    def create(
        self,
        name: str,
        user_id: str | None = None,
        icon: str | None = None,
        is_default: bool = False,
        is_ai_created: bool = False,
    ) -> Category:
        """Create a category.

        Args:
            name: The category name.
            user_id: Owning user, or None for a system default.
            icon: Optional emoji or icon name.
            is_default: Whether this is a system default.
            is_ai_created: Whether the category was created by the extractor.

        Returns:
            The created Category.

        Raises:
            sqlalchemy.exc.IntegrityError: If the user already owns a category
                with this name.
        """
        category = Category(
            name=name,
            user_id=user_id,
            icon=icon,
            is_default=is_default,
            is_ai_created=is_ai_created,
        )
        self._session.add(category)
        self._session.flush()
        return category

    def get(self, category_id: str) -> Category:
        """Get a category by ID.

        Raises:
            CategoryNotFoundError: If the category doesn't exist.
        """
        category = self._session.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        return category

    def find_by_id_for_user(self, category_id: str, user_id: str) -> Category | None:
        """Find a category by ID if it is a default or owned by the user.

        Args:
            category_id: The category ID.
            user_id: The user whose effective set is searched.

        Returns:
            The Category, or None.
        """
        stmt = select(Category).where(
            Category.id == category_id, self._visible_to(user_id)
        )
        return self._session.execute(stmt).scalars().first()

    def find_all_for_user(self, user_id: str) -> list[Category]:
        """Get the user's effective category set (defaults plus own), by name."""
        stmt = select(Category).where(self._visible_to(user_id)).order_by(Category.name)
        return list(self._session.execute(stmt).scalars().all())

    def find_all_default(self) -> list[Category]:
        """Get all system default categories ordered by name."""
        stmt = (
            select(Category)
            .where(Category.is_default == True)  # noqa: E712
            .order_by(Category.name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def find_by_name_for_user(self, name: str, user_id: str) -> Category | None:
        """Find a category by case-insensitive name in the user's effective set.

        The user's own category wins over a default with the same name.

        Args:
            name: Category name.
            user_id: The user ID.

        Returns:
            The matching Category, or None.
        """
        stmt = (
            select(Category)
            .where(
                func.lower(Category.name) == name.strip().lower(),
                self._visible_to(user_id),
            )
            .order_by(case((Category.user_id.is_(None), 1), else_=0))
        )
        return self._session.execute(stmt).scalars().first()

    def find_uncategorized(self) -> Category | None:
        """Find the system default "Uncategorized" category."""
        stmt = select(Category).where(
            Category.name == UNCATEGORIZED_NAME,
            Category.is_default == True,  # noqa: E712
        )
        return self._session.execute(stmt).scalars().first()

    def update(
        self,
        category_id: str,
        user_id: str,
        name: str | None = None,
        icon: str | None = None,
    ) -> Category:
        """Update a user's own category.

        Raises:
            CategoryNotFoundError: If the category doesn't exist for the user.
            DefaultCategoryImmutableError: If the category is a system default.
        """
        category = self._owned(category_id, user_id)
        if name is not None:
            category.name = name
        if icon is not None:
            category.icon = icon
        return category

    def delete(self, category_id: str, user_id: str) -> None:
        """Delete a user's own category.

        Raises:
            CategoryNotFoundError: If the category doesn't exist for the user.
            DefaultCategoryImmutableError: If the category is a system default.
        """
        category = self._owned(category_id, user_id)
        self._session.delete(category)

    def _owned(self, category_id: str, user_id: str) -> Category:
        category = self.find_by_id_for_user(category_id, user_id)
        if category is None:
            raise CategoryNotFoundError(f"Category {category_id} not found")
        if category.is_default or category.user_id is None:
            raise DefaultCategoryImmutableError(
                f"Category {category_id} is a system default and cannot be changed"
            )
        return category

    def has_default_categories(self) -> bool:
        """Check whether any system default categories exist."""
        stmt = select(Category.id).where(Category.is_default == True).limit(1)  # noqa: E712
        return self._session.execute(stmt).first() is not None
