"""CategoryResolver for turning category decisions into persisted category ids."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_api.models.category import UNCATEGORIZED_NAME, Category
from ledger_api.repositories.category_repository import CategoryRepository
from ledger_api.services.transaction_extraction_service import (
    CategoryDecision,
    CreateNew,
    SelectExisting,
    Uncategorized,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED_ICON = "❓"


@dataclass
class ResolvedCategory:
    """Outcome of resolving a category decision."""

    category_id: str
    name: str
    created: bool = False
    degraded: bool = False


class CategoryResolver:
    """Resolves a category decision to a category that exists in the store.

    Every decision ends at a real category id: unknown references fall back to
    the system Uncategorized category, which is created if it is missing.
    Creation races are tolerated by looking the category up after a failed
    insert rather than by locking.
    """

    def __init__(self, session: Session, category_repository: CategoryRepository) -> None:
        """Initialize the resolver.

        Args:
            session: Session used to commit or roll back category inserts.
            category_repository: Repository for category lookups and inserts.
        """
        self._session = session
        self._category_repo = category_repository

    def _resolved(self, category: Category, created: bool = False, degraded: bool = False) -> ResolvedCategory:
        return ResolvedCategory(
            category_id=category.id, name=category.name, created=created, degraded=degraded
        )

    def _lookup(self, reference: str | None, user_id: str) -> Category | None:
        if not reference:
            return None
        category = self._category_repo.find_by_id_for_user(reference, user_id)
        if category is None:
            category = self._category_repo.find_by_name_for_user(reference, user_id)
        return category

    def uncategorized(self) -> Category:
        """Return the system Uncategorized category, creating it if missing."""
        category = self._category_repo.find_uncategorized()
        if category is not None:
            return category
        logger.warning("Default %s category missing; creating it", UNCATEGORIZED_NAME)
        try:
            category = self._category_repo.create(
                name=UNCATEGORIZED_NAME, icon=UNCATEGORIZED_ICON, is_default=True
            )
            self._session.commit()
            return category
        except IntegrityError:
            self._session.rollback()
            category = self._category_repo.find_uncategorized()
            if category is None:
                raise
            return category

    def _create_for_user(self, decision: CreateNew, user_id: str) -> ResolvedCategory:
        existing = self._category_repo.find_by_name_for_user(decision.name, user_id)
        if existing is not None:
            return self._resolved(existing)

        try:
            category = self._category_repo.create(
                name=decision.name,
                user_id=user_id,
                icon=decision.icon,
                is_default=False,
                is_ai_created=True,
            )
            self._session.commit()
            logger.info(
                "Created category %s %s (%s) for user %s",
                decision.icon or "",
                category.name,
                category.id,
                user_id,
            )
            return self._resolved(category, created=True)
        except IntegrityError:
            self._session.rollback()
            logger.warning(
                "Category %r already created for user %s by a concurrent run; using existing",
                decision.name,
                user_id,
            )

        existing = self._category_repo.find_by_name_for_user(decision.name, user_id)
        if existing is not None:
            return self._resolved(existing)
        logger.error(
            "Category %r could not be created or found for user %s; using %s",
            decision.name,
            user_id,
            UNCATEGORIZED_NAME,
        )
        return self._resolved(self.uncategorized(), degraded=True)

    def resolve_or_create(self, decision: CategoryDecision, user_id: str) -> ResolvedCategory:
        """Resolve a decision to an existing category id.

        Args:
            decision: Category decision from the extractor.
            user_id: The user the transaction belongs to.

        Returns:
            ResolvedCategory whose ``category_id`` exists in the store.
        """
        if isinstance(decision, CreateNew):
            return self._create_for_user(decision, user_id)

        if isinstance(decision, SelectExisting):
            category = self._lookup(decision.category_id, user_id) or self._lookup(
                decision.category_name, user_id
            )
            if category is not None:
                return self._resolved(category)
            logger.warning(
                "Selected category %r (%s) not found for user %s; using %s",
                decision.category_name,
                decision.category_id,
                user_id,
                UNCATEGORIZED_NAME,
            )
            return self._resolved(self.uncategorized(), degraded=True)

        if isinstance(decision, Uncategorized):
            category = self._lookup(decision.category_id, user_id)
            if category is not None:
                return self._resolved(category)
            return self._resolved(self.uncategorized())

        logger.warning("Unknown category decision %r; using %s", decision, UNCATEGORIZED_NAME)
        return self._resolved(self.uncategorized(), degraded=True)
