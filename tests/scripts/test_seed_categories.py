"""Tests for seed_categories script and DEFAULT_CATEGORIES data."""

from unittest.mock import patch

from sqlalchemy.orm import Session

from ledger_api.models.category import UNCATEGORIZED_NAME, Category
from ledger_api.scripts.seed_categories import (
    DEFAULT_CATEGORIES,
    main,
    seed_default_categories,
)


class TestDefaultCategories:
    """Tests for DEFAULT_CATEGORIES structure validity."""

    def test_names_unique(self) -> None:
        """Test no default name appears twice, ignoring case."""
        names = [name.lower() for name, _ in DEFAULT_CATEGORIES]
        assert len(names) == len(set(names))

    def test_every_category_has_icon(self) -> None:
        """Test every default has a non-empty icon."""
        for name, icon in DEFAULT_CATEGORIES:
            assert icon, f"Category {name} missing icon"

    def test_includes_uncategorized(self) -> None:
        """Test the fallback category is seeded."""
        assert UNCATEGORIZED_NAME in [name for name, _ in DEFAULT_CATEGORIES]


class TestSeedDefaultCategories:
    """Tests for seed_default_categories()."""

    def test_creates_all(self, db_session: Session) -> None:
        """Test an empty database gets every default."""
        created = seed_default_categories(db_session)

        assert created == len(DEFAULT_CATEGORIES)
        stored = db_session.query(Category).all()
        assert all(c.is_default and c.user_id is None for c in stored)

    def test_idempotent(self, db_session: Session) -> None:
        """Test a second run creates nothing."""
        seed_default_categories(db_session)

        assert seed_default_categories(db_session) == 0
        assert db_session.query(Category).count() == len(DEFAULT_CATEGORIES)

    def test_fills_gaps(self, db_session: Session) -> None:
        """Test only missing defaults are created."""
        db_session.add(Category(name="shopping", icon="🛍️", is_default=True))
        db_session.commit()

        assert seed_default_categories(db_session) == len(DEFAULT_CATEGORIES) - 1


class TestMain:
    """Tests for the CLI entrypoint."""

    def test_success(self) -> None:
        """Test exit code 0 on success."""
        with patch("ledger_api.scripts.seed_categories.seed_categories", return_value=3), patch(
            "sys.argv", ["seed_categories"]
        ):
            assert main() == 0

    def test_failure(self) -> None:
        """Test exit code 1 when seeding fails."""
        with patch(
            "ledger_api.scripts.seed_categories.seed_categories",
            side_effect=RuntimeError("no database"),
        ), patch("sys.argv", ["seed_categories"]):
            assert main() == 1
