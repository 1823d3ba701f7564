"""Seed script for the system default categories."""

import argparse
import sys

from sqlalchemy.orm import Session

from ledger_api.db.session import open_session
from ledger_api.repositories.category_repository import CategoryRepository

# (name, icon); shared by every user and immutable through the API
DEFAULT_CATEGORIES = [
    ("Food and Dining", "🍽️"),
    ("Transportation", "🚗"),
    ("Shopping", "🛍️"),
    ("Bills and Utilities", "📱"),
    ("Entertainment", "🎬"),
    ("Healthcare", "🏥"),
    ("Travel", "✈️"),
    ("Groceries", "🛒"),
    ("Transfers", "💸"),
    ("Salary/Income", "💰"),
    ("Uncategorized", "❓"),
]


def seed_default_categories(db: Session) -> int:
    """Create any missing default categories.

    Safe to run repeatedly: existing defaults are left alone.

    Args:
        db: Session to seed through; committed on success.

    Returns:
        Number of categories created.
    """
    repo = CategoryRepository(db)
    existing = {c.name.lower() for c in repo.find_all_default()}

    created_count = 0
    for name, icon in DEFAULT_CATEGORIES:
        if name.lower() in existing:
            print(f"  Exists:  {icon} {name}")
            continue
        repo.create(name=name, icon=icon, is_default=True)
        created_count += 1
        print(f"  Created: {icon} {name}")

    db.commit()
    print(f"\nTotal categories created: {created_count}")
    return created_count


def seed_categories() -> int:
    """Seed default categories using the configured database."""
    db = open_session()
    try:
        return seed_default_categories(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> int:
    """CLI entrypoint for seed categories script."""
    argparse.ArgumentParser(description="Seed the database with the default categories.").parse_args()

    try:
        seed_categories()
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
