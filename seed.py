import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import translate_storage_errors
from models import Category, CategoryType

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[tuple[str, CategoryType], ...] = (
    ("Food & Dining", CategoryType.expense),
    ("Transportation", CategoryType.expense),
    ("Shopping", CategoryType.expense),
    ("Bills & Utilities", CategoryType.expense),
    ("Entertainment", CategoryType.expense),
    ("Healthcare", CategoryType.expense),
    ("Education", CategoryType.expense),
    ("Other Expense", CategoryType.expense),
    ("Salary", CategoryType.income),
    ("Freelance", CategoryType.income),
    ("Investment", CategoryType.income),
    ("Gift", CategoryType.income),
    ("Other Income", CategoryType.income),
)


def seed_default_categories(session: Session) -> int:
    """Insert any missing default categories and return how many were added.

    Existing categories are never touched, so this is safe to run on every
    startup.
    """
    existing = set(session.execute(select(Category.name, Category.type)).tuples())
    missing = [
        Category(name=name, type=type)
        for name, type in DEFAULT_CATEGORIES
        if (name, type) not in existing
    ]
    if not missing:
        return 0
    session.add_all(missing)
    with translate_storage_errors(session):
        session.commit()
    logger.info(f"default_categories_seeded: added={len(missing)}")
    return len(missing)
