"""Seeding of the built-in document categories."""

import logging

from sqlalchemy.orm import Session

from models.category import Category, DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)


def ensure_default_categories(db: Session) -> int:
    """Insert any missing default category. Returns how many were added.

    Categories are matched by name, so renamed or deleted defaults come back
    on the next run under their original name.
    """
    existing = {name for (name,) in db.query(Category.name).all()}
    added = 0
    for name, description in DEFAULT_CATEGORIES:
        if name not in existing:
            db.add(Category(name=name, description=description))
            added += 1
    if added:
        db.commit()
        logger.info(f"Seeded {added} default categories")
    return added
