"""User lookups and the write-transaction helper shared by the auth services.

Unlike the read helpers, ``write_transaction`` commits: authentication side
effects (lockout counters, consumed backup codes) must be durable before the
request reports its outcome.  Database errors surface as
``PersistenceFailure`` and are never retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import PersistenceFailure
from backend.app.models.user import User

logger = logging.getLogger(__name__)


@contextmanager
def write_transaction(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll it all back."""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database write failed: %s", exc.__class__.__name__)
        raise PersistenceFailure() from exc
    except Exception:
        db.rollback()
        raise


def get_user(db: Session, user_id: UUID | str) -> User | None:
    """Return a single user by ID or None."""
    if isinstance(user_id, str):
        try:
            user_id = UUID(user_id)
        except ValueError:
            return None
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).scalar_one_or_none()


def save(db: Session, user: User) -> User:
    """Persist *user* and reload it from the database."""
    with write_transaction(db):
        db.add(user)
    db.refresh(user)
    return user
