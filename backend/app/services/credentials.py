"""Password verification and account-lockout bookkeeping.

Lockout state machine (per user):

* Unlocked: failed attempts increment ``login_attempts``.
* Locked: entered when the incremented counter reaches
  ``MAX_LOGIN_ATTEMPTS``; ``lock_until`` is set ``LOCKOUT_MINUTES`` ahead.
  ``lock_until`` is authoritative, ``account_locked`` only mirrors it.
* An expired lock is released lazily by the next attempt: a failure restarts
  the counter at 1, a success at 0.

Counters are changed with conditional UPDATE statements evaluated by the
database, so concurrent requests for the same account (possibly on other
service instances) never lose an increment.  Every change is committed
before returning.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.app.core import security
from backend.app.core.config import settings
from backend.app.models.user import User
from backend.app.services.users import write_transaction

logger = logging.getLogger(__name__)

# Compared against when the account does not exist, so unknown emails cost
# the same bcrypt work as known ones.
_dummy_hash: str | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def verify_password(user: User, plaintext: str) -> bool:
    return security.verify_password(plaintext, user.hashed_password)


def burn_password_check(plaintext: str) -> None:
    """Spend one password verification for a non-existent account."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = security.get_password_hash("not-a-real-password")
    security.verify_password(plaintext, _dummy_hash)


def is_locked(user: User, now: datetime | None = None) -> bool:
    lock_until = as_utc(user.lock_until)
    return lock_until is not None and lock_until > (now or utcnow())


def record_failure(db: Session, user: User, now: datetime | None = None) -> None:
    """Count a failed attempt, locking the account at the threshold."""
    now = now or utcnow()
    with write_transaction(db):
        released = db.execute(
            update(User)
            .where(
                User.id == user.id,
                User.lock_until.is_not(None),
                User.lock_until <= now,
            )
            .values(login_attempts=1, lock_until=None, account_locked=False)
            .execution_options(synchronize_session=False)
        )
        locked_now = False
        if released.rowcount == 0:
            db.execute(
                update(User)
                .where(User.id == user.id)
                .values(login_attempts=User.login_attempts + 1)
                .execution_options(synchronize_session=False)
            )
            locked = db.execute(
                update(User)
                .where(
                    User.id == user.id,
                    User.login_attempts >= settings.MAX_LOGIN_ATTEMPTS,
                )
                .values(
                    account_locked=True,
                    lock_until=now + timedelta(minutes=settings.LOCKOUT_MINUTES),
                )
                .execution_options(synchronize_session=False)
            )
            locked_now = locked.rowcount > 0
    db.refresh(user)

    if released.rowcount:
        logger.info("Expired lock released on failed attempt for user %s", user.id)
    if locked_now:
        logger.warning(
            "account.locked user=%s attempts=%d until=%s",
            user.id,
            user.login_attempts,
            as_utc(user.lock_until),
        )


def record_success(db: Session, user: User, now: datetime | None = None) -> None:
    """Reset lockout bookkeeping after a complete authentication."""
    now = now or utcnow()
    with write_transaction(db):
        db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                login_attempts=0,
                account_locked=False,
                lock_until=None,
                last_login=now,
            )
            .execution_options(synchronize_session=False)
        )
    db.refresh(user)


def release_expired_lock(db: Session, user: User, now: datetime | None = None) -> bool:
    """Clear an elapsed lock without stamping a login.

    Used when the password was right but a second factor is still pending.
    Returns True if a lock was released.
    """
    now = now or utcnow()
    with write_transaction(db):
        result = db.execute(
            update(User)
            .where(
                User.id == user.id,
                User.lock_until.is_not(None),
                User.lock_until <= now,
            )
            .values(login_attempts=0, lock_until=None, account_locked=False)
            .execution_options(synchronize_session=False)
        )
    db.refresh(user)
    return result.rowcount > 0
