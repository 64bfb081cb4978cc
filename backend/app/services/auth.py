"""Registration, login orchestration and self-service profile updates.

Login is password first (``credentials``), then, when the account has 2FA
enabled, a second request carrying the short-lived pending token and a TOTP
or backup code (``two_factor``).  The lockout counter is only reset once the
whole sequence succeeds.

Locked accounts and wrong passwords raise different exceptions so they can
be logged apart, but both map to the same client-facing error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import (
    AccountLocked,
    EmailAlreadyRegistered,
    InvalidCode,
    InvalidCredentials,
    PersistenceFailure,
    VerificationFailed,
)
from backend.app.core.security import (
    TWO_FACTOR_SCOPE,
    create_access_token,
    create_two_factor_token,
    decode_token,
    get_password_hash,
)
from backend.app.models.user import RoleEnum, User
from backend.app.services import credentials, two_factor
from backend.app.services.users import get_user, get_user_by_email, save, write_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str | None = None
    pending_token: str | None = None

    @property
    def two_factor_required(self) -> bool:
        return self.access_token is None


def issue_access_token(user: User) -> str:
    return create_access_token(subject=str(user.id), extra={"role": user.role.value})


def register(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    role: RoleEnum = RoleEnum.USER,
) -> User:
    """Create an account. Raises EmailAlreadyRegistered if the email is taken."""
    email = email.strip().lower()
    if get_user_by_email(db, email) is not None:
        logger.warning("Registration attempt with existing email: %s", email)
        raise EmailAlreadyRegistered()

    user = User(
        name=name.strip(),
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
    )
    try:
        save(db, user)
    except PersistenceFailure as exc:
        # lost a race with a concurrent registration for the same email
        if isinstance(exc.__cause__, IntegrityError):
            raise EmailAlreadyRegistered() from exc
        raise
    logger.info("New user registered: %s", user.id)
    return user


def login(
    db: Session, *, email: str, password: str, now: datetime | None = None
) -> LoginResult:
    """Password step of a login."""
    now = now or credentials.utcnow()
    user = get_user_by_email(db, email)
    if user is None:
        credentials.burn_password_check(password)
        logger.warning("login.failed reason=unknown_email email=%s", email.strip().lower())
        raise InvalidCredentials()

    if credentials.is_locked(user, now):
        # same bcrypt cost as any other rejected attempt
        credentials.verify_password(user, password)
        logger.warning("login.locked user=%s until=%s", user.id, credentials.as_utc(user.lock_until))
        raise AccountLocked()

    if not credentials.verify_password(user, password):
        credentials.record_failure(db, user, now)
        logger.warning(
            "login.failed reason=bad_password user=%s attempts=%d", user.id, user.login_attempts
        )
        raise InvalidCredentials()

    if user.two_factor_enabled:
        credentials.release_expired_lock(db, user, now)
        logger.info("2FA required for user login: %s", user.id)
        return LoginResult(user=user, pending_token=create_two_factor_token(str(user.id)))

    credentials.record_success(db, user, now)
    logger.info("User logged in: %s", user.id)
    return LoginResult(user=user, access_token=issue_access_token(user))


def login_second_factor(
    db: Session,
    *,
    pending_token: str,
    code: str | None = None,
    backup_code: str | None = None,
    now: datetime | None = None,
) -> LoginResult:
    """Second-factor step of a login; a failed code counts toward lockout."""
    now = now or credentials.utcnow()
    user_id = decode_token(pending_token, TWO_FACTOR_SCOPE)
    user = get_user(db, user_id) if user_id else None
    if user is None:
        logger.warning("login.failed reason=bad_pending_token")
        raise InvalidCredentials()

    if credentials.is_locked(user, now):
        logger.warning("login.locked stage=2fa user=%s", user.id)
        raise AccountLocked()

    try:
        two_factor.verify_at_login(db, user, code=code, backup_code=backup_code)
    except InvalidCode:
        credentials.record_failure(db, user, now)
        raise

    credentials.record_success(db, user, now)
    logger.info("Successful 2FA login for user: %s", user.id)
    return LoginResult(user=user, access_token=issue_access_token(user))


def update_profile(
    db: Session,
    user: User,
    *,
    name: str | None = None,
    email: str | None = None,
    password: str | None = None,
    current_password: str | None = None,
) -> User:
    """Update the caller's own profile.

    Changing the email or password requires the current password.
    """
    new_email = email.strip().lower() if email else None
    changing_email = new_email is not None and new_email != user.email
    changing_password = bool(password)

    if changing_email or changing_password:
        if not current_password:
            logger.warning(
                "Profile update without current password for user %s", user.id
            )
            raise VerificationFailed("Current password is required to change email or password")
        if not credentials.verify_password(user, current_password):
            logger.warning("Profile update with incorrect current password for user %s", user.id)
            raise VerificationFailed("Current password is incorrect")

    if changing_email:
        existing = get_user_by_email(db, new_email or "")
        if existing is not None and existing.id != user.id:
            raise EmailAlreadyRegistered("Email already in use")

    try:
        with write_transaction(db):
            if name:
                user.name = name.strip()
            if changing_email:
                user.email = new_email or user.email
            if changing_password:
                user.hashed_password = get_password_hash(password or "")
                user.login_attempts = 0
    except PersistenceFailure as exc:
        if changing_email and isinstance(exc.__cause__, IntegrityError):
            raise EmailAlreadyRegistered("Email already in use") from exc
        raise
    db.refresh(user)

    if changing_password:
        logger.info("Password changed for user %s", user.id)
    logger.info("Profile updated for user %s", user.id)
    return user
