"""TOTP second factor: enrollment, login verification, backup codes, disable.

Enrollment is two-step.  ``begin_enrollment`` parks a fresh secret in the
caller's session (an ``EnrollmentContext``), never on the user row, so an
abandoned or failed enrollment leaves nothing behind that could gate a login.
``complete_enrollment`` promotes the secret once a code generated from it
validates, and issues the backup codes in the same commit.

Backup codes are stored as keyed hashes.  Consuming one is a single
conditional UPDATE (``used = false`` in the WHERE clause), so the same code
cannot authenticate two concurrent requests.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import MutableMapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.app.core import totp
from backend.app.core.config import settings
from backend.app.core.exceptions import InvalidCode, TwoFactorNotEnabled, VerificationFailed
from backend.app.core.security import hash_backup_code
from backend.app.models.backup_code import BackupCode
from backend.app.models.user import User
from backend.app.services import credentials
from backend.app.services.users import write_transaction

logger = logging.getLogger(__name__)

_BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


class EnrollmentContext:
    """Session-scoped slot for the secret of an enrollment in progress.

    Wraps any mutable mapping: ``request.session`` over HTTP, a plain dict in
    tests.  Entries are keyed by user id so one session store can never hand
    a pending secret to a different account.
    """

    def __init__(self, store: MutableMapping[str, Any]) -> None:
        self._store = store

    @staticmethod
    def _key(user_id: UUID) -> str:
        return f"2fa_pending:{user_id}"

    def get(self, user_id: UUID) -> str | None:
        value = self._store.get(self._key(user_id))
        return value if isinstance(value, str) and value else None

    def put(self, user_id: UUID, secret: str) -> None:
        self._store[self._key(user_id)] = secret

    def discard(self, user_id: UUID) -> None:
        self._store.pop(self._key(user_id), None)


@dataclass(frozen=True)
class Enrollment:
    provisioning_uri: str
    qr_code: str
    # Only populated outside production when explicitly enabled
    secret: str | None = None


def generate_backup_codes(
    count: int | None = None, length: int | None = None
) -> list[str]:
    """Return *count* distinct random uppercase alphanumeric codes."""
    count = count or settings.BACKUP_CODE_COUNT
    length = length or settings.BACKUP_CODE_LENGTH
    codes: list[str] = []
    while len(codes) < count:
        code = "".join(secrets.choice(_BACKUP_CODE_ALPHABET) for _ in range(length))
        if code not in codes:
            codes.append(code)
    return codes


def begin_enrollment(user: User, context: EnrollmentContext) -> Enrollment:
    """Generate a provisional secret and hold it in the session only."""
    secret = totp.generate_secret()
    context.put(user.id, secret)

    uri = totp.provisioning_uri(secret, label=user.email, issuer=settings.TOTP_ISSUER)
    logger.info("2fa.enroll.begin user=%s", user.id)
    return Enrollment(
        provisioning_uri=uri,
        qr_code=totp.qr_data_uri(uri),
        secret=secret if settings.expose_totp_secret else None,
    )


def complete_enrollment(
    db: Session, user: User, context: EnrollmentContext, code: str
) -> list[str]:
    """Enable 2FA if *code* matches the pending secret.

    Returns the plaintext backup codes; they are not recoverable afterwards.
    """
    pending = context.get(user.id)
    if pending is None:
        logger.warning("2fa.verify.failed stage=enroll reason=no_pending user=%s", user.id)
        raise InvalidCode("No pending two-factor setup. Generate a new secret first.")

    if not totp.verify(pending, code, window=settings.TOTP_VALID_WINDOW):
        context.discard(user.id)
        logger.warning("2fa.verify.failed stage=enroll reason=bad_code user=%s", user.id)
        raise InvalidCode()

    codes = generate_backup_codes()
    with write_transaction(db):
        user.two_factor_secret = pending
        user.two_factor_enabled = True
        user.backup_codes = [
            BackupCode(position=i, code_hash=hash_backup_code(c), used=False)
            for i, c in enumerate(codes)
        ]
    context.discard(user.id)

    logger.info("2fa.enabled user=%s backup_codes=%d", user.id, len(codes))
    return codes


def consume_backup_code(
    db: Session, user_id: UUID, code_hash: str, now: datetime | None = None
) -> bool:
    """Atomically mark an unused backup code as used.

    Returns False when no unused code with that hash exists.  The caller
    owns the transaction.
    """
    result = db.execute(
        update(BackupCode)
        .where(
            BackupCode.user_id == user_id,
            BackupCode.code_hash == code_hash,
            BackupCode.used.is_(False),
        )
        .values(used=True, used_at=now or credentials.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def verify_at_login(
    db: Session,
    user: User,
    code: str | None = None,
    backup_code: str | None = None,
) -> bool:
    """Second login step: a current TOTP code or one unused backup code."""
    if not user.two_factor_enabled or not user.two_factor_secret:
        raise TwoFactorNotEnabled()

    if bool(code) == bool(backup_code):
        raise InvalidCode("Provide either a verification code or a backup code")

    if code:
        if not totp.verify(user.two_factor_secret, code, window=settings.TOTP_VALID_WINDOW):
            logger.warning("2fa.verify.failed stage=login method=totp user=%s", user.id)
            raise InvalidCode()
        return True

    with write_transaction(db):
        consumed = consume_backup_code(db, user.id, hash_backup_code(backup_code or ""))
    if not consumed:
        logger.warning("2fa.verify.failed stage=login method=backup_code user=%s", user.id)
        raise InvalidCode()

    db.expire(user, ["backup_codes"])
    logger.info(
        "2fa.backup_code.used user=%s remaining=%d", user.id, remaining_backup_codes(user)
    )
    return True


def remaining_backup_codes(user: User) -> int:
    return sum(1 for c in user.backup_codes if not c.used)


def disable(
    db: Session,
    user: User,
    code: str | None = None,
    password: str | None = None,
) -> None:
    """Turn 2FA off after proof of control: a TOTP code, else the password."""
    verified = False
    if code and user.two_factor_secret:
        verified = totp.verify(user.two_factor_secret, code, window=settings.TOTP_VALID_WINDOW)
    if not verified and password:
        verified = credentials.verify_password(user, password)

    if not verified:
        logger.warning("2fa.disable.failed user=%s", user.id)
        raise VerificationFailed(
            "Verification failed. Provide a valid two-factor code or your current password."
        )

    with write_transaction(db):
        user.two_factor_enabled = False
        user.two_factor_secret = None
        user.backup_codes = []
    logger.info("2fa.disabled user=%s", user.id)
