from __future__ import annotations

import hashlib
import hmac
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.app.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ALGORITHM = "HS256"

ACCESS_SCOPE = "access"
TWO_FACTOR_SCOPE = "2fa"


def _encode(subject: str, scope: str, expires_delta: timedelta, extra: dict[str, Any] | None) -> str:
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = {"sub": subject, "scope": scope, "iat": now, "exp": now + expires_delta}
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(
    subject: str,
    extra: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    return _encode(
        subject,
        ACCESS_SCOPE,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        extra,
    )


def create_two_factor_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Short-lived token proving the password step of a login succeeded."""
    return _encode(
        subject,
        TWO_FACTOR_SCOPE,
        expires_delta or timedelta(minutes=settings.TWO_FACTOR_TOKEN_EXPIRE_MINUTES),
        None,
    )


def decode_token(token: str, scope: str) -> str | None:
    """Return the ``sub`` claim of *token* if it is valid for *scope*."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("scope") != scope:
        return None
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        return None
    return sub


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def hash_backup_code(code: str) -> str:
    """Keyed one-way hash of a normalised backup code.

    Deterministic so the stored value can be matched inside a single
    conditional UPDATE.
    """
    normalized = normalize_backup_code(code)
    return hmac.new(
        settings.SECRET_KEY.encode("utf-8"), normalized.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def normalize_backup_code(code: str) -> str:
    return re.sub(r"[\s-]", "", code).upper()


def validate_password_strength(password: str) -> str | None:
    """Returns error message if invalid, None if valid."""
    if len(password) < 6:
        return "Password must be at least 6 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one digit"
    return None
