from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from backend.app.core.database import get_db
from backend.app.core.security import ACCESS_SCOPE, decode_token
from backend.app.models.user import RoleEnum, User
from backend.app.services.two_factor import EnrollmentContext
from backend.app.services.users import get_user

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # pending 2FA tokens are rejected here
    user_id = decode_token(token, ACCESS_SCOPE)
    if user_id is None:
        raise credentials_exception

    user = get_user(db, user_id)
    if user is None:
        raise credentials_exception
    return user


def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    if current_user.role != RoleEnum.ADMIN:
        logger.warning("Unauthorized admin access attempt by user: %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin privileges required.",
        )
    return current_user


def get_enrollment_context(request: Request) -> EnrollmentContext:
    """Two-factor enrollment state lives in the signed session cookie."""
    return EnrollmentContext(request.session)
