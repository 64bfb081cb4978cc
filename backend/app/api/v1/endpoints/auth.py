from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.core.database import get_db
from backend.app.schemas.auth import LoginIn, LoginOut, RegisterIn, TokenOut, TwoFactorLoginIn, UserOut
from backend.app.services import auth as auth_service

router = APIRouter()


@router.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
def register(body: RegisterIn, db: Session = Depends(get_db)) -> TokenOut:
    user = auth_service.register(db, name=body.name, email=body.email, password=body.password)
    return TokenOut(
        access_token=auth_service.issue_access_token(user),
        user=UserOut.model_validate(user),
    )


@router.post("/login", response_model=LoginOut)
def login(body: LoginIn, db: Session = Depends(get_db)) -> LoginOut:
    """Password step. With 2FA enabled, returns a pending token instead of an access token."""
    result = auth_service.login(db, email=body.email, password=body.password)
    if result.two_factor_required:
        return LoginOut(
            two_factor_required=True,
            pending_token=result.pending_token,
            detail="Please complete two-factor authentication",
        )
    return LoginOut(
        access_token=result.access_token,
        user=UserOut.model_validate(result.user),
    )


@router.post("/2fa/login", response_model=TokenOut)
def login_second_factor(body: TwoFactorLoginIn, db: Session = Depends(get_db)) -> TokenOut:
    result = auth_service.login_second_factor(
        db,
        pending_token=body.pending_token,
        code=body.code,
        backup_code=body.backup_code,
    )
    return TokenOut(
        access_token=result.access_token or "",
        user=UserOut.model_validate(result.user),
    )
