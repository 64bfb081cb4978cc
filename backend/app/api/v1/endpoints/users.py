from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.auth import ProfileOut, ProfileUpdateIn
from backend.app.services.auth import update_profile
from backend.app.services.two_factor import remaining_backup_codes

router = APIRouter()


def _profile(user: User) -> ProfileOut:
    out = ProfileOut.model_validate(user)
    out.backup_codes_remaining = remaining_backup_codes(user) if user.two_factor_enabled else 0
    return out


@router.get("/me", response_model=ProfileOut)
def read_current_user(current_user: User = Depends(get_current_user)) -> ProfileOut:
    return _profile(current_user)


@router.put("/profile", response_model=ProfileOut)
def update_current_user(
    body: ProfileUpdateIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ProfileOut:
    """Update name, email or password. Email and password changes need ``current_password``."""
    user = update_profile(
        db,
        current_user,
        name=body.name,
        email=body.email,
        password=body.password,
        current_password=body.current_password,
    )
    return _profile(user)
