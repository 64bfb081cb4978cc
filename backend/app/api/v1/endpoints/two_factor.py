from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, get_enrollment_context
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.auth import (
    BackupCodesOut,
    MessageOut,
    TwoFactorDisableIn,
    TwoFactorSetupOut,
    TwoFactorVerifyIn,
)
from backend.app.services import two_factor
from backend.app.services.notification_service import NotificationService, NotificationType

router = APIRouter()


def _notify(notification_type: NotificationType, email: str, name: str) -> None:
    NotificationService().send(notification_type, email, name=name)


@router.post("/generate", response_model=TwoFactorSetupOut)
def generate_secret(
    current_user: User = Depends(get_current_user),
    context: two_factor.EnrollmentContext = Depends(get_enrollment_context),
) -> TwoFactorSetupOut:
    """Start enrollment: returns a provisioning URI and QR code for an authenticator app."""
    enrollment = two_factor.begin_enrollment(current_user, context)
    return TwoFactorSetupOut(
        otpauth_url=enrollment.provisioning_uri,
        qr_code=enrollment.qr_code,
        secret=enrollment.secret,
    )


@router.post("/verify", response_model=BackupCodesOut)
def verify_and_enable(
    body: TwoFactorVerifyIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: two_factor.EnrollmentContext = Depends(get_enrollment_context),
) -> BackupCodesOut:
    """Finish enrollment. The backup codes in the response are shown only once."""
    codes = two_factor.complete_enrollment(db, current_user, context, body.code)
    background_tasks.add_task(
        _notify, NotificationType.TWO_FACTOR_ENABLED, current_user.email, current_user.name
    )
    return BackupCodesOut(detail="2FA has been enabled", backup_codes=codes)


@router.post("/disable", response_model=MessageOut)
def disable(
    body: TwoFactorDisableIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageOut:
    two_factor.disable(db, current_user, code=body.code, password=body.password)
    background_tasks.add_task(
        _notify, NotificationType.TWO_FACTOR_DISABLED, current_user.email, current_user.name
    )
    return MessageOut(detail="2FA has been disabled")
