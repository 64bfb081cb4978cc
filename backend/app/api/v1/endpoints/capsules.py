from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_admin
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.capsule import DeliveryOut, DeliveryResultOut
from backend.app.services.delivery import deliver_due_capsules

router = APIRouter()


@router.post("/deliver", response_model=DeliveryOut)
def deliver(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
) -> DeliveryOut:
    """Deliver due capsules now instead of waiting for the scheduled run. Admin only."""
    report = deliver_due_capsules(db)
    if report.skipped:
        detail = "Email delivery is disabled"
    elif report.count == 0:
        detail = "No capsules to deliver"
    else:
        detail = "Delivery process completed"
    return DeliveryOut(
        detail=detail,
        skipped=report.skipped,
        count=report.count,
        delivered=report.delivered,
        failed=report.failed,
        results=[
            DeliveryResultOut(id=r.capsule_id, success=r.success, error=r.error)
            for r in report.results
        ],
    )
