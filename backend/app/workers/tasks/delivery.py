"""Capsule delivery task: emails capsules whose delivery date has passed."""

from __future__ import annotations

from backend.app.workers.celery_app import celery


@celery.task(name="backend.app.workers.tasks.delivery.deliver_due_capsules")
def deliver_due_capsules() -> dict:
    """Deliver all pending capsules that are due."""
    import backend.app.models.registry  # noqa: F401
    from backend.app.core.database import SessionLocal
    from backend.app.services.delivery import deliver_due_capsules as run_delivery

    db = SessionLocal()
    try:
        report = run_delivery(db)
        return {
            "skipped": report.skipped,
            "count": report.count,
            "delivered": report.delivered,
            "failed": report.failed,
        }
    finally:
        db.close()
