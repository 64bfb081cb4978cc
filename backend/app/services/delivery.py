"""Delivery of time capsules whose delivery date has arrived.

Runs from the Celery beat schedule and from the admin endpoint, possibly at
the same time and on several workers.  Before its email goes out, each
capsule is claimed with a conditional UPDATE (``pending`` -> ``delivering``);
only the run whose UPDATE matched sends it.  Delivery is therefore at most
once: a worker that dies between claim and outcome leaves the capsule in
``delivering`` rather than risking a second email.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.exceptions import PersistenceFailure
from backend.app.models.capsule import Capsule, CapsuleStatus
from backend.app.services.credentials import utcnow
from backend.app.services.notification_service import NotificationService, NotificationType
from backend.app.services.users import write_transaction

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    capsule_id: UUID
    success: bool
    error: str | None = None


@dataclass
class DeliveryReport:
    skipped: bool = False
    results: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


def due_capsules(db: Session, now: datetime) -> list[Capsule]:
    return list(
        db.execute(
            select(Capsule)
            .where(
                Capsule.status == CapsuleStatus.PENDING,
                Capsule.delivery_date <= now,
            )
            .order_by(Capsule.delivery_date)
        ).scalars()
    )


def claim(db: Session, capsule_id: UUID) -> bool:
    """Move a capsule from pending to delivering; False if another run got it."""
    with write_transaction(db):
        result = db.execute(
            update(Capsule)
            .where(Capsule.id == capsule_id, Capsule.status == CapsuleStatus.PENDING)
            .values(status=CapsuleStatus.DELIVERING)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount == 1


def _record_outcome(db: Session, capsule_id: UUID, sent: bool, now: datetime) -> None:
    values: dict[str, object] = (
        {"status": CapsuleStatus.DELIVERED, "delivered_at": now}
        if sent
        else {"status": CapsuleStatus.FAILED}
    )
    with write_transaction(db):
        db.execute(
            update(Capsule)
            .where(Capsule.id == capsule_id, Capsule.status == CapsuleStatus.DELIVERING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


def _template_kwargs(capsule: Capsule) -> dict[str, str]:
    attachments_text = ""
    attachments_html = ""
    if capsule.attachments:
        link = f"{settings.FRONTEND_URL.rstrip('/')}/capsule/{capsule.id}"
        attachments_text = f"This capsule contains attachments: {link}\n\n"
        attachments_html = (
            "<p>This capsule contains attachments. View them "
            f'<a href="{html.escape(link, quote=True)}">here</a>.</p>'
        )
    return {
        "recipient_name": capsule.recipient_name,
        "title": capsule.title,
        "message": capsule.message,
        "attachments_text": attachments_text,
        "attachments_html": attachments_html,
    }


def deliver_due_capsules(
    db: Session,
    now: datetime | None = None,
    notifier: NotificationService | None = None,
) -> DeliveryReport:
    """Email every pending capsule that is due and record the outcome."""
    if not settings.NOTIFICATION_ENABLED:
        logger.info("Notifications disabled, capsule delivery skipped")
        return DeliveryReport(skipped=True)

    now = now or utcnow()
    notifier = notifier or NotificationService()
    report = DeliveryReport()

    # plain values, so later commits do not reload each capsule
    due = [(c.id, c.recipient_email, _template_kwargs(c)) for c in due_capsules(db, now)]
    logger.info("Found %d capsules to deliver", len(due))

    for capsule_id, recipient, template_kwargs in due:
        if not claim(db, capsule_id):
            logger.info("Capsule %s already claimed by another run", capsule_id)
            continue

        sent = notifier.send(NotificationType.CAPSULE_DELIVERY, recipient, **template_kwargs)
        try:
            _record_outcome(db, capsule_id, sent, now)
        except PersistenceFailure:
            logger.exception("Outcome of capsule %s not saved, left as delivering", capsule_id)
            report.results.append(
                DeliveryOutcome(capsule_id=capsule_id, success=sent, error="Status not saved")
            )
            continue

        if sent:
            logger.info("Delivered capsule %s", capsule_id)
            report.results.append(DeliveryOutcome(capsule_id=capsule_id, success=True))
        else:
            logger.error("Failed to deliver capsule %s", capsule_id)
            report.results.append(
                DeliveryOutcome(capsule_id=capsule_id, success=False, error="Email could not be sent")
            )

    return report
