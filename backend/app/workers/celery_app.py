"""Celery application instance.

Start the worker::

    celery -A backend.app.workers.celery_app worker --loglevel=info
    celery -A backend.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery, signals
from celery.schedules import crontab

from backend.app.core.config import settings
from backend.app.core.logging_config import configure_logging

celery = Celery(
    "timecapsule",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["backend.app.workers.tasks.delivery"],
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


@signals.setup_logging.connect
def _setup_logging(**kwargs: object) -> None:
    configure_logging()


# Beat schedule
celery.conf.beat_schedule = {
    "deliver-due-capsules": {
        "task": "backend.app.workers.tasks.delivery.deliver_due_capsules",
        "schedule": crontab(minute=f"*/{settings.DELIVERY_INTERVAL_MINUTES}"),
    },
}
