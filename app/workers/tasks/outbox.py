from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from celery.schedules import crontab

from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.session import SessionLocal
from app.services.notifications import NOTIFICATION_BATCH_SIZE, deliver_pending_notifications
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

OUTBOX_RETENTION_DAYS = 30
OUTBOX_CLEANUP_BATCH_SIZE = 5000
OUTBOX_CLEANUP_MAX_BATCHES = 20


def _clamp_retention_days(value: int) -> int:
    return max(1, min(3650, int(value)))


async def run_outbox_delivery_async(*, batch_size: int = NOTIFICATION_BATCH_SIZE) -> dict[str, int]:
    result = await deliver_pending_notifications(
        now_utc=datetime.now(timezone.utc),
        batch_size=batch_size,
    )
    logger.info("outbox_delivery_finished", **result)
    return result


async def run_outbox_cleanup_async(
    *,
    retention_days: int = OUTBOX_RETENTION_DAYS,
    batch_size: int = OUTBOX_CLEANUP_BATCH_SIZE,
    max_batches: int = OUTBOX_CLEANUP_MAX_BATCHES,
) -> dict[str, int]:
    cutoff_utc = datetime.now(timezone.utc) - timedelta(days=_clamp_retention_days(retention_days))
    rows_deleted = 0
    batches_executed = 0

    for _ in range(max(1, int(max_batches))):
        async with SessionLocal.begin() as session:
            deleted = await OutboxEventsRepo.delete_created_before(
                session,
                cutoff_utc=cutoff_utc,
                limit=batch_size,
            )
        batches_executed += 1
        rows_deleted += deleted
        if deleted < batch_size:
            break

    result = {"rows_deleted": rows_deleted, "batches_executed": batches_executed}
    logger.info("outbox_cleanup_finished", cutoff_utc=cutoff_utc.isoformat(), **result)
    return result


@celery_app.task(name="app.workers.tasks.outbox.run_outbox_delivery")
def run_outbox_delivery(batch_size: int = NOTIFICATION_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_outbox_delivery_async(batch_size=batch_size))


@celery_app.task(name="app.workers.tasks.outbox.run_outbox_cleanup")
def run_outbox_cleanup(retention_days: int = OUTBOX_RETENTION_DAYS) -> dict[str, int]:
    return run_async_job(run_outbox_cleanup_async(retention_days=retention_days))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "outbox-delivery-every-minute": {
            "task": "app.workers.tasks.outbox.run_outbox_delivery",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
        "outbox-cleanup-daily-0300-utc": {
            "task": "app.workers.tasks.outbox.run_outbox_cleanup",
            "schedule": crontab(hour=3, minute=0),
            "options": {"queue": "q_normal"},
        },
    }
)
