from __future__ import annotations

from datetime import datetime, timezone

import structlog
from celery.schedules import crontab

from app.db.session import SessionLocal
from app.economy.partners.constants import APPROVAL_BATCH_SIZE, RECONCILIATION_BATCH_SIZE
from app.economy.partners.service import PartnerService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

MAX_APPROVAL_BATCHES = 50
MAX_RECONCILIATION_BATCHES = 500


async def run_due_reward_approval_async(
    *,
    batch_size: int = APPROVAL_BATCH_SIZE,
    max_batches: int = MAX_APPROVAL_BATCHES,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    totals = {"batches": 0, "rewards_approved": 0, "earnings_approved": 0}

    for _ in range(max(1, int(max_batches))):
        async with SessionLocal.begin() as session:
            result = await PartnerService.approve_due_rows(
                session,
                now_utc=now_utc,
                batch_size=batch_size,
            )
        totals["batches"] += 1
        totals["rewards_approved"] += result.rewards_approved
        totals["earnings_approved"] += result.earnings_approved
        if result.rewards_approved < batch_size and result.earnings_approved < batch_size:
            break

    logger.info("due_reward_approval_finished", **totals)
    return totals


async def run_partner_reconciliation_async(
    *,
    batch_size: int = RECONCILIATION_BATCH_SIZE,
    max_batches: int = MAX_RECONCILIATION_BATCHES,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    totals = {"batches": 0, "partners_examined": 0, "partners_drifted": 0}
    after_partner_id = 0

    for _ in range(max(1, int(max_batches))):
        async with SessionLocal.begin() as session:
            batch = await PartnerService.reconcile_partners_batch(
                session,
                after_partner_id=after_partner_id,
                now_utc=now_utc,
                batch_size=batch_size,
            )
        if not batch.results:
            break

        totals["batches"] += 1
        totals["partners_examined"] += len(batch.results)
        for reconciliation in batch.results:
            if not reconciliation.drifted:
                continue
            totals["partners_drifted"] += 1
            logger.warning(
                "partner_aggregates_drift_corrected",
                partner_id=reconciliation.partner_id,
                total_before=str(reconciliation.before.total_earnings),
                total_after=str(reconciliation.after.total_earnings),
                paid_before=str(reconciliation.before.paid_earnings),
                paid_after=str(reconciliation.after.paid_earnings),
                pending_before=str(reconciliation.before.pending_earnings),
                pending_after=str(reconciliation.after.pending_earnings),
            )
        after_partner_id = batch.last_partner_id

    logger.info("partner_reconciliation_finished", **totals)
    return totals


@celery_app.task(name="app.workers.tasks.partners.run_due_reward_approval")
def run_due_reward_approval(batch_size: int = APPROVAL_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_due_reward_approval_async(batch_size=batch_size))


@celery_app.task(name="app.workers.tasks.partners.run_partner_reconciliation")
def run_partner_reconciliation(batch_size: int = RECONCILIATION_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_partner_reconciliation_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "partner-due-approval-every-15-minutes": {
            "task": "app.workers.tasks.partners.run_due_reward_approval",
            "schedule": 900.0,
            "options": {"queue": "q_normal"},
        },
        "partner-reconciliation-nightly-0230-utc": {
            "task": "app.workers.tasks.partners.run_partner_reconciliation",
            "schedule": crontab(hour=2, minute=30),
            "options": {"queue": "q_normal"},
        },
    }
)
