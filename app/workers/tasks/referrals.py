from __future__ import annotations

from datetime import datetime, timezone

import structlog

from app.db.session import SessionLocal
from app.economy.referrals.constants import CUMULATIVE_REEVALUATION_BATCH_SIZE
from app.economy.referrals.service import ReferralService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

MAX_REEVALUATION_BATCHES = 500


async def run_cumulative_rule_reevaluation_async(
    *,
    batch_size: int = CUMULATIVE_REEVALUATION_BATCH_SIZE,
    max_batches: int = MAX_REEVALUATION_BATCHES,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    totals = {"batches": 0, "referrals_examined": 0, "rewards_created": 0}
    after_referral_id = 0

    for _ in range(max(1, int(max_batches))):
        async with SessionLocal.begin() as session:
            counters, last_referral_id = await ReferralService.reevaluate_cumulative_rules(
                session,
                after_referral_id=after_referral_id,
                now_utc=now_utc,
                batch_size=batch_size,
            )
        totals["batches"] += 1
        totals["referrals_examined"] += counters["referrals_examined"]
        totals["rewards_created"] += counters["rewards_created"]
        if last_referral_id == after_referral_id:
            break
        after_referral_id = last_referral_id

    logger.info("cumulative_rule_reevaluation_finished", **totals)
    return totals


@celery_app.task(name="app.workers.tasks.referrals.run_cumulative_rule_reevaluation")
def run_cumulative_rule_reevaluation(
    batch_size: int = CUMULATIVE_REEVALUATION_BATCH_SIZE,
) -> dict[str, int]:
    return run_async_job(run_cumulative_rule_reevaluation_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "referral-cumulative-rules-every-hour": {
            "task": "app.workers.tasks.referrals.run_cumulative_rule_reevaluation",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
