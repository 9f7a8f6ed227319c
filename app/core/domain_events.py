from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.outbox_events_repo import OutboxEventsRepo

EVENT_REFERRAL_REWARD_ACCRUED = "referral_reward_accrued"
EVENT_REFERRAL_COMPLETED = "referral_completed"
EVENT_REFERRAL_CANCELLED = "referral_cancelled"
EVENT_PARTNER_COMMISSION_ACCRUED = "partner_commission_accrued"
EVENT_PARTNER_PAYOUT_REQUESTED = "partner_payout_requested"
EVENT_PARTNER_PAYOUT_COMPLETED = "partner_payout_completed"
EVENT_PARTNER_PAYOUT_FAILED = "partner_payout_failed"

OUTBOX_STATUS_PENDING = "PENDING"
OUTBOX_STATUS_SENT = "SENT"
OUTBOX_STATUS_FAILED = "FAILED"
OUTBOX_STATUS_SKIPPED = "SKIPPED"


async def emit_domain_event(
    session: AsyncSession,
    *,
    event_type: str,
    happened_at: datetime,
    payload: dict[str, object] | None = None,
) -> None:
    """Writes the event to the outbox inside the caller's transaction."""
    document: dict[str, object] = {"happened_at": happened_at.isoformat()}
    if payload:
        document.update(payload)
    await OutboxEventsRepo.create(
        session,
        event_type=event_type,
        payload=document,
        status=OUTBOX_STATUS_PENDING,
        now_utc=happened_at,
    )
