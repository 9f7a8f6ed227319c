from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.purchase_events_repo import PurchaseEventsRepo
from app.db.session import SessionLocal, run_in_transaction
from app.economy.referrals.service import ReferralService
from app.economy.referrals.types import IngestionResult
from tests.integration.referral_engine_fixtures import (
    NOW_UTC,
    _create_partner,
    _create_referral,
    _create_rule,
    _ingest,
    _purchase,
)


@pytest.mark.asyncio
async def test_duplicate_delivery_that_loses_insert_race_resolves_to_replay(monkeypatch) -> None:
    await _create_rule()
    await _create_partner(1)
    await _create_referral(1, 2)
    purchase = _purchase("evt-race", user_id=2)
    first = await _ingest(purchase)

    original_lookup = PurchaseEventsRepo.get_by_event_id
    lookups: list[str] = []

    async def _lookup_before_competitor_committed(session: AsyncSession, *, event_id: str):
        lookups.append(event_id)
        if len(lookups) == 1:
            return None
        return await original_lookup(session, event_id=event_id)

    monkeypatch.setattr(
        PurchaseEventsRepo,
        "get_by_event_id",
        staticmethod(_lookup_before_competitor_committed),
    )

    async def _operation(session: AsyncSession) -> IngestionResult:
        return await ReferralService.ingest_purchase_event(
            session,
            purchase=purchase,
            now_utc=NOW_UTC,
        )

    result = await run_in_transaction(_operation)

    assert lookups == ["evt-race", "evt-race"]
    assert result.idempotent_replay is True
    assert sorted(reward.id for reward in result.rewards) == sorted(
        reward.id for reward in first.rewards
    )
    assert [earning.id for earning in result.commissions] == [
        earning.id for earning in first.commissions
    ]

    async with SessionLocal() as session:
        stored = await original_lookup(session, event_id="evt-race")
    assert stored is not None
    assert stored.id == first.purchase_event_id
