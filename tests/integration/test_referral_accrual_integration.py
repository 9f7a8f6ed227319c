from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from app.db.session import SessionLocal
from app.economy.referrals.errors import ConflictError, ValidationError
from app.economy.referrals.service import ReferralService
from tests.integration.referral_engine_fixtures import (
    NOW_UTC,
    _create_referral,
    _create_rule,
    _ingest,
    _purchase,
)


async def _rewards_for_referral(referral_id: int):
    async with SessionLocal() as session:
        rewards, _ = await ReferralService.list_rewards(
            session,
            status=None,
            user_id=None,
            referral_id=referral_id,
            offset=0,
            limit=100,
        )
    return rewards


@pytest.mark.asyncio
async def test_first_purchase_accrues_both_sides_and_completes_referral() -> None:
    rule = await _create_rule(referrer_reward="10.00", referred_reward="5.00")
    referral = await _create_referral(1, 2)

    result = await _ingest(_purchase("evt-1", user_id=2))

    assert result.idempotent_replay is False
    assert result.referral_id == referral.id
    assert result.rule_id == rule.id
    amounts = {
        (reward.user_id, reward.beneficiary_role): reward.amount for reward in result.rewards
    }
    assert amounts == {(1, "referrer"): Decimal("10.00"), (2, "referred"): Decimal("5.00")}
    assert {reward.status for reward in result.rewards} == {"pending"}

    async with SessionLocal() as session:
        stored = await ReferralService.get_referral(session, referral_id=referral.id)
    assert stored.status == "completed"
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_purchase_event_replay_returns_first_result_without_new_rows() -> None:
    await _create_rule()
    referral = await _create_referral(1, 2)
    purchase = _purchase("evt-replay", user_id=2)

    first = await _ingest(purchase)
    second = await _ingest(purchase)

    assert second.idempotent_replay is True
    assert second.purchase_event_id == first.purchase_event_id
    assert sorted(reward.id for reward in second.rewards) == sorted(
        reward.id for reward in first.rewards
    )
    assert len(await _rewards_for_referral(referral.id)) == 2

    with pytest.raises(ConflictError):
        await _ingest(replace(purchase, amount=Decimal("120.00")))


@pytest.mark.asyncio
async def test_renewal_after_completion_does_not_repeat_first_purchase_reward() -> None:
    await _create_rule()
    referral = await _create_referral(1, 2)

    await _ingest(_purchase("evt-first", user_id=2))
    renewal = await _ingest(_purchase("evt-renewal", user_id=2, is_first_purchase=False))

    assert renewal.rule_id is None
    assert renewal.rewards == []
    assert len(await _rewards_for_referral(referral.id)) == 2


@pytest.mark.asyncio
async def test_subscription_rule_accrues_on_each_renewal() -> None:
    await _create_rule(
        name="renewal bonus",
        rule_type="subscription",
        referrer_reward="3.00",
        referred_reward="0",
    )
    referral = await _create_referral(1, 2)

    await _ingest(_purchase("evt-r1", user_id=2, is_first_purchase=False))
    await _ingest(_purchase("evt-r2", user_id=2, is_first_purchase=False))

    rewards = await _rewards_for_referral(referral.id)
    assert [reward.amount for reward in rewards] == [Decimal("3.00"), Decimal("3.00")]
    assert {reward.user_id for reward in rewards} == {1}


@pytest.mark.asyncio
async def test_purchase_without_live_referral_records_event_only() -> None:
    await _create_rule()

    result = await _ingest(_purchase("evt-orphan", user_id=42))

    assert result.referral_id is None
    assert result.rewards == []
    assert result.commissions == []


@pytest.mark.asyncio
async def test_cancelled_referral_stops_accrual() -> None:
    await _create_rule()
    referral = await _create_referral(1, 2)
    async with SessionLocal.begin() as session:
        await ReferralService.cancel_referral(
            session,
            referral_id=referral.id,
            reason="fraud",
            now_utc=NOW_UTC,
        )

    result = await _ingest(_purchase("evt-after-cancel", user_id=2))

    assert result.referral_id is None
    assert result.rewards == []


@pytest.mark.asyncio
async def test_one_live_referral_per_referred_user() -> None:
    referral = await _create_referral(1, 2)

    with pytest.raises(ConflictError):
        await _create_referral(3, 2)
    with pytest.raises(ValidationError):
        await _create_referral(5, 5)

    async with SessionLocal.begin() as session:
        cancelled = await ReferralService.cancel_referral(
            session,
            referral_id=referral.id,
            reason=None,
            now_utc=NOW_UTC,
        )
        again = await ReferralService.cancel_referral(
            session,
            referral_id=referral.id,
            reason="second call",
            now_utc=NOW_UTC,
        )
    assert cancelled.status == "cancelled"
    assert again.cancelled_reason is None

    replacement = await _create_referral(3, 2)
    assert replacement.referrer_user_id == 3


@pytest.mark.asyncio
async def test_manual_completion_accrues_rule_snapshot_once() -> None:
    rule = await _create_rule(referrer_reward="8.00", referred_reward="2.00")
    referral = await _create_referral(1, 2, rule_id=rule.id)

    async with SessionLocal.begin() as session:
        completion = await ReferralService.complete_referral(
            session,
            referral_id=referral.id,
            now_utc=NOW_UTC,
        )
    async with SessionLocal.begin() as session:
        replay = await ReferralService.complete_referral(
            session,
            referral_id=referral.id,
            now_utc=NOW_UTC,
        )

    assert completion.referral_completed is True
    assert sorted(reward.amount for reward in completion.rewards) == [
        Decimal("2.00"),
        Decimal("8.00"),
    ]
    assert replay.idempotent_replay is True
    assert len(await _rewards_for_referral(referral.id)) == 2


@pytest.mark.asyncio
async def test_cumulative_rule_reevaluation_fires_once_per_referral() -> None:
    referral = await _create_referral(1, 2)
    await _ingest(_purchase("evt-c1", user_id=2, amount="100.00"))
    await _ingest(_purchase("evt-c2", user_id=2, amount="150.00", is_first_purchase=False))
    await _ingest(_purchase("evt-c3", user_id=2, amount="100.00", is_first_purchase=False))
    rule = await _create_rule(
        name="big spender",
        rule_type="cumulative",
        referrer_reward="20.00",
        referred_reward="0",
        min_purchase_amount="300.00",
    )

    async with SessionLocal.begin() as session:
        counters, last_referral_id = await ReferralService.reevaluate_cumulative_rules(
            session,
            after_referral_id=0,
            now_utc=NOW_UTC,
        )
    async with SessionLocal.begin() as session:
        rerun, _ = await ReferralService.reevaluate_cumulative_rules(
            session,
            after_referral_id=0,
            now_utc=NOW_UTC,
        )

    assert counters == {"referrals_examined": 1, "rewards_created": 1}
    assert last_referral_id == referral.id
    assert rerun["rewards_created"] == 0
    rewards = await _rewards_for_referral(referral.id)
    assert [(reward.rule_id, reward.amount) for reward in rewards] == [
        (rule.id, Decimal("20.00"))
    ]
