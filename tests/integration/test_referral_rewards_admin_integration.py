from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.db.session import SessionLocal
from app.economy.partners.service import PartnerService
from app.economy.referrals.errors import CannotCancelPaidRewardError, InvalidStateTransitionError
from app.economy.referrals.service import ReferralService
from tests.integration.referral_engine_fixtures import (
    NOW_UTC,
    _create_partner,
    _create_referral,
    _create_rule,
    _ingest,
    _purchase,
)


async def _accrued_rewards():
    await _create_rule(referrer_reward="10.00", referred_reward="5.00")
    referral = await _create_referral(1, 2)
    result = await _ingest(_purchase("evt-admin", user_id=2))
    by_role = {reward.beneficiary_role: reward for reward in result.rewards}
    return referral, by_role["referrer"], by_role["referred"]


@pytest.mark.asyncio
async def test_paid_reward_cannot_be_cancelled() -> None:
    _, referrer_reward, _ = await _accrued_rewards()

    with pytest.raises(InvalidStateTransitionError):
        async with SessionLocal.begin() as session:
            await ReferralService.pay_reward(
                session,
                reward_id=referrer_reward.id,
                paid_method="paypal",
                transaction_id=None,
                now_utc=NOW_UTC,
            )

    async with SessionLocal.begin() as session:
        await PartnerService.approve_reward(
            session,
            reward_id=referrer_reward.id,
            now_utc=NOW_UTC,
        )
        paid = await ReferralService.pay_reward(
            session,
            reward_id=referrer_reward.id,
            paid_method="paypal",
            transaction_id="tx-42",
            paid_by="ops@example.test",
            now_utc=NOW_UTC,
        )
    assert paid.status == "paid"
    assert paid.transaction_id == "tx-42"

    with pytest.raises(CannotCancelPaidRewardError):
        async with SessionLocal.begin() as session:
            await ReferralService.cancel_reward(
                session,
                reward_id=referrer_reward.id,
                now_utc=NOW_UTC,
            )


async def _reward_statuses(referral_id: int) -> dict[int, str]:
    async with SessionLocal() as session:
        rewards, _ = await ReferralService.list_rewards(
            session,
            status=None,
            user_id=None,
            referral_id=referral_id,
            offset=0,
            limit=10,
        )
    return {reward.id: reward.status for reward in rewards}


@pytest.mark.asyncio
async def test_referral_with_paid_reward_cannot_be_cancelled() -> None:
    referral, referrer_reward, referred_reward = await _accrued_rewards()
    async with SessionLocal.begin() as session:
        await PartnerService.approve_reward(session, reward_id=referrer_reward.id, now_utc=NOW_UTC)
        await ReferralService.pay_reward(
            session,
            reward_id=referrer_reward.id,
            paid_method="bank_transfer",
            transaction_id=None,
            now_utc=NOW_UTC,
        )

    with pytest.raises(CannotCancelPaidRewardError):
        async with SessionLocal.begin() as session:
            await ReferralService.cancel_referral(
                session,
                referral_id=referral.id,
                reason="chargeback",
                now_utc=NOW_UTC,
            )

    async with SessionLocal() as session:
        unchanged = await ReferralService.get_referral(session, referral_id=referral.id)
    assert unchanged.status == "completed"
    assert unchanged.cancelled_reason is None
    assert await _reward_statuses(referral.id) == {
        referrer_reward.id: "paid",
        referred_reward.id: "pending",
    }


@pytest.mark.asyncio
async def test_cancelling_referral_cancels_pending_and_approved_rewards() -> None:
    referral, referrer_reward, referred_reward = await _accrued_rewards()
    async with SessionLocal.begin() as session:
        await PartnerService.approve_reward(session, reward_id=referrer_reward.id, now_utc=NOW_UTC)

    async with SessionLocal.begin() as session:
        cancelled = await ReferralService.cancel_referral(
            session,
            referral_id=referral.id,
            reason="chargeback",
            now_utc=NOW_UTC,
        )

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_reason == "chargeback"
    assert await _reward_statuses(referral.id) == {
        referrer_reward.id: "cancelled",
        referred_reward.id: "cancelled",
    }


@pytest.mark.asyncio
async def test_partner_balance_includes_referral_rewards_of_its_user() -> None:
    partner = await _create_partner(1)
    _, referrer_reward, _ = await _accrued_rewards()

    async with SessionLocal() as session:
        balance = await PartnerService.get_balance(session, partner_id=partner.id)
        user_balance = await PartnerService.get_balance(session, user_id=2)

    # 10.00 referrer reward plus the 10% level-1 commission on the same purchase.
    assert balance.pending == Decimal("20.00")
    assert user_balance.pending == Decimal("5.00")
    assert referrer_reward.user_id == partner.user_id


@pytest.mark.asyncio
async def test_statistics_and_top_referrers() -> None:
    await _accrued_rewards()
    await _create_referral(1, 3)
    await _create_referral(4, 5)

    async with SessionLocal() as session:
        stats = await ReferralService.get_statistics(session)
        top = await ReferralService.list_top_referrers(session, limit=2)

    assert stats.total_referrals == 3
    assert stats.completed_referrals == 1
    assert stats.active_referrals == 2
    assert stats.pending_rewards_amount == Decimal("15.00")
    assert stats.total_rewards_amount == Decimal("15.00")
    assert [(item.referrer_user_id, item.referral_count) for item in top] == [(1, 2), (4, 1)]
    assert top[0].rewards_amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_delayed_policy_approves_rows_after_the_delay() -> None:
    partner = await _create_partner(1)
    async with SessionLocal.begin() as session:
        await PartnerService.update_partner_settings(
            session,
            changes={"reward_approval_policy": "delayed", "reward_approval_delay_hours": 24},
            now_utc=NOW_UTC,
        )
    await _accrued_rewards()

    async with SessionLocal.begin() as session:
        early = await PartnerService.approve_due_rows(
            session,
            now_utc=NOW_UTC + timedelta(hours=1),
        )
    async with SessionLocal.begin() as session:
        due = await PartnerService.approve_due_rows(
            session,
            now_utc=NOW_UTC + timedelta(hours=25),
        )

    assert (early.rewards_approved, early.earnings_approved) == (0, 0)
    assert (due.rewards_approved, due.earnings_approved) == (2, 1)
    async with SessionLocal() as session:
        balance = await PartnerService.get_balance(session, partner_id=partner.id)
        refreshed = await PartnerService.get_partner(session, partner_id=partner.id)
    assert balance.approved == Decimal("20.00")
    assert balance.pending == Decimal("0.00")
    assert refreshed.pending_earnings == Decimal("20.00")


@pytest.mark.asyncio
async def test_manual_policy_leaves_rows_pending() -> None:
    await _accrued_rewards()

    async with SessionLocal.begin() as session:
        result = await PartnerService.approve_due_rows(
            session,
            now_utc=NOW_UTC + timedelta(days=30),
        )

    assert (result.rewards_approved, result.earnings_approved) == (0, 0)
