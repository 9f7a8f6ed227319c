from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import ZERO, to_money
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.referrals.constants import DEFAULT_TOP_REFERRERS_LIMIT
from app.economy.referrals.states import BeneficiaryRole, ReferralStatus, RewardStatus
from app.economy.referrals.types import ReferralStatistics, TopReferrer


async def get_statistics(session: AsyncSession) -> ReferralStatistics:
    referral_counts = await ReferralsRepo.count_by_status(session)
    reward_sums = await ReferralRewardsRepo.sum_by_status(session)

    pending = reward_sums.get(RewardStatus.PENDING, ZERO)
    approved = reward_sums.get(RewardStatus.APPROVED, ZERO)
    paid = reward_sums.get(RewardStatus.PAID, ZERO)
    return ReferralStatistics(
        total_referrals=sum(referral_counts.values()),
        active_referrals=referral_counts.get(ReferralStatus.ACTIVE, 0),
        completed_referrals=referral_counts.get(ReferralStatus.COMPLETED, 0),
        cancelled_referrals=referral_counts.get(ReferralStatus.CANCELLED, 0),
        total_rewards_amount=to_money(pending + approved + paid),
        pending_rewards_amount=to_money(pending),
        approved_rewards_amount=to_money(approved),
        paid_rewards_amount=to_money(paid),
        cancelled_rewards_amount=to_money(reward_sums.get(RewardStatus.CANCELLED, ZERO)),
    )


async def list_top_referrers(
    session: AsyncSession,
    *,
    limit: int = DEFAULT_TOP_REFERRERS_LIMIT,
) -> list[TopReferrer]:
    rows = await ReferralsRepo.list_top_referrers(session, limit=limit)
    user_ids = [int(row["referrer_user_id"]) for row in rows]
    reward_sums = await ReferralRewardsRepo.sum_live_for_users(
        session,
        user_ids=user_ids,
        beneficiary_role=BeneficiaryRole.REFERRER,
    )
    return [
        TopReferrer(
            referrer_user_id=int(row["referrer_user_id"]),
            referral_count=int(row["referral_count"]),
            rewards_amount=reward_sums.get(int(row["referrer_user_id"]), ZERO),
        )
        for row in rows
    ]
