from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referral_rewards import ReferralReward
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.economy.partners.service import PartnerService
from app.economy.referrals.errors import ConflictError, NotFoundError, ValidationError
from app.economy.referrals.states import PayoutMethod, RewardStatus, ensure_transition


async def list_rewards(
    session: AsyncSession,
    *,
    status: str | None,
    user_id: int | None,
    referral_id: int | None,
    offset: int,
    limit: int,
) -> tuple[list[ReferralReward], int]:
    return await ReferralRewardsRepo.list_page(
        session,
        status=status,
        user_id=user_id,
        referral_id=referral_id,
        offset=offset,
        limit=limit,
    )


async def _lock_reward_with_partner(
    session: AsyncSession,
    *,
    reward_id: int,
) -> ReferralReward:
    unlocked = await ReferralRewardsRepo.get_by_id(session, reward_id=reward_id)
    if unlocked is None:
        raise NotFoundError("reward not found")
    await PartnersRepo.get_by_user_id(session, user_id=unlocked.user_id, for_update=True)
    reward = await ReferralRewardsRepo.get_by_id_for_update(session, reward_id=reward_id)
    if reward is None:
        raise NotFoundError("reward not found")
    return reward


async def pay_reward(
    session: AsyncSession,
    *,
    reward_id: int,
    paid_method: str,
    transaction_id: str | None,
    now_utc: datetime,
    paid_by: str | None = None,
) -> ReferralReward:
    """Marks one approved reward as paid outside the partner payout flow."""
    try:
        method = PayoutMethod(paid_method)
    except ValueError as exc:
        raise ValidationError("unknown payout method") from exc

    reward = await _lock_reward_with_partner(session, reward_id=reward_id)
    if reward.payout_id is not None and reward.status == RewardStatus.APPROVED:
        raise ConflictError("reward is reserved by an open payout")

    ensure_transition("reward", reward.status, RewardStatus.PAID)
    reward.status = RewardStatus.PAID
    reward.paid_at = now_utc
    reward.paid_method = str(method)
    reward.paid_by = paid_by
    reward.transaction_id = transaction_id
    reward.updated_at = now_utc
    await PartnerService.recompute_for_user(session, user_id=reward.user_id, now_utc=now_utc)
    return reward


async def cancel_reward(
    session: AsyncSession,
    *,
    reward_id: int,
    now_utc: datetime,
) -> ReferralReward:
    reward = await _lock_reward_with_partner(session, reward_id=reward_id)
    if not PartnerService.ensure_row_cancellable(reward):
        return reward

    reward.status = RewardStatus.CANCELLED
    reward.updated_at = now_utc
    await PartnerService.recompute_for_user(session, user_id=reward.user_id, now_utc=now_utc)
    return reward
