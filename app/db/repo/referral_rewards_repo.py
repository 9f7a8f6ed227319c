from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import to_money
from app.db.models.referral_rewards import ReferralReward
from app.economy.referrals.states import UNPAID_REWARD_STATUSES, RewardStatus


class ReferralRewardsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, reward: ReferralReward) -> ReferralReward:
        session.add(reward)
        await session.flush()
        return reward

    @staticmethod
    async def get_by_id(session: AsyncSession, *, reward_id: int) -> ReferralReward | None:
        return await session.get(ReferralReward, reward_id)

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        reward_id: int,
    ) -> ReferralReward | None:
        stmt = (
            select(ReferralReward)
            .where(ReferralReward.id == reward_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_idempotency_keys(
        session: AsyncSession,
        *,
        idempotency_keys: list[str],
    ) -> list[ReferralReward]:
        if not idempotency_keys:
            return []
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.idempotency_key.in_(idempotency_keys),
                ReferralReward.split_from_id.is_(None),
            )
            .order_by(ReferralReward.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_trigger_event(
        session: AsyncSession,
        *,
        trigger_event_id: str,
    ) -> list[ReferralReward]:
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.trigger_event_id == trigger_event_id,
                ReferralReward.split_from_id.is_(None),
            )
            .order_by(ReferralReward.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_rule_ids_for_referral(session: AsyncSession, *, referral_id: int) -> set[int]:
        stmt = (
            select(ReferralReward.rule_id)
            .where(
                ReferralReward.referral_id == referral_id,
                ReferralReward.rule_id.is_not(None),
            )
            .distinct()
        )
        result = await session.execute(stmt)
        return {int(rule_id) for rule_id in result.scalars().all()}

    @staticmethod
    async def list_settleable_for_referral_for_update(
        session: AsyncSession,
        *,
        referral_id: int,
    ) -> list[ReferralReward]:
        """Pending, approved and paid rows; paid ones block a referral cancel."""
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.referral_id == referral_id,
                ReferralReward.status.in_(
                    tuple(UNPAID_REWARD_STATUSES | {RewardStatus.PAID})
                ),
            )
            .order_by(ReferralReward.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        status: str | None,
        user_id: int | None,
        referral_id: int | None,
        offset: int,
        limit: int,
    ) -> tuple[list[ReferralReward], int]:
        conditions = []
        if status is not None:
            conditions.append(ReferralReward.status == status)
        if user_id is not None:
            conditions.append(ReferralReward.user_id == user_id)
        if referral_id is not None:
            conditions.append(ReferralReward.referral_id == referral_id)

        count_stmt = select(func.count(ReferralReward.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(ReferralReward)
            .where(*conditions)
            .order_by(ReferralReward.created_at.desc(), ReferralReward.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def sum_by_status_for_user(session: AsyncSession, *, user_id: int) -> dict[str, Decimal]:
        stmt = (
            select(ReferralReward.status, func.sum(ReferralReward.amount))
            .where(ReferralReward.user_id == user_id)
            .group_by(ReferralReward.status)
        )
        result = await session.execute(stmt)
        return {str(status): to_money(total) for status, total in result.all()}

    @staticmethod
    async def sum_reserved_for_user(session: AsyncSession, *, user_id: int) -> Decimal:
        stmt = select(func.sum(ReferralReward.amount)).where(
            ReferralReward.user_id == user_id,
            ReferralReward.status == RewardStatus.APPROVED,
            ReferralReward.payout_id.is_not(None),
        )
        result = await session.execute(stmt)
        return to_money(result.scalar_one())

    @staticmethod
    async def sum_by_status(session: AsyncSession) -> dict[str, Decimal]:
        stmt = select(ReferralReward.status, func.sum(ReferralReward.amount)).group_by(
            ReferralReward.status
        )
        result = await session.execute(stmt)
        return {str(status): to_money(total) for status, total in result.all()}

    @staticmethod
    async def list_approved_unreserved_for_user_for_update(
        session: AsyncSession,
        *,
        user_id: int,
    ) -> list[ReferralReward]:
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.user_id == user_id,
                ReferralReward.status == RewardStatus.APPROVED,
                ReferralReward.payout_id.is_(None),
            )
            .order_by(ReferralReward.created_at.asc(), ReferralReward.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_payout_for_update(
        session: AsyncSession,
        *,
        payout_id: int,
    ) -> list[ReferralReward]:
        stmt = (
            select(ReferralReward)
            .where(ReferralReward.payout_id == payout_id)
            .order_by(ReferralReward.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_due_pending(
        session: AsyncSession,
        *,
        created_before_utc: datetime,
        limit: int = 200,
    ) -> list[ReferralReward]:
        stmt = (
            select(ReferralReward)
            .where(
                ReferralReward.status == RewardStatus.PENDING,
                ReferralReward.created_at <= created_before_utc,
            )
            .order_by(ReferralReward.created_at.asc(), ReferralReward.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def sum_live_for_users(
        session: AsyncSession,
        *,
        user_ids: list[int],
        beneficiary_role: str,
    ) -> dict[int, Decimal]:
        if not user_ids:
            return {}
        stmt = (
            select(ReferralReward.user_id, func.sum(ReferralReward.amount))
            .where(
                ReferralReward.user_id.in_(user_ids),
                ReferralReward.beneficiary_role == beneficiary_role,
                ReferralReward.status != RewardStatus.CANCELLED,
            )
            .group_by(ReferralReward.user_id)
        )
        result = await session.execute(stmt)
        return {int(user_id): to_money(total) for user_id, total in result.all()}
