from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referral_rewards import ReferralReward
from app.db.models.referral_rules import ReferralRule
from app.db.models.referrals import Referral


class ReferralRulesRepo:
    @staticmethod
    async def create(session: AsyncSession, *, rule: ReferralRule) -> ReferralRule:
        session.add(rule)
        await session.flush()
        return rule

    @staticmethod
    async def get_by_id(session: AsyncSession, *, rule_id: int) -> ReferralRule | None:
        return await session.get(ReferralRule, rule_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, *, rule_id: int) -> ReferralRule | None:
        stmt = (
            select(ReferralRule)
            .where(ReferralRule.id == rule_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        is_active: bool | None,
        rule_type: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[ReferralRule], int]:
        conditions = []
        if is_active is not None:
            conditions.append(ReferralRule.is_active.is_(is_active))
        if rule_type is not None:
            conditions.append(ReferralRule.rule_type == rule_type)

        count_stmt = select(func.count(ReferralRule.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(ReferralRule)
            .where(*conditions)
            .order_by(ReferralRule.created_at.desc(), ReferralRule.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def list_active(session: AsyncSession) -> list[ReferralRule]:
        stmt = (
            select(ReferralRule)
            .where(ReferralRule.is_active.is_(True))
            .order_by(ReferralRule.created_at.desc(), ReferralRule.id.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def is_used_by_rewards(session: AsyncSession, *, rule_id: int) -> bool:
        stmt = select(ReferralReward.id).where(ReferralReward.rule_id == rule_id).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def is_referenced_by_referrals(session: AsyncSession, *, rule_id: int) -> bool:
        stmt = select(Referral.id).where(Referral.rule_id == rule_id).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
