from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import to_money
from app.db.models.partner_earnings import PartnerEarning
from app.economy.referrals.states import RewardStatus


class PartnerEarningsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, earning: PartnerEarning) -> PartnerEarning:
        session.add(earning)
        await session.flush()
        return earning

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        earning_id: int,
    ) -> PartnerEarning | None:
        stmt = (
            select(PartnerEarning)
            .where(PartnerEarning.id == earning_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_original(
        session: AsyncSession,
        *,
        subscription_id: str,
        partner_id: int,
        level: int,
    ) -> PartnerEarning | None:
        stmt = select(PartnerEarning).where(
            PartnerEarning.subscription_id == subscription_id,
            PartnerEarning.partner_id == partner_id,
            PartnerEarning.level == level,
            PartnerEarning.split_from_id.is_(None),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_originals_for_subscription(
        session: AsyncSession,
        *,
        subscription_id: str,
    ) -> list[PartnerEarning]:
        stmt = (
            select(PartnerEarning)
            .where(
                PartnerEarning.subscription_id == subscription_id,
                PartnerEarning.split_from_id.is_(None),
            )
            .order_by(PartnerEarning.level.asc(), PartnerEarning.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_page_for_partner(
        session: AsyncSession,
        *,
        partner_id: int,
        status: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[PartnerEarning], int]:
        conditions = [PartnerEarning.partner_id == partner_id]
        if status is not None:
            conditions.append(PartnerEarning.status == status)

        count_stmt = select(func.count(PartnerEarning.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(PartnerEarning)
            .where(*conditions)
            .order_by(PartnerEarning.created_at.desc(), PartnerEarning.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def sum_by_status_for_partner(
        session: AsyncSession,
        *,
        partner_id: int,
    ) -> dict[str, Decimal]:
        stmt = (
            select(PartnerEarning.status, func.sum(PartnerEarning.amount))
            .where(PartnerEarning.partner_id == partner_id)
            .group_by(PartnerEarning.status)
        )
        result = await session.execute(stmt)
        return {str(status): to_money(total) for status, total in result.all()}

    @staticmethod
    async def sum_reserved_for_partner(session: AsyncSession, *, partner_id: int) -> Decimal:
        stmt = select(func.sum(PartnerEarning.amount)).where(
            PartnerEarning.partner_id == partner_id,
            PartnerEarning.status == RewardStatus.APPROVED,
            PartnerEarning.payout_id.is_not(None),
        )
        result = await session.execute(stmt)
        return to_money(result.scalar_one())

    @staticmethod
    async def list_approved_unreserved_for_partner_for_update(
        session: AsyncSession,
        *,
        partner_id: int,
    ) -> list[PartnerEarning]:
        stmt = (
            select(PartnerEarning)
            .where(
                PartnerEarning.partner_id == partner_id,
                PartnerEarning.status == RewardStatus.APPROVED,
                PartnerEarning.payout_id.is_(None),
            )
            .order_by(PartnerEarning.created_at.asc(), PartnerEarning.id.asc())
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
    ) -> list[PartnerEarning]:
        stmt = (
            select(PartnerEarning)
            .where(PartnerEarning.payout_id == payout_id)
            .order_by(PartnerEarning.id.asc())
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
    ) -> list[PartnerEarning]:
        stmt = (
            select(PartnerEarning)
            .where(
                PartnerEarning.status == RewardStatus.PENDING,
                PartnerEarning.created_at <= created_before_utc,
            )
            .order_by(PartnerEarning.created_at.asc(), PartnerEarning.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
