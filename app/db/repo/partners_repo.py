from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import to_money
from app.db.models.partners import Partner


class PartnersRepo:
    @staticmethod
    async def create(session: AsyncSession, *, partner: Partner) -> Partner:
        session.add(partner)
        await session.flush()
        return partner

    @staticmethod
    async def get_by_id(session: AsyncSession, *, partner_id: int) -> Partner | None:
        return await session.get(Partner, partner_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, *, partner_id: int) -> Partner | None:
        stmt = (
            select(Partner)
            .where(Partner.id == partner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_user_id(
        session: AsyncSession,
        *,
        user_id: int,
        for_update: bool = False,
    ) -> Partner | None:
        stmt = select(Partner).where(Partner.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_referral_code(session: AsyncSession, *, referral_code: str) -> Partner | None:
        stmt = select(Partner).where(Partner.referral_code == referral_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        status: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[Partner], int]:
        conditions = []
        if status is not None:
            conditions.append(Partner.status == status)

        count_stmt = select(func.count(Partner.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(Partner)
            .where(*conditions)
            .order_by(Partner.created_at.desc(), Partner.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def list_ids_after(
        session: AsyncSession,
        *,
        after_id: int,
        limit: int = 200,
    ) -> list[int]:
        stmt = (
            select(Partner.id)
            .where(Partner.id > after_id)
            .order_by(Partner.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [int(partner_id) for partner_id in result.scalars().all()]

    @staticmethod
    async def totals_by_status(
        session: AsyncSession,
    ) -> list[tuple[str, int, Decimal, Decimal, Decimal, int]]:
        stmt = select(
            Partner.status,
            func.count(Partner.id),
            func.coalesce(func.sum(Partner.total_earnings), 0),
            func.coalesce(func.sum(Partner.paid_earnings), 0),
            func.coalesce(func.sum(Partner.pending_earnings), 0),
            func.coalesce(func.sum(Partner.referral_count), 0),
        ).group_by(Partner.status)
        result = await session.execute(stmt)
        return [
            (
                str(status),
                int(count or 0),
                to_money(total),
                to_money(paid),
                to_money(pending),
                int(referrals or 0),
            )
            for status, count, total, paid, pending, referrals in result.all()
        ]
