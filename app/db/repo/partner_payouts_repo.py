from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.partner_payouts import PartnerPayout


class PartnerPayoutsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, payout: PartnerPayout) -> PartnerPayout:
        session.add(payout)
        await session.flush()
        return payout

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        payout_id: int,
    ) -> PartnerPayout | None:
        stmt = (
            select(PartnerPayout)
            .where(PartnerPayout.id == payout_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_idempotency_key(
        session: AsyncSession,
        *,
        idempotency_key: str,
    ) -> PartnerPayout | None:
        stmt = select(PartnerPayout).where(PartnerPayout.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_page_for_partner(
        session: AsyncSession,
        *,
        partner_id: int,
        status: str | None,
        offset: int,
        limit: int,
    ) -> tuple[list[PartnerPayout], int]:
        conditions = [PartnerPayout.partner_id == partner_id]
        if status is not None:
            conditions.append(PartnerPayout.status == status)

        count_stmt = select(func.count(PartnerPayout.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(PartnerPayout)
            .where(*conditions)
            .order_by(PartnerPayout.created_at.desc(), PartnerPayout.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total
