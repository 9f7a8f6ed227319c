from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.referrals import Referral
from app.economy.referrals.states import LIVE_REFERRAL_STATUSES, ReferralStatus


class ReferralsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, referral: Referral) -> Referral:
        session.add(referral)
        await session.flush()
        return referral

    @staticmethod
    async def get_by_id(session: AsyncSession, *, referral_id: int) -> Referral | None:
        return await session.get(Referral, referral_id)

    @staticmethod
    async def get_by_id_for_update(
        session: AsyncSession,
        *,
        referral_id: int,
    ) -> Referral | None:
        stmt = (
            select(Referral)
            .where(Referral.id == referral_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_live_by_referred_user_id(
        session: AsyncSession,
        *,
        referred_user_id: int,
        for_update: bool = False,
    ) -> Referral | None:
        stmt = select(Referral).where(
            Referral.referred_user_id == referred_user_id,
            Referral.status.in_(tuple(LIVE_REFERRAL_STATUSES)),
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_live_referrer_user_id(
        session: AsyncSession,
        *,
        referred_user_id: int,
    ) -> int | None:
        stmt = select(Referral.referrer_user_id).where(
            Referral.referred_user_id == referred_user_id,
            Referral.status.in_(tuple(LIVE_REFERRAL_STATUSES)),
        )
        result = await session.execute(stmt)
        referrer_user_id = result.scalars().first()
        return None if referrer_user_id is None else int(referrer_user_id)

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        status: str | None,
        referrer_user_id: int | None,
        referred_user_id: int | None,
        offset: int,
        limit: int,
    ) -> tuple[list[Referral], int]:
        conditions = []
        if status is not None:
            conditions.append(Referral.status == status)
        if referrer_user_id is not None:
            conditions.append(Referral.referrer_user_id == referrer_user_id)
        if referred_user_id is not None:
            conditions.append(Referral.referred_user_id == referred_user_id)

        count_stmt = select(func.count(Referral.id)).where(*conditions)
        total = int((await session.execute(count_stmt)).scalar_one() or 0)
        stmt = (
            select(Referral)
            .where(*conditions)
            .order_by(Referral.created_at.desc(), Referral.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def count_live_for_referrer(session: AsyncSession, *, referrer_user_id: int) -> int:
        stmt = select(func.count(Referral.id)).where(
            Referral.referrer_user_id == referrer_user_id,
            Referral.status != ReferralStatus.CANCELLED,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_live_ids_after(
        session: AsyncSession,
        *,
        after_id: int,
        limit: int = 200,
    ) -> list[int]:
        stmt = (
            select(Referral.id)
            .where(
                Referral.status.in_(tuple(LIVE_REFERRAL_STATUSES)),
                Referral.id > after_id,
            )
            .order_by(Referral.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [int(referral_id) for referral_id in result.scalars().all()]

    @staticmethod
    async def count_by_status(session: AsyncSession) -> dict[str, int]:
        stmt = select(Referral.status, func.count(Referral.id)).group_by(Referral.status)
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def list_top_referrers(
        session: AsyncSession,
        *,
        limit: int = 10,
    ) -> list[dict[str, object]]:
        referral_count = func.count(Referral.id).label("referral_count")
        stmt = (
            select(Referral.referrer_user_id, referral_count)
            .where(Referral.status != ReferralStatus.CANCELLED)
            .group_by(Referral.referrer_user_id)
            .order_by(referral_count.desc(), Referral.referrer_user_id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [
            {"referrer_user_id": int(referrer_user_id), "referral_count": int(count or 0)}
            for referrer_user_id, count in result.all()
        ]
