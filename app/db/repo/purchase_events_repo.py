from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import to_money
from app.db.models.purchase_events import PurchaseEvent


class PurchaseEventsRepo:
    @staticmethod
    async def get_by_event_id(session: AsyncSession, *, event_id: str) -> PurchaseEvent | None:
        stmt = select(PurchaseEvent).where(PurchaseEvent.event_id == event_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, purchase_event: PurchaseEvent) -> PurchaseEvent:
        session.add(purchase_event)
        await session.flush()
        return purchase_event

    @staticmethod
    async def sum_amount_for_user(session: AsyncSession, *, user_id: int) -> Decimal:
        stmt = select(func.sum(PurchaseEvent.amount)).where(PurchaseEvent.user_id == user_id)
        result = await session.execute(stmt)
        return to_money(result.scalar_one())

    @staticmethod
    async def get_latest_for_user(session: AsyncSession, *, user_id: int) -> PurchaseEvent | None:
        stmt = (
            select(PurchaseEvent)
            .where(PurchaseEvent.user_id == user_id)
            .order_by(PurchaseEvent.occurred_at.desc(), PurchaseEvent.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
