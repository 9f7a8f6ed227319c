from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.partner_settings import PartnerSettings

SETTINGS_ROW_ID = 1


class PartnerSettingsRepo:
    @staticmethod
    async def get(session: AsyncSession, *, for_update: bool = False) -> PartnerSettings | None:
        stmt = select(PartnerSettings).where(PartnerSettings.id == SETTINGS_ROW_ID)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, settings_row: PartnerSettings) -> PartnerSettings:
        settings_row.id = SETTINGS_ROW_ID
        session.add(settings_row)
        await session.flush()
        return settings_row
