from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.money import HUNDRED, ZERO, to_money
from app.db.models.partner_settings import PartnerSettings
from app.db.repo.partner_settings_repo import PartnerSettingsRepo
from app.economy.referrals.errors import ValidationError
from app.economy.referrals.states import ApprovalPolicy

_PERCENT_FIELDS = ("level1_percent", "level2_percent", "level3_percent")


async def get_partner_settings(
    session: AsyncSession,
    *,
    now_utc: datetime,
    for_update: bool = False,
) -> PartnerSettings:
    settings_row = await PartnerSettingsRepo.get(session, for_update=for_update)
    if settings_row is not None:
        return settings_row

    env = get_settings()
    return await PartnerSettingsRepo.create(
        session,
        settings_row=PartnerSettings(
            is_enabled=env.partner_program_enabled,
            level1_percent=to_money(env.partner_level1_percent),
            level2_percent=to_money(env.partner_level2_percent),
            level3_percent=to_money(env.partner_level3_percent),
            min_payout_amount=to_money(env.partner_min_payout_amount),
            reward_approval_policy=str(ApprovalPolicy(env.reward_approval_policy)),
            reward_approval_delay_hours=env.reward_approval_delay_hours,
            updated_at=now_utc,
        ),
    )


def validate_percent(value: Decimal, *, field_name: str) -> Decimal:
    percent = to_money(value)
    if percent < ZERO or percent > HUNDRED:
        raise ValidationError(f"{field_name} must be between 0 and 100")
    return percent


async def update_partner_settings(
    session: AsyncSession,
    *,
    changes: dict[str, object],
    now_utc: datetime,
) -> PartnerSettings:
    settings_row = await get_partner_settings(session, now_utc=now_utc, for_update=True)

    for field_name in _PERCENT_FIELDS:
        if changes.get(field_name) is not None:
            setattr(
                settings_row,
                field_name,
                validate_percent(Decimal(str(changes[field_name])), field_name=field_name),
            )

    if changes.get("is_enabled") is not None:
        settings_row.is_enabled = bool(changes["is_enabled"])

    if changes.get("min_payout_amount") is not None:
        min_payout_amount = to_money(changes["min_payout_amount"])
        if min_payout_amount < ZERO:
            raise ValidationError("min_payout_amount must not be negative")
        settings_row.min_payout_amount = min_payout_amount

    if changes.get("reward_approval_policy") is not None:
        try:
            policy = ApprovalPolicy(str(changes["reward_approval_policy"]))
        except ValueError as exc:
            raise ValidationError("unknown reward_approval_policy") from exc
        settings_row.reward_approval_policy = str(policy)

    if changes.get("reward_approval_delay_hours") is not None:
        delay_hours = int(str(changes["reward_approval_delay_hours"]))
        if delay_hours < 0:
            raise ValidationError("reward_approval_delay_hours must not be negative")
        settings_row.reward_approval_delay_hours = delay_hours

    settings_row.updated_at = now_utc
    return settings_row
