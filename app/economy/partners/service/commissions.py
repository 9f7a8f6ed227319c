from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_events import EVENT_PARTNER_COMMISSION_ACCRUED, emit_domain_event
from app.core.money import ZERO, percent_of, to_money
from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_settings import PartnerSettings
from app.db.models.partners import Partner
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.constants import COMMISSION_CHAIN_MAX_DEPTH
from app.economy.partners.types import CommissionResult
from app.economy.referrals.errors import ReferralChainCycleDetectedError, ValidationError
from app.economy.referrals.states import PartnerStatus, RewardStatus

from .ledger import recompute_partner_aggregates
from .settings import get_partner_settings

logger = structlog.get_logger(__name__)


def level_rate(*, level: int, partner: Partner, settings_row: PartnerSettings) -> Decimal:
    if level == 1:
        return to_money(partner.commission_rate)
    if level == 2:
        return to_money(settings_row.level2_percent)
    return to_money(settings_row.level3_percent)


async def distribute_commissions(
    session: AsyncSession,
    *,
    purchaser_user_id: int,
    subscription_id: str,
    amount: Decimal,
    now_utc: datetime,
) -> CommissionResult:
    """Credits up to three ancestors of the purchaser for one subscription purchase.

    The walk follows the referral chain, not the partner chain: an ancestor without
    an active partner record is skipped but still consumes its level. Re-running the
    same subscription returns the rows written the first time.
    """
    purchase_amount = to_money(amount)
    if purchase_amount < ZERO:
        raise ValidationError("amount must not be negative")

    settings_row = await get_partner_settings(session, now_utc=now_utc)
    if not settings_row.is_enabled:
        return CommissionResult(earnings=[], idempotent_replay=False)

    created: list[PartnerEarning] = []
    existing: list[PartnerEarning] = []
    visited = {purchaser_user_id}
    current_user_id = purchaser_user_id

    for level in range(1, COMMISSION_CHAIN_MAX_DEPTH + 1):
        ancestor_user_id = await ReferralsRepo.get_live_referrer_user_id(
            session,
            referred_user_id=current_user_id,
        )
        if ancestor_user_id is None:
            break
        if ancestor_user_id in visited:
            logger.critical(
                "referral_chain_cycle_detected",
                purchaser_user_id=purchaser_user_id,
                subscription_id=subscription_id,
                user_id=ancestor_user_id,
                level=level,
            )
            raise ReferralChainCycleDetectedError(
                f"user {ancestor_user_id} appears twice above purchaser {purchaser_user_id}"
            )
        visited.add(ancestor_user_id)
        current_user_id = ancestor_user_id

        partner = await PartnersRepo.get_by_user_id(
            session,
            user_id=ancestor_user_id,
            for_update=True,
        )
        if partner is None or partner.status != PartnerStatus.ACTIVE:
            continue

        earning = await PartnerEarningsRepo.get_original(
            session,
            subscription_id=subscription_id,
            partner_id=partner.id,
            level=level,
        )
        if earning is not None:
            existing.append(earning)
            continue

        rate = level_rate(level=level, partner=partner, settings_row=settings_row)
        commission = percent_of(purchase_amount, rate)
        if commission <= ZERO:
            continue

        earning = await PartnerEarningsRepo.create(
            session,
            earning=PartnerEarning(
                partner_id=partner.id,
                referred_user_id=purchaser_user_id,
                subscription_id=subscription_id,
                amount=commission,
                commission_rate=rate,
                level=level,
                status=RewardStatus.PENDING,
                created_at=now_utc,
            ),
        )
        await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
        await emit_domain_event(
            session,
            event_type=EVENT_PARTNER_COMMISSION_ACCRUED,
            happened_at=now_utc,
            payload={
                "partner_id": partner.id,
                "partner_user_id": partner.user_id,
                "earning_id": earning.id,
                "subscription_id": subscription_id,
                "level": level,
                "amount": str(commission),
            },
        )
        created.append(earning)

    return CommissionResult(
        earnings=existing + created,
        idempotent_replay=not created and bool(existing),
    )
