from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import ZERO
from app.core.referral_codes import generate_partner_referral_code, normalize_referral_code
from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_payouts import PartnerPayout
from app.db.models.partners import Partner
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.partner_payouts_repo import PartnerPayoutsRepo
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.constants import (
    DASHBOARD_RECENT_LIMIT,
    PARTNER_CODE_GENERATION_ATTEMPTS,
)
from app.economy.partners.types import PartnerDashboard, PartnerProgramStats
from app.economy.referrals.errors import ConflictError, NotFoundError, ValidationError
from app.economy.referrals.states import PartnerStatus, PayoutMethod, ensure_transition

from .ledger import get_balance, recompute_partner_aggregates
from .settings import get_partner_settings, validate_percent

logger = structlog.get_logger(__name__)


async def _generate_unique_code(session: AsyncSession) -> str:
    for _ in range(PARTNER_CODE_GENERATION_ATTEMPTS):
        code = generate_partner_referral_code()
        if await PartnersRepo.get_by_referral_code(session, referral_code=code) is None:
            return code
    raise ConflictError("could not allocate a unique partner referral code")


def _validate_payout_method(method: str | None) -> str | None:
    if method is None:
        return None
    try:
        return str(PayoutMethod(method))
    except ValueError as exc:
        raise ValidationError("unknown payout method") from exc


async def create_partner(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
    commission_rate: Decimal | None = None,
    payout_method: str | None = None,
    payout_details: dict[str, object] | None = None,
) -> Partner:
    if await PartnersRepo.get_by_user_id(session, user_id=user_id) is not None:
        raise ConflictError("user is already a partner")

    if commission_rate is None:
        settings_row = await get_partner_settings(session, now_utc=now_utc)
        commission_rate = settings_row.level1_percent
    rate = validate_percent(commission_rate, field_name="commission_rate")

    partner = await PartnersRepo.create(
        session,
        partner=Partner(
            user_id=user_id,
            commission_rate=rate,
            total_earnings=ZERO,
            paid_earnings=ZERO,
            pending_earnings=ZERO,
            referral_code=await _generate_unique_code(session),
            referral_count=await ReferralsRepo.count_live_for_referrer(
                session,
                referrer_user_id=user_id,
            ),
            status=PartnerStatus.PENDING,
            payout_method=_validate_payout_method(payout_method),
            payout_details=payout_details or {},
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    logger.info("partner_created", partner_id=partner.id, user_id=user_id)
    return partner


async def get_partner(session: AsyncSession, *, partner_id: int) -> Partner:
    partner = await PartnersRepo.get_by_id(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")
    return partner


async def list_partners(
    session: AsyncSession,
    *,
    status: str | None,
    offset: int,
    limit: int,
) -> tuple[list[Partner], int]:
    return await PartnersRepo.list_page(session, status=status, offset=offset, limit=limit)


async def list_earnings(
    session: AsyncSession,
    *,
    partner_id: int,
    status: str | None,
    offset: int,
    limit: int,
) -> tuple[list[PartnerEarning], int]:
    await get_partner(session, partner_id=partner_id)
    return await PartnerEarningsRepo.list_page_for_partner(
        session,
        partner_id=partner_id,
        status=status,
        offset=offset,
        limit=limit,
    )


async def list_payouts(
    session: AsyncSession,
    *,
    partner_id: int,
    status: str | None,
    offset: int,
    limit: int,
) -> tuple[list[PartnerPayout], int]:
    await get_partner(session, partner_id=partner_id)
    return await PartnerPayoutsRepo.list_page_for_partner(
        session,
        partner_id=partner_id,
        status=status,
        offset=offset,
        limit=limit,
    )


async def change_partner_status(
    session: AsyncSession,
    *,
    partner_id: int,
    target_status: str,
    now_utc: datetime,
) -> Partner:
    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")
    if partner.status == target_status:
        return partner

    ensure_transition("partner", partner.status, target_status)
    previous_status = partner.status
    partner.status = target_status
    partner.updated_at = now_utc
    logger.info(
        "partner_status_changed",
        partner_id=partner.id,
        from_status=previous_status,
        to_status=target_status,
    )
    return partner


async def update_partner(
    session: AsyncSession,
    *,
    partner_id: int,
    changes: dict[str, object],
    now_utc: datetime,
) -> Partner:
    """Admin edit of rate, payout target and status; totals are always re-derived."""
    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")

    if changes.get("commission_rate") is not None:
        partner.commission_rate = validate_percent(
            Decimal(str(changes["commission_rate"])),
            field_name="commission_rate",
        )
    if "payout_method" in changes:
        partner.payout_method = _validate_payout_method(changes["payout_method"])
    if changes.get("payout_details") is not None:
        details = changes["payout_details"]
        if not isinstance(details, dict):
            raise ValidationError("payout_details must be an object")
        partner.payout_details = dict(details)

    target_status = changes.get("status")
    if target_status is not None and target_status != partner.status:
        ensure_transition("partner", partner.status, str(target_status))
        partner.status = str(target_status)

    partner.updated_at = now_utc
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    logger.info(
        "partner_updated",
        partner_id=partner.id,
        fields=sorted(key for key, value in changes.items() if value is not None),
    )
    return partner


async def get_partner_by_referral_code(session: AsyncSession, *, referral_code: str) -> Partner:
    normalized = normalize_referral_code(referral_code)
    partner = (
        await PartnersRepo.get_by_referral_code(session, referral_code=normalized)
        if normalized
        else None
    )
    if partner is None:
        raise NotFoundError("partner not found")
    return partner


async def get_program_stats(session: AsyncSession) -> PartnerProgramStats:
    counts: dict[str, int] = {}
    total_earnings = total_paid = total_pending = ZERO
    total_referrals = 0
    rows = await PartnersRepo.totals_by_status(session)
    for status, count, total, paid, pending, referrals in rows:
        counts[status] = count
        total_earnings += total
        total_paid += paid
        total_pending += pending
        total_referrals += referrals
    return PartnerProgramStats(
        total_partners=sum(counts.values()),
        pending_partners=counts.get(PartnerStatus.PENDING, 0),
        active_partners=counts.get(PartnerStatus.ACTIVE, 0),
        suspended_partners=counts.get(PartnerStatus.SUSPENDED, 0),
        rejected_partners=counts.get(PartnerStatus.REJECTED, 0),
        total_earnings=total_earnings,
        total_paid=total_paid,
        total_pending=total_pending,
        total_referrals=total_referrals,
    )


async def get_partner_dashboard(session: AsyncSession, *, partner_id: int) -> PartnerDashboard:
    partner = await get_partner(session, partner_id=partner_id)
    earnings, _ = await PartnerEarningsRepo.list_page_for_partner(
        session,
        partner_id=partner_id,
        status=None,
        offset=0,
        limit=DASHBOARD_RECENT_LIMIT,
    )
    payouts, _ = await PartnerPayoutsRepo.list_page_for_partner(
        session,
        partner_id=partner_id,
        status=None,
        offset=0,
        limit=DASHBOARD_RECENT_LIMIT,
    )
    return PartnerDashboard(
        partner=partner,
        balance=await get_balance(session, partner_id=partner_id),
        recent_earnings=earnings,
        recent_payouts=payouts,
    )
