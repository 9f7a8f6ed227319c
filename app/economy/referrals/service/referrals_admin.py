from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_events import EVENT_REFERRAL_CANCELLED, emit_domain_event
from app.core.referral_codes import normalize_referral_code
from app.db.models.referrals import Referral
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referral_rules_repo import ReferralRulesRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.service import PartnerService
from app.economy.referrals.errors import (
    CannotCancelPaidRewardError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.economy.referrals.rules import manual_completion_event_id
from app.economy.referrals.states import ReferralStatus, RewardStatus, ensure_transition
from app.economy.referrals.types import AccrualResult

from .accrual import accrue_rewards
from .rules_admin import rule_reward_amounts

logger = structlog.get_logger(__name__)


async def _resolve_referrer_user_id(
    session: AsyncSession,
    *,
    referrer_user_id: int | None,
    referral_code: str | None,
) -> int:
    if referral_code is None:
        if referrer_user_id is None:
            raise ValidationError("referrerId or referralCode is required")
        return referrer_user_id

    partner = await PartnersRepo.get_by_referral_code(session, referral_code=referral_code)
    if partner is None:
        if referrer_user_id is None:
            raise NotFoundError("referral code not found")
        return referrer_user_id
    if referrer_user_id is not None and referrer_user_id != partner.user_id:
        raise ValidationError("referral code belongs to another referrer")
    return partner.user_id


async def create_referral(
    session: AsyncSession,
    *,
    referred_user_id: int,
    now_utc: datetime,
    referrer_user_id: int | None = None,
    referral_code: str | None = None,
    rule_id: int | None = None,
    notes: str | None = None,
) -> Referral:
    normalized_code = normalize_referral_code(referral_code)
    resolved_referrer_id = await _resolve_referrer_user_id(
        session,
        referrer_user_id=referrer_user_id,
        referral_code=normalized_code,
    )
    if resolved_referrer_id == referred_user_id:
        raise ValidationError("a user cannot refer themselves")

    existing = await ReferralsRepo.get_live_by_referred_user_id(
        session,
        referred_user_id=referred_user_id,
    )
    if existing is not None:
        raise ConflictError("referred user already has a referral")

    rule = None
    if rule_id is not None:
        rule = await ReferralRulesRepo.get_by_id(session, rule_id=rule_id)
        if rule is None:
            raise NotFoundError("rule not found")
        if not rule.is_active:
            raise ValidationError("rule is not active")
    referrer_reward, referred_reward = rule_reward_amounts(rule)

    referral = await ReferralsRepo.create(
        session,
        referral=Referral(
            referrer_user_id=resolved_referrer_id,
            referred_user_id=referred_user_id,
            referral_code=normalized_code,
            rule_id=rule.id if rule is not None else None,
            status=ReferralStatus.ACTIVE,
            referrer_reward=referrer_reward,
            referred_reward=referred_reward,
            notes=notes,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    await PartnerService.recompute_for_user(
        session,
        user_id=resolved_referrer_id,
        now_utc=now_utc,
    )
    logger.info(
        "referral_created",
        referral_id=referral.id,
        referrer_user_id=resolved_referrer_id,
        referred_user_id=referred_user_id,
        rule_id=referral.rule_id,
    )
    return referral


async def get_referral(session: AsyncSession, *, referral_id: int) -> Referral:
    referral = await ReferralsRepo.get_by_id(session, referral_id=referral_id)
    if referral is None:
        raise NotFoundError("referral not found")
    return referral


async def list_referrals(
    session: AsyncSession,
    *,
    status: str | None,
    referrer_user_id: int | None,
    referred_user_id: int | None,
    offset: int,
    limit: int,
) -> tuple[list[Referral], int]:
    return await ReferralsRepo.list_page(
        session,
        status=status,
        referrer_user_id=referrer_user_id,
        referred_user_id=referred_user_id,
        offset=offset,
        limit=limit,
    )


async def complete_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
) -> AccrualResult:
    """Manual completion: accrues the snapshot amounts once and completes the referral."""
    referral = await get_referral(session, referral_id=referral_id)
    rule = None
    if referral.rule_id is not None:
        rule = await ReferralRulesRepo.get_by_id(session, rule_id=referral.rule_id)
    return await accrue_rewards(
        session,
        referral_id=referral.id,
        triggering_event_id=manual_completion_event_id(referral.id),
        rule=rule,
        referrer_reward=referral.referrer_reward,
        referred_reward=referral.referred_reward,
        now_utc=now_utc,
        manual_completion=True,
    )


async def cancel_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    reason: str | None,
    now_utc: datetime,
) -> Referral:
    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id=referral_id)
    if referral is None:
        raise NotFoundError("referral not found")
    if referral.status == ReferralStatus.CANCELLED:
        return referral

    ensure_transition("referral", referral.status, ReferralStatus.CANCELLED)
    for user_id in sorted({referral.referrer_user_id, referral.referred_user_id}):
        await PartnersRepo.get_by_user_id(session, user_id=user_id, for_update=True)
    rewards = await ReferralRewardsRepo.list_settleable_for_referral_for_update(
        session,
        referral_id=referral.id,
    )
    if any(reward.status == RewardStatus.PAID for reward in rewards):
        raise CannotCancelPaidRewardError("referral has paid rewards and cannot be cancelled")
    if any(reward.payout_id is not None for reward in rewards):
        raise ConflictError("referral rewards are reserved by an open payout")

    for reward in rewards:
        ensure_transition("reward", reward.status, RewardStatus.CANCELLED)
        reward.status = RewardStatus.CANCELLED
        reward.updated_at = now_utc

    referral.status = ReferralStatus.CANCELLED
    referral.cancelled_at = now_utc
    referral.cancelled_reason = reason
    referral.updated_at = now_utc

    affected_user_ids = {referral.referrer_user_id} | {reward.user_id for reward in rewards}
    for user_id in sorted(affected_user_ids):
        await PartnerService.recompute_for_user(session, user_id=user_id, now_utc=now_utc)

    await emit_domain_event(
        session,
        event_type=EVENT_REFERRAL_CANCELLED,
        happened_at=now_utc,
        payload={
            "referral_id": referral.id,
            "reason": reason,
            "rewards_cancelled": len(rewards),
        },
    )
    logger.info(
        "referral_cancelled",
        referral_id=referral.id,
        rewards_cancelled=len(rewards),
    )
    return referral


async def update_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
    notes: str | None = None,
    status: str | None = None,
    cancelled_reason: str | None = None,
) -> Referral:
    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id=referral_id)
    if referral is None:
        raise NotFoundError("referral not found")

    if notes is not None:
        referral.notes = notes
        referral.updated_at = now_utc

    if status is None or status == referral.status:
        if cancelled_reason is not None and referral.status == ReferralStatus.CANCELLED:
            referral.cancelled_reason = cancelled_reason
            referral.updated_at = now_utc
        return referral

    if status == ReferralStatus.COMPLETED:
        accrual = await complete_referral(session, referral_id=referral.id, now_utc=now_utc)
        return accrual.referral
    if status == ReferralStatus.CANCELLED:
        return await cancel_referral(
            session,
            referral_id=referral.id,
            reason=cancelled_reason,
            now_utc=now_utc,
        )

    ensure_transition("referral", referral.status, status)
    return referral
