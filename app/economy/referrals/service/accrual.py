from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_events import (
    EVENT_REFERRAL_COMPLETED,
    EVENT_REFERRAL_REWARD_ACCRUED,
    emit_domain_event,
)
from app.core.money import ZERO, to_money
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referral_rules import ReferralRule
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.service import PartnerService
from app.economy.referrals.errors import NotFoundError, ReferralInactiveError
from app.economy.referrals.rules import accrual_event_key, reward_idempotency_key
from app.economy.referrals.states import (
    BeneficiaryRole,
    ReferralStatus,
    RewardStatus,
    RuleType,
    ensure_transition,
)
from app.economy.referrals.types import AccrualResult


def _reward_description(rule: ReferralRule | None, *, role: str, manual_completion: bool) -> str:
    if manual_completion:
        return f"manual completion reward ({role})"
    if rule is None:
        return f"referral reward ({role})"
    return f"{rule.name} ({role})"


async def accrue_rewards(
    session: AsyncSession,
    *,
    referral_id: int,
    triggering_event_id: str,
    rule: ReferralRule | None,
    referrer_reward: Decimal,
    referred_reward: Decimal,
    now_utc: datetime,
    manual_completion: bool = False,
) -> AccrualResult:
    """Writes the referrer/referred reward rows for one triggering event exactly once.

    A retry with the same event returns the rows written the first time with
    `idempotent_replay=True`. Non-repeatable cumulative rules are keyed by the rule
    instead of the event so they fire once per referral.
    """
    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id=referral_id)
    if referral is None:
        raise NotFoundError("referral not found")

    event_key = (
        triggering_event_id
        if manual_completion
        else accrual_event_key(rule, triggering_event_id=triggering_event_id)
    )
    amounts_by_role = {
        BeneficiaryRole.REFERRER: to_money(referrer_reward),
        BeneficiaryRole.REFERRED: to_money(referred_reward),
    }
    keys_by_role = {
        role: reward_idempotency_key(referral_id=referral.id, event_key=event_key, role=role)
        for role in amounts_by_role
    }
    existing = await ReferralRewardsRepo.list_by_idempotency_keys(
        session,
        idempotency_keys=list(keys_by_role.values()),
    )
    if existing:
        return AccrualResult(referral=referral, rewards=existing, idempotent_replay=True)

    completes_referral = manual_completion or (
        rule is not None and rule.rule_type == RuleType.FIRST_PURCHASE
    )
    if referral.status == ReferralStatus.CANCELLED:
        raise ReferralInactiveError("referral is cancelled")
    if referral.status == ReferralStatus.COMPLETED and completes_referral:
        raise ReferralInactiveError("referral is already completed")

    beneficiaries = {
        BeneficiaryRole.REFERRER: referral.referrer_user_id,
        BeneficiaryRole.REFERRED: referral.referred_user_id,
    }
    rewards: list[ReferralReward] = []
    for role, amount in amounts_by_role.items():
        if amount <= ZERO:
            continue
        reward = await ReferralRewardsRepo.create(
            session,
            reward=ReferralReward(
                referral_id=referral.id,
                user_id=beneficiaries[role],
                beneficiary_role=role,
                trigger_event_id=triggering_event_id,
                idempotency_key=keys_by_role[role],
                amount=amount,
                status=RewardStatus.PENDING,
                rule_id=rule.id if rule is not None else referral.rule_id,
                description=_reward_description(
                    rule,
                    role=role,
                    manual_completion=manual_completion,
                ),
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        rewards.append(reward)

    referral_completed = False
    if completes_referral and referral.status == ReferralStatus.ACTIVE:
        ensure_transition("referral", referral.status, ReferralStatus.COMPLETED)
        referral.status = ReferralStatus.COMPLETED
        referral.completed_at = now_utc
        referral_completed = True
    referral.updated_at = now_utc

    for user_id in sorted({reward.user_id for reward in rewards}):
        await PartnerService.recompute_for_user(session, user_id=user_id, now_utc=now_utc)

    for reward in rewards:
        await emit_domain_event(
            session,
            event_type=EVENT_REFERRAL_REWARD_ACCRUED,
            happened_at=now_utc,
            payload={
                "referral_id": referral.id,
                "reward_id": reward.id,
                "user_id": reward.user_id,
                "beneficiary_role": reward.beneficiary_role,
                "amount": str(reward.amount),
                "trigger_event_id": triggering_event_id,
            },
        )
    if referral_completed:
        await emit_domain_event(
            session,
            event_type=EVENT_REFERRAL_COMPLETED,
            happened_at=now_utc,
            payload={
                "referral_id": referral.id,
                "referrer_user_id": referral.referrer_user_id,
                "referred_user_id": referral.referred_user_id,
            },
        )

    return AccrualResult(
        referral=referral,
        rewards=rewards,
        idempotent_replay=False,
        referral_completed=referral_completed,
    )
