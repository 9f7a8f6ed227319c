from __future__ import annotations

from app.db.models.partner_earnings import PartnerEarning
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referral_rules import ReferralRule
from app.db.models.referrals import Referral

from .referrals_models import (
    PartnerEarningSummary,
    ReferralResponse,
    ReferralRewardResponse,
    ReferralRuleResponse,
    ReferralRuleWriteRequest,
)


def _as_referral_response(referral: Referral) -> ReferralResponse:
    return ReferralResponse(
        id=referral.id,
        referrer_id=referral.referrer_user_id,
        referred_id=referral.referred_user_id,
        referral_code=referral.referral_code,
        rule_id=referral.rule_id,
        status=referral.status,
        referrer_reward=float(referral.referrer_reward),
        referred_reward=float(referral.referred_reward),
        notes=referral.notes,
        completed_at=referral.completed_at,
        cancelled_at=referral.cancelled_at,
        cancelled_reason=referral.cancelled_reason,
        created_at=referral.created_at,
        updated_at=referral.updated_at,
    )


def _as_rule_response(rule: ReferralRule) -> ReferralRuleResponse:
    return ReferralRuleResponse(
        id=rule.id,
        name=rule.name,
        description=rule.description,
        type=rule.rule_type,
        referrer_reward=float(rule.referrer_reward),
        referred_reward=float(rule.referred_reward),
        min_purchase_amount=(
            float(rule.min_purchase_amount) if rule.min_purchase_amount is not None else None
        ),
        applies_to_plans=rule.applies_to_plans,
        is_active=rule.is_active,
        is_repeatable=rule.is_repeatable,
        start_date=rule.start_date,
        end_date=rule.end_date,
        version=rule.version,
        supersedes_id=rule.supersedes_id,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _as_reward_response(reward: ReferralReward) -> ReferralRewardResponse:
    return ReferralRewardResponse(
        id=reward.id,
        referral_id=reward.referral_id,
        user_id=reward.user_id,
        beneficiary_role=reward.beneficiary_role,
        trigger_event_id=reward.trigger_event_id,
        amount=float(reward.amount),
        status=reward.status,
        rule_id=reward.rule_id,
        description=reward.description,
        approved_at=reward.approved_at,
        paid_at=reward.paid_at,
        paid_by=reward.paid_by,
        paid_method=reward.paid_method,
        transaction_id=reward.transaction_id,
        payout_id=reward.payout_id,
        split_from_id=reward.split_from_id,
        created_at=reward.created_at,
    )


def _as_earning_summary(earning: PartnerEarning) -> PartnerEarningSummary:
    return PartnerEarningSummary(
        id=earning.id,
        partner_id=earning.partner_id,
        level=earning.level,
        amount=float(earning.amount),
        commission_rate=float(earning.commission_rate),
        status=earning.status,
    )


def _rule_values(payload: ReferralRuleWriteRequest) -> dict[str, object]:
    values = payload.model_dump()
    values["rule_type"] = values.pop("type")
    return values


def _rule_changes(payload: ReferralRuleWriteRequest) -> dict[str, object]:
    changes = payload.model_dump(exclude_unset=True)
    if "type" in changes:
        changes["rule_type"] = changes.pop("type")
    return changes
