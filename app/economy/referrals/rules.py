"""Pure rule selection over candidate ReferralRule rows.

No session access here: callers load candidates and lifetime spend, then ask
which single rule (if any) a purchase triggers.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal

from app.core.money import to_money
from app.db.models.referral_rules import ReferralRule
from app.economy.referrals.constants import (
    CONSUMED_RULE_EVENT_PREFIX,
    MANUAL_COMPLETION_EVENT_PREFIX,
    REWARD_IDEMPOTENCY_PREFIX,
)
from app.economy.referrals.states import RuleType
from app.economy.referrals.types import PurchaseFacts, RuleSelection

RULE_TYPE_PRIORITY: dict[str, int] = {
    RuleType.FIRST_PURCHASE: 0,
    RuleType.SUBSCRIPTION: 1,
    RuleType.CUMULATIVE: 2,
}


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_within_window(rule: ReferralRule, *, at_utc: datetime) -> bool:
    moment = as_utc(at_utc)
    start_date = as_utc(rule.start_date)
    end_date = as_utc(rule.end_date)
    if start_date is not None and moment < start_date:
        return False
    if end_date is not None and moment > end_date:
        return False
    return True


def applies_to_plan(rule: ReferralRule, *, plan_id: str | None) -> bool:
    if not rule.applies_to_plans:
        return True
    return plan_id is not None and plan_id in rule.applies_to_plans


def is_consumed(rule: ReferralRule, *, consumed_rule_ids: Iterable[int]) -> bool:
    return (
        rule.rule_type == RuleType.CUMULATIVE
        and not rule.is_repeatable
        and rule.id in set(consumed_rule_ids)
    )


def is_rule_eligible(
    rule: ReferralRule,
    *,
    purchase: PurchaseFacts,
    lifetime_spend: Decimal,
    consumed_rule_ids: Iterable[int] = (),
) -> bool:
    if not rule.is_active:
        return False
    if not is_within_window(rule, at_utc=purchase.occurred_at):
        return False
    if not applies_to_plan(rule, plan_id=purchase.plan_id):
        return False
    if rule.rule_type == RuleType.FIRST_PURCHASE and not purchase.is_first_purchase:
        return False
    if is_consumed(rule, consumed_rule_ids=consumed_rule_ids):
        return False

    if rule.min_purchase_amount is None:
        return True
    compared_amount = lifetime_spend if rule.rule_type == RuleType.CUMULATIVE else purchase.amount
    return to_money(compared_amount) >= to_money(rule.min_purchase_amount)


def _priority_key(rule: ReferralRule) -> tuple[int, float, int]:
    created_at = as_utc(rule.created_at)
    created_ts = created_at.timestamp() if created_at is not None else 0.0
    return (RULE_TYPE_PRIORITY.get(rule.rule_type, len(RULE_TYPE_PRIORITY)), -created_ts, -rule.id)


def select_rule(
    rules: Iterable[ReferralRule],
    *,
    purchase: PurchaseFacts,
    lifetime_spend: Decimal,
    consumed_rule_ids: Iterable[int] = (),
) -> RuleSelection | None:
    consumed = frozenset(consumed_rule_ids)
    eligible = [
        rule
        for rule in rules
        if is_rule_eligible(
            rule,
            purchase=purchase,
            lifetime_spend=lifetime_spend,
            consumed_rule_ids=consumed,
        )
    ]
    if not eligible:
        return None

    chosen = min(eligible, key=_priority_key)
    return RuleSelection(
        rule=chosen,
        referrer_reward=to_money(chosen.referrer_reward),
        referred_reward=to_money(chosen.referred_reward),
    )


def accrual_event_key(rule: ReferralRule | None, *, triggering_event_id: str) -> str:
    if rule is not None and rule.rule_type == RuleType.CUMULATIVE and not rule.is_repeatable:
        return f"{CONSUMED_RULE_EVENT_PREFIX}:{rule.id}"
    return triggering_event_id


def reward_idempotency_key(*, referral_id: int, event_key: str, role: str) -> str:
    return f"{REWARD_IDEMPOTENCY_PREFIX}:{referral_id}:{event_key}:{role}"


def manual_completion_event_id(referral_id: int) -> str:
    return f"{MANUAL_COMPLETION_EVENT_PREFIX}:{referral_id}"
