from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import ZERO, to_money
from app.db.models.referral_rules import ReferralRule
from app.db.repo.referral_rules_repo import ReferralRulesRepo
from app.economy.referrals.errors import NotFoundError, ValidationError
from app.economy.referrals.rules import as_utc
from app.economy.referrals.states import RuleType

logger = structlog.get_logger(__name__)

RULE_FIELDS = (
    "name",
    "description",
    "rule_type",
    "referrer_reward",
    "referred_reward",
    "min_purchase_amount",
    "applies_to_plans",
    "is_active",
    "is_repeatable",
    "start_date",
    "end_date",
)


def _validate_rule_values(values: dict[str, object]) -> dict[str, object]:
    name = str(values.get("name") or "").strip()
    if not name:
        raise ValidationError("rule name is required")
    try:
        rule_type = RuleType(str(values.get("rule_type")))
    except ValueError as exc:
        raise ValidationError("unknown rule type") from exc

    referrer_reward = to_money(values.get("referrer_reward"))
    referred_reward = to_money(values.get("referred_reward"))
    if referrer_reward < ZERO or referred_reward < ZERO:
        raise ValidationError("rewards must not be negative")

    min_purchase_amount = values.get("min_purchase_amount")
    if min_purchase_amount is not None:
        min_purchase_amount = to_money(min_purchase_amount)
        if min_purchase_amount < ZERO:
            raise ValidationError("min_purchase_amount must not be negative")

    start_date = values.get("start_date")
    end_date = values.get("end_date")
    if isinstance(start_date, datetime) and isinstance(end_date, datetime):
        if as_utc(start_date) > as_utc(end_date):
            raise ValidationError("start_date must not be after end_date")

    plans = values.get("applies_to_plans")
    applies_to_plans = sorted({str(plan_id) for plan_id in plans}) if plans else None

    # Absent flags arrive as None.
    is_active = values.get("is_active")
    is_repeatable = values.get("is_repeatable")

    return {
        **values,
        "name": name,
        "rule_type": str(rule_type),
        "referrer_reward": referrer_reward,
        "referred_reward": referred_reward,
        "min_purchase_amount": min_purchase_amount,
        "applies_to_plans": applies_to_plans,
        "is_active": True if is_active is None else bool(is_active),
        "is_repeatable": False if is_repeatable is None else bool(is_repeatable),
    }


async def create_rule(
    session: AsyncSession,
    *,
    values: dict[str, object],
    now_utc: datetime,
) -> ReferralRule:
    validated = _validate_rule_values({field: values.get(field) for field in RULE_FIELDS})
    rule = await ReferralRulesRepo.create(
        session,
        rule=ReferralRule(
            **validated,
            version=1,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    logger.info("referral_rule_created", rule_id=rule.id, rule_type=rule.rule_type)
    return rule


async def get_rule(session: AsyncSession, *, rule_id: int) -> ReferralRule:
    rule = await ReferralRulesRepo.get_by_id(session, rule_id=rule_id)
    if rule is None:
        raise NotFoundError("rule not found")
    return rule


async def list_rules(
    session: AsyncSession,
    *,
    is_active: bool | None,
    rule_type: str | None,
    offset: int,
    limit: int,
) -> tuple[list[ReferralRule], int]:
    return await ReferralRulesRepo.list_page(
        session,
        is_active=is_active,
        rule_type=rule_type,
        offset=offset,
        limit=limit,
    )


async def list_active_rules(session: AsyncSession, *, now_utc: datetime) -> list[ReferralRule]:
    moment = as_utc(now_utc)
    rules = await ReferralRulesRepo.list_active(session)
    return [
        rule
        for rule in rules
        if (rule.start_date is None or as_utc(rule.start_date) <= moment)
        and (rule.end_date is None or as_utc(rule.end_date) >= moment)
    ]


async def update_rule(
    session: AsyncSession,
    *,
    rule_id: int,
    changes: dict[str, object],
    now_utc: datetime,
) -> ReferralRule:
    """Edits a rule in place, or versions it when rewards already reference it."""
    rule = await ReferralRulesRepo.get_by_id_for_update(session, rule_id=rule_id)
    if rule is None:
        raise NotFoundError("rule not found")

    current = {field: getattr(rule, field) for field in RULE_FIELDS}
    merged = {**current, **{key: value for key, value in changes.items() if key in RULE_FIELDS}}
    validated = _validate_rule_values(merged)

    changed_fields = {field for field, value in validated.items() if value != current[field]}
    if changed_fields <= {"is_active"} or not await ReferralRulesRepo.is_used_by_rewards(
        session,
        rule_id=rule.id,
    ):
        for field, value in validated.items():
            setattr(rule, field, value)
        rule.updated_at = now_utc
        return rule

    rule.is_active = False
    rule.updated_at = now_utc
    successor = await ReferralRulesRepo.create(
        session,
        rule=ReferralRule(
            **validated,
            version=rule.version + 1,
            supersedes_id=rule.id,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    logger.info(
        "referral_rule_versioned",
        rule_id=rule.id,
        successor_rule_id=successor.id,
        version=successor.version,
    )
    return successor


async def delete_rule(
    session: AsyncSession,
    *,
    rule_id: int,
    now_utc: datetime,
) -> ReferralRule | None:
    """Deletes an unused rule; a referenced rule is deactivated and returned."""
    rule = await ReferralRulesRepo.get_by_id_for_update(session, rule_id=rule_id)
    if rule is None:
        raise NotFoundError("rule not found")

    if await ReferralRulesRepo.is_used_by_rewards(
        session, rule_id=rule.id
    ) or await ReferralRulesRepo.is_referenced_by_referrals(session, rule_id=rule.id):
        rule.is_active = False
        rule.updated_at = now_utc
        return rule

    await session.delete(rule)
    await session.flush()
    return None


def rule_reward_amounts(rule: ReferralRule | None) -> tuple[Decimal, Decimal]:
    if rule is None:
        return ZERO, ZERO
    return to_money(rule.referrer_reward), to_money(rule.referred_reward)
