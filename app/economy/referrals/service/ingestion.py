from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import ZERO, to_money
from app.db.models.purchase_events import PurchaseEvent
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referrals import Referral
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.purchase_events_repo import PurchaseEventsRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referral_rules_repo import ReferralRulesRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.service import PartnerService
from app.economy.referrals.constants import CUMULATIVE_REEVALUATION_BATCH_SIZE
from app.economy.referrals.errors import ConflictError, ValidationError
from app.economy.referrals.rules import as_utc, select_rule
from app.economy.referrals.states import ReferralStatus, RuleType
from app.economy.referrals.types import IngestionResult, PurchaseFacts

from .accrual import accrue_rewards

logger = structlog.get_logger(__name__)


def _is_same_purchase(stored: PurchaseEvent, purchase: PurchaseFacts) -> bool:
    return (
        stored.user_id == purchase.user_id
        and stored.plan_id == purchase.plan_id
        and stored.subscription_id == purchase.subscription_id
        and to_money(stored.amount) == to_money(purchase.amount)
        and stored.is_first_purchase == purchase.is_first_purchase
        and as_utc(stored.occurred_at) == as_utc(purchase.occurred_at)
    )


async def _replay_result(
    session: AsyncSession,
    *,
    stored: PurchaseEvent,
) -> IngestionResult:
    rewards = await ReferralRewardsRepo.list_by_trigger_event(
        session,
        trigger_event_id=stored.event_id,
    )
    commissions = await PartnerEarningsRepo.list_originals_for_subscription(
        session,
        subscription_id=stored.subscription_id,
    )
    return IngestionResult(
        purchase_event_id=stored.id,
        referral_id=rewards[0].referral_id if rewards else None,
        rule_id=rewards[0].rule_id if rewards else None,
        idempotent_replay=True,
        rewards=rewards,
        commissions=commissions,
    )


async def _accrue_for_purchase(
    session: AsyncSession,
    *,
    referral: Referral,
    purchase: PurchaseFacts,
    now_utc: datetime,
) -> tuple[int, list[ReferralReward]] | None:
    lifetime_spend = await PurchaseEventsRepo.sum_amount_for_user(session, user_id=purchase.user_id)
    consumed_rule_ids = await ReferralRewardsRepo.list_rule_ids_for_referral(
        session,
        referral_id=referral.id,
    )
    candidates = await ReferralRulesRepo.list_active(session)
    if referral.status == ReferralStatus.COMPLETED:
        candidates = [rule for rule in candidates if rule.rule_type != RuleType.FIRST_PURCHASE]

    selection = select_rule(
        candidates,
        purchase=purchase,
        lifetime_spend=lifetime_spend,
        consumed_rule_ids=consumed_rule_ids,
    )
    if selection is None:
        return None

    accrual = await accrue_rewards(
        session,
        referral_id=referral.id,
        triggering_event_id=purchase.event_id,
        rule=selection.rule,
        referrer_reward=selection.referrer_reward,
        referred_reward=selection.referred_reward,
        now_utc=now_utc,
    )
    return selection.rule.id, accrual.rewards


async def ingest_purchase_event(
    session: AsyncSession,
    *,
    purchase: PurchaseFacts,
    now_utc: datetime,
) -> IngestionResult:
    """Records a billing purchase event, then runs rule accrual and commission distribution.

    The event id is the idempotency key: a repeated delivery with the same payload
    returns what the first delivery produced, a different payload is a conflict.
    """
    if not purchase.event_id.strip():
        raise ValidationError("eventId is required")
    if not purchase.subscription_id.strip():
        raise ValidationError("subscriptionId is required")
    amount = to_money(purchase.amount)
    if amount < ZERO:
        raise ValidationError("amount must not be negative")

    stored = await PurchaseEventsRepo.get_by_event_id(session, event_id=purchase.event_id)
    if stored is not None:
        if not _is_same_purchase(stored, purchase):
            raise ConflictError("eventId was already used for a different purchase")
        return await _replay_result(session, stored=stored)

    stored = await PurchaseEventsRepo.create(
        session,
        purchase_event=PurchaseEvent(
            event_id=purchase.event_id,
            user_id=purchase.user_id,
            plan_id=purchase.plan_id,
            subscription_id=purchase.subscription_id,
            amount=amount,
            occurred_at=purchase.occurred_at,
            is_first_purchase=purchase.is_first_purchase,
            created_at=now_utc,
        ),
    )

    result = IngestionResult(
        purchase_event_id=stored.id,
        referral_id=None,
        rule_id=None,
        idempotent_replay=False,
    )
    referral = await ReferralsRepo.get_live_by_referred_user_id(
        session,
        referred_user_id=purchase.user_id,
        for_update=True,
    )
    if referral is not None:
        result.referral_id = referral.id
        accrual = await _accrue_for_purchase(
            session,
            referral=referral,
            purchase=purchase,
            now_utc=now_utc,
        )
        if accrual is not None:
            result.rule_id, result.rewards = accrual

    commissions = await PartnerService.distribute_commissions(
        session,
        purchaser_user_id=purchase.user_id,
        subscription_id=purchase.subscription_id,
        amount=amount,
        now_utc=now_utc,
    )
    result.commissions = commissions.earnings

    logger.info(
        "purchase_event_ingested",
        event_id=purchase.event_id,
        user_id=purchase.user_id,
        referral_id=result.referral_id,
        rule_id=result.rule_id,
        rewards_created=len(result.rewards),
        commissions_created=len(result.commissions),
    )
    return result


async def reevaluate_cumulative_rules(
    session: AsyncSession,
    *,
    after_referral_id: int,
    now_utc: datetime,
    batch_size: int = CUMULATIVE_REEVALUATION_BATCH_SIZE,
) -> tuple[dict[str, int], int]:
    """Applies once-per-referral cumulative rules to referrals that already crossed them.

    Repeatable cumulative rules are left to future purchases. Returns the batch
    counters and the last referral id examined.
    """
    rules = [
        rule
        for rule in await ReferralRulesRepo.list_active(session)
        if rule.rule_type == RuleType.CUMULATIVE and not rule.is_repeatable
    ]
    referral_ids = await ReferralsRepo.list_live_ids_after(
        session,
        after_id=after_referral_id,
        limit=batch_size,
    )
    counters = {"referrals_examined": 0, "rewards_created": 0}
    last_referral_id = after_referral_id
    for referral_id in referral_ids:
        last_referral_id = referral_id
        counters["referrals_examined"] += 1
        if not rules:
            continue

        referral = await ReferralsRepo.get_by_id(session, referral_id=referral_id)
        if referral is None:
            continue
        latest = await PurchaseEventsRepo.get_latest_for_user(
            session,
            user_id=referral.referred_user_id,
        )
        if latest is None:
            continue

        purchase = PurchaseFacts(
            event_id=latest.event_id,
            user_id=latest.user_id,
            plan_id=latest.plan_id,
            subscription_id=latest.subscription_id,
            amount=to_money(latest.amount),
            occurred_at=as_utc(latest.occurred_at) or now_utc,
            is_first_purchase=latest.is_first_purchase,
        )
        selection = select_rule(
            rules,
            purchase=purchase,
            lifetime_spend=await PurchaseEventsRepo.sum_amount_for_user(
                session,
                user_id=referral.referred_user_id,
            ),
            consumed_rule_ids=await ReferralRewardsRepo.list_rule_ids_for_referral(
                session,
                referral_id=referral.id,
            ),
        )
        if selection is None:
            continue

        accrual = await accrue_rewards(
            session,
            referral_id=referral.id,
            triggering_event_id=latest.event_id,
            rule=selection.rule,
            referrer_reward=selection.referrer_reward,
            referred_reward=selection.referred_reward,
            now_utc=now_utc,
        )
        if not accrual.idempotent_replay:
            counters["rewards_created"] += len(accrual.rewards)

    return counters, last_referral_id
