from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionLocal, run_in_transaction
from app.economy.partners.service import PartnerService
from app.economy.referrals.service import ReferralService
from app.economy.referrals.types import PurchaseFacts

from .api_models import Page, PageParams, build_page, page_params
from .referrals_helpers import (
    _as_earning_summary,
    _as_referral_response,
    _as_reward_response,
    _as_rule_response,
    _rule_changes,
    _rule_values,
)
from .referrals_models import (
    PurchaseEventRequest,
    PurchaseEventResponse,
    ReferralCancelRequest,
    ReferralCreateRequest,
    ReferralResponse,
    ReferralRewardResponse,
    ReferralRuleDeleteResponse,
    ReferralRuleResponse,
    ReferralRuleWriteRequest,
    ReferralStatisticsResponse,
    ReferralUpdateRequest,
    RewardPayRequest,
    TopReferrerResponse,
)

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.get("", response_model=Page[ReferralResponse])
async def list_referrals(
    params: PageParams = Depends(page_params),
    referral_status: str | None = Query(default=None, alias="status"),
    referrer_id: int | None = Query(default=None, alias="referrerId", gt=0),
    referred_id: int | None = Query(default=None, alias="referredId", gt=0),
) -> Page[ReferralResponse]:
    async with SessionLocal() as session:
        referrals, total = await ReferralService.list_referrals(
            session,
            status=referral_status,
            referrer_user_id=referrer_id,
            referred_user_id=referred_id,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_referral_response(referral) for referral in referrals]
    return build_page(items, total=total, params=params)


@router.post("", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def create_referral(payload: ReferralCreateRequest) -> ReferralResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralResponse:
        referral = await ReferralService.create_referral(
            session,
            referred_user_id=payload.referred_id,
            referrer_user_id=payload.referrer_id,
            referral_code=payload.referral_code,
            rule_id=payload.rule_id,
            notes=payload.notes,
            now_utc=now_utc,
        )
        return _as_referral_response(referral)

    return await run_in_transaction(_operation)


@router.get("/rules", response_model=Page[ReferralRuleResponse])
async def list_rules(
    params: PageParams = Depends(page_params),
    is_active: bool | None = Query(default=None, alias="isActive"),
    rule_type: str | None = Query(default=None, alias="type"),
) -> Page[ReferralRuleResponse]:
    async with SessionLocal() as session:
        rules, total = await ReferralService.list_rules(
            session,
            is_active=is_active,
            rule_type=rule_type,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_rule_response(rule) for rule in rules]
    return build_page(items, total=total, params=params)


@router.get("/rules/active", response_model=list[ReferralRuleResponse])
async def list_active_rules() -> list[ReferralRuleResponse]:
    async with SessionLocal() as session:
        rules = await ReferralService.list_active_rules(
            session,
            now_utc=datetime.now(timezone.utc),
        )
        return [_as_rule_response(rule) for rule in rules]


@router.get("/rules/{rule_id}", response_model=ReferralRuleResponse)
async def get_rule(rule_id: int) -> ReferralRuleResponse:
    async with SessionLocal() as session:
        rule = await ReferralService.get_rule(session, rule_id=rule_id)
        return _as_rule_response(rule)


@router.post("/rules", response_model=ReferralRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(payload: ReferralRuleWriteRequest) -> ReferralRuleResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRuleResponse:
        rule = await ReferralService.create_rule(
            session,
            values=_rule_values(payload),
            now_utc=now_utc,
        )
        return _as_rule_response(rule)

    return await run_in_transaction(_operation)


@router.put("/rules/{rule_id}", response_model=ReferralRuleResponse)
async def update_rule(rule_id: int, payload: ReferralRuleWriteRequest) -> ReferralRuleResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRuleResponse:
        rule = await ReferralService.update_rule(
            session,
            rule_id=rule_id,
            changes=_rule_changes(payload),
            now_utc=now_utc,
        )
        return _as_rule_response(rule)

    return await run_in_transaction(_operation)


@router.delete("/rules/{rule_id}", response_model=ReferralRuleDeleteResponse)
async def delete_rule(rule_id: int) -> ReferralRuleDeleteResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRuleDeleteResponse:
        rule = await ReferralService.delete_rule(session, rule_id=rule_id, now_utc=now_utc)
        if rule is None:
            return ReferralRuleDeleteResponse(deleted=True)
        return ReferralRuleDeleteResponse(deleted=False, rule=_as_rule_response(rule))

    return await run_in_transaction(_operation)


@router.get("/rewards", response_model=Page[ReferralRewardResponse])
async def list_rewards(
    params: PageParams = Depends(page_params),
    reward_status: str | None = Query(default=None, alias="status"),
    user_id: int | None = Query(default=None, alias="userId", gt=0),
    referral_id: int | None = Query(default=None, alias="referralId", gt=0),
) -> Page[ReferralRewardResponse]:
    async with SessionLocal() as session:
        rewards, total = await ReferralService.list_rewards(
            session,
            status=reward_status,
            user_id=user_id,
            referral_id=referral_id,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_reward_response(reward) for reward in rewards]
    return build_page(items, total=total, params=params)


@router.post("/rewards/{reward_id}/approve", response_model=ReferralRewardResponse)
async def approve_reward(reward_id: int) -> ReferralRewardResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRewardResponse:
        reward = await PartnerService.approve_reward(session, reward_id=reward_id, now_utc=now_utc)
        return _as_reward_response(reward)

    return await run_in_transaction(_operation)


@router.post("/rewards/{reward_id}/pay", response_model=ReferralRewardResponse)
async def pay_reward(reward_id: int, payload: RewardPayRequest) -> ReferralRewardResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRewardResponse:
        reward = await ReferralService.pay_reward(
            session,
            reward_id=reward_id,
            paid_method=payload.paid_method,
            transaction_id=payload.transaction_id,
            paid_by=payload.paid_by,
            now_utc=now_utc,
        )
        return _as_reward_response(reward)

    return await run_in_transaction(_operation)


@router.post("/rewards/{reward_id}/cancel", response_model=ReferralRewardResponse)
async def cancel_reward(reward_id: int) -> ReferralRewardResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralRewardResponse:
        reward = await ReferralService.cancel_reward(session, reward_id=reward_id, now_utc=now_utc)
        return _as_reward_response(reward)

    return await run_in_transaction(_operation)


@router.get("/statistics", response_model=ReferralStatisticsResponse)
async def get_statistics() -> ReferralStatisticsResponse:
    async with SessionLocal() as session:
        stats = await ReferralService.get_statistics(session)
    return ReferralStatisticsResponse(
        total_referrals=stats.total_referrals,
        active_referrals=stats.active_referrals,
        completed_referrals=stats.completed_referrals,
        cancelled_referrals=stats.cancelled_referrals,
        total_rewards_amount=float(stats.total_rewards_amount),
        pending_rewards_amount=float(stats.pending_rewards_amount),
        approved_rewards_amount=float(stats.approved_rewards_amount),
        paid_rewards_amount=float(stats.paid_rewards_amount),
        cancelled_rewards_amount=float(stats.cancelled_rewards_amount),
    )


@router.get("/top-referrers", response_model=list[TopReferrerResponse])
async def list_top_referrers(
    limit: int = Query(default=10, ge=1, le=100),
) -> list[TopReferrerResponse]:
    async with SessionLocal() as session:
        top_referrers = await ReferralService.list_top_referrers(session, limit=limit)
    return [
        TopReferrerResponse(
            referrer_id=item.referrer_user_id,
            referral_count=item.referral_count,
            rewards_amount=float(item.rewards_amount),
        )
        for item in top_referrers
    ]


@router.post("/purchase-events", response_model=PurchaseEventResponse)
async def ingest_purchase_event(payload: PurchaseEventRequest) -> PurchaseEventResponse:
    now_utc = datetime.now(timezone.utc)
    purchase = PurchaseFacts(
        event_id=payload.event_id,
        user_id=payload.user_id,
        plan_id=payload.plan_id,
        subscription_id=payload.subscription_id,
        amount=payload.amount,
        occurred_at=payload.timestamp,
        is_first_purchase=payload.is_first_purchase,
    )

    async def _operation(session: AsyncSession) -> PurchaseEventResponse:
        result = await ReferralService.ingest_purchase_event(
            session,
            purchase=purchase,
            now_utc=now_utc,
        )
        return PurchaseEventResponse(
            purchase_event_id=result.purchase_event_id,
            referral_id=result.referral_id,
            rule_id=result.rule_id,
            idempotent_replay=result.idempotent_replay,
            rewards=[_as_reward_response(reward) for reward in result.rewards],
            commissions=[_as_earning_summary(earning) for earning in result.commissions],
        )

    return await run_in_transaction(_operation)


@router.get("/{referral_id}", response_model=ReferralResponse)
async def get_referral(referral_id: int) -> ReferralResponse:
    async with SessionLocal() as session:
        referral = await ReferralService.get_referral(session, referral_id=referral_id)
        return _as_referral_response(referral)


@router.patch("/{referral_id}", response_model=ReferralResponse)
async def update_referral(referral_id: int, payload: ReferralUpdateRequest) -> ReferralResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralResponse:
        referral = await ReferralService.update_referral(
            session,
            referral_id=referral_id,
            notes=payload.notes,
            status=payload.status,
            cancelled_reason=payload.cancelled_reason,
            now_utc=now_utc,
        )
        return _as_referral_response(referral)

    return await run_in_transaction(_operation)


@router.post("/{referral_id}/complete", response_model=ReferralResponse)
async def complete_referral(referral_id: int) -> ReferralResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> ReferralResponse:
        accrual = await ReferralService.complete_referral(
            session,
            referral_id=referral_id,
            now_utc=now_utc,
        )
        return _as_referral_response(accrual.referral)

    return await run_in_transaction(_operation)


@router.post("/{referral_id}/cancel", response_model=ReferralResponse)
async def cancel_referral(
    referral_id: int,
    payload: ReferralCancelRequest | None = None,
) -> ReferralResponse:
    now_utc = datetime.now(timezone.utc)
    reason = payload.reason if payload is not None else None

    async def _operation(session: AsyncSession) -> ReferralResponse:
        referral = await ReferralService.cancel_referral(
            session,
            referral_id=referral_id,
            reason=reason,
            now_utc=now_utc,
        )
        return _as_referral_response(referral)

    return await run_in_transaction(_operation)
