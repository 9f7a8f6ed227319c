from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from app.db.models.partners import Partner
from app.db.models.referral_rules import ReferralRule
from app.db.models.referrals import Referral
from app.db.session import SessionLocal
from app.economy.partners.service import PartnerService
from app.economy.referrals.service import ReferralService
from app.economy.referrals.types import IngestionResult, PurchaseFacts

UTC = timezone.utc
NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _create_rule(
    *,
    name: str = "first purchase",
    rule_type: str = "first_purchase",
    referrer_reward: str = "10.00",
    referred_reward: str = "5.00",
    min_purchase_amount: str | None = None,
    is_repeatable: bool = False,
    now_utc: datetime = NOW_UTC,
) -> ReferralRule:
    async with SessionLocal.begin() as session:
        return await ReferralService.create_rule(
            session,
            values={
                "name": name,
                "rule_type": rule_type,
                "referrer_reward": Decimal(referrer_reward),
                "referred_reward": Decimal(referred_reward),
                "min_purchase_amount": (
                    Decimal(min_purchase_amount) if min_purchase_amount is not None else None
                ),
                "is_repeatable": is_repeatable,
            },
            now_utc=now_utc,
        )


async def _create_partner(
    user_id: int,
    *,
    commission_rate: str | None = None,
    activate: bool = True,
    now_utc: datetime = NOW_UTC,
) -> Partner:
    async with SessionLocal.begin() as session:
        partner = await PartnerService.create_partner(
            session,
            user_id=user_id,
            commission_rate=Decimal(commission_rate) if commission_rate is not None else None,
            now_utc=now_utc,
        )
        if activate:
            partner = await PartnerService.change_partner_status(
                session,
                partner_id=partner.id,
                target_status="active",
                now_utc=now_utc,
            )
        return partner


async def _create_referral(
    referrer_user_id: int,
    referred_user_id: int,
    *,
    rule_id: int | None = None,
    now_utc: datetime = NOW_UTC,
) -> Referral:
    async with SessionLocal.begin() as session:
        return await ReferralService.create_referral(
            session,
            referrer_user_id=referrer_user_id,
            referred_user_id=referred_user_id,
            rule_id=rule_id,
            now_utc=now_utc,
        )


def _purchase(
    event_id: str,
    *,
    user_id: int,
    amount: str = "100.00",
    subscription_id: str | None = None,
    plan_id: str | None = "monthly",
    is_first_purchase: bool = True,
    occurred_at: datetime = NOW_UTC,
) -> PurchaseFacts:
    return PurchaseFacts(
        event_id=event_id,
        user_id=user_id,
        plan_id=plan_id,
        subscription_id=subscription_id or f"sub-{event_id}",
        amount=Decimal(amount),
        occurred_at=occurred_at,
        is_first_purchase=is_first_purchase,
    )


async def _ingest(purchase: PurchaseFacts, *, now_utc: datetime = NOW_UTC) -> IngestionResult:
    async with SessionLocal.begin() as session:
        return await ReferralService.ingest_purchase_event(
            session,
            purchase=purchase,
            now_utc=now_utc,
        )


async def _approve_all_for_partner(partner_id: int, *, now_utc: datetime = NOW_UTC) -> None:
    async with SessionLocal.begin() as session:
        earnings, _ = await PartnerService.list_earnings(
            session,
            partner_id=partner_id,
            status="pending",
            offset=0,
            limit=100,
        )
        for earning in earnings:
            await PartnerService.approve_earning(
                session,
                partner_id=partner_id,
                earning_id=earning.id,
                now_utc=now_utc,
            )
