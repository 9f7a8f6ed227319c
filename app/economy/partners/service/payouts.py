from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_events import (
    EVENT_PARTNER_PAYOUT_COMPLETED,
    EVENT_PARTNER_PAYOUT_FAILED,
    EVENT_PARTNER_PAYOUT_REQUESTED,
    emit_domain_event,
)
from app.core.money import ZERO, to_money
from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_payouts import PartnerPayout
from app.db.models.partners import Partner
from app.db.models.referral_rewards import ReferralReward
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.partner_payouts_repo import PartnerPayoutsRepo
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.economy.partners.constants import PAYOUT_PAID_BY_PREFIX
from app.economy.partners.types import PayoutResult
from app.economy.referrals.errors import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    PayoutAlreadyFinalizedError,
    ValidationError,
)
from app.economy.referrals.rules import as_utc
from app.economy.referrals.states import (
    PAYOUT_TERMINAL_STATUSES,
    PartnerStatus,
    PayoutMethod,
    PayoutStatus,
    RewardStatus,
    ensure_transition,
)

from .ledger import _balance_for_partner, recompute_partner_aggregates
from .settings import get_partner_settings

logger = structlog.get_logger(__name__)

LedgerRow = ReferralReward | PartnerEarning


def _reservation_order(row: LedgerRow) -> tuple[object, int, int]:
    kind_rank = 0 if isinstance(row, PartnerEarning) else 1
    return (as_utc(row.created_at), kind_rank, row.id)


def _split_copy(row: LedgerRow, *, amount: Decimal, now_utc: datetime) -> LedgerRow:
    if isinstance(row, PartnerEarning):
        return PartnerEarning(
            partner_id=row.partner_id,
            referred_user_id=row.referred_user_id,
            subscription_id=row.subscription_id,
            amount=amount,
            commission_rate=row.commission_rate,
            level=row.level,
            status=row.status,
            approved_at=row.approved_at,
            split_from_id=row.id,
            created_at=row.created_at,
        )
    return ReferralReward(
        referral_id=row.referral_id,
        user_id=row.user_id,
        beneficiary_role=row.beneficiary_role,
        trigger_event_id=row.trigger_event_id,
        idempotency_key=row.idempotency_key,
        amount=amount,
        status=row.status,
        rule_id=row.rule_id,
        description=row.description,
        approved_at=row.approved_at,
        split_from_id=row.id,
        created_at=row.created_at,
        updated_at=now_utc,
    )


async def _reserve_rows(
    session: AsyncSession,
    *,
    partner: Partner,
    payout: PartnerPayout,
    now_utc: datetime,
) -> int:
    """Stamps approved rows oldest-first until the payout amount is covered.

    The last row is split when it overshoots: it keeps the reserved part and a
    sibling row carries the remainder, so the per-key sum never changes.
    """
    earnings = await PartnerEarningsRepo.list_approved_unreserved_for_partner_for_update(
        session,
        partner_id=partner.id,
    )
    rewards = await ReferralRewardsRepo.list_approved_unreserved_for_user_for_update(
        session,
        user_id=partner.user_id,
    )
    candidates: list[LedgerRow] = sorted([*earnings, *rewards], key=_reservation_order)

    remaining = to_money(payout.amount)
    reserved_rows = 0
    for row in candidates:
        if remaining <= ZERO:
            break
        row_amount = to_money(row.amount)
        if row_amount > remaining:
            remainder = to_money(row_amount - remaining)
            row.amount = remaining
            session.add(_split_copy(row, amount=remainder, now_utc=now_utc))
            row_amount = remaining
        row.payout_id = payout.id
        if isinstance(row, ReferralReward):
            row.updated_at = now_utc
        remaining = to_money(remaining - row_amount)
        reserved_rows += 1

    if remaining > ZERO:
        raise InsufficientBalanceError
    await session.flush()
    return reserved_rows


async def create_payout_request(
    session: AsyncSession,
    *,
    partner_id: int,
    amount: Decimal,
    method: str,
    notes: str | None,
    now_utc: datetime,
    idempotency_key: str | None = None,
) -> PayoutResult:
    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")

    if idempotency_key is not None:
        existing = await PartnerPayoutsRepo.get_by_idempotency_key(
            session,
            idempotency_key=idempotency_key,
        )
        if existing is not None:
            if existing.partner_id != partner.id:
                raise ConflictError("idempotency key belongs to another partner")
            return PayoutResult(payout=existing, idempotent_replay=True)

    if partner.status != PartnerStatus.ACTIVE:
        raise ConflictError("partner is not active")

    payout_amount = to_money(amount)
    if payout_amount <= ZERO:
        raise ValidationError("amount must be positive")
    try:
        payout_method = PayoutMethod(method)
    except ValueError as exc:
        raise ValidationError("unknown payout method") from exc

    settings_row = await get_partner_settings(session, now_utc=now_utc)
    if payout_amount < to_money(settings_row.min_payout_amount):
        raise ValidationError(f"amount is below the minimum payout {settings_row.min_payout_amount}")

    balance = await _balance_for_partner(session, partner=partner)
    if payout_amount > balance.available:
        logger.info(
            "partner_payout_insufficient_balance",
            partner_id=partner.id,
            amount=str(payout_amount),
            available=str(balance.available),
        )
        raise InsufficientBalanceError(
            f"requested {payout_amount}, available {balance.available}"
        )

    payout = await PartnerPayoutsRepo.create(
        session,
        payout=PartnerPayout(
            partner_id=partner.id,
            amount=payout_amount,
            method=str(payout_method),
            status=PayoutStatus.PENDING,
            notes=notes,
            idempotency_key=idempotency_key,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )
    reserved_rows = await _reserve_rows(session, partner=partner, payout=payout, now_utc=now_utc)
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    await emit_domain_event(
        session,
        event_type=EVENT_PARTNER_PAYOUT_REQUESTED,
        happened_at=now_utc,
        payload={
            "partner_id": partner.id,
            "payout_id": payout.id,
            "amount": str(payout_amount),
            "method": payout.method,
        },
    )
    logger.info(
        "partner_payout_created",
        partner_id=partner.id,
        payout_id=payout.id,
        amount=str(payout_amount),
        reserved_rows=reserved_rows,
    )
    return PayoutResult(payout=payout, idempotent_replay=False)


async def _settle_reserved_rows(
    session: AsyncSession,
    *,
    payout: PartnerPayout,
    now_utc: datetime,
) -> None:
    for earning in await PartnerEarningsRepo.list_by_payout_for_update(
        session,
        payout_id=payout.id,
    ):
        ensure_transition("reward", earning.status, RewardStatus.PAID)
        earning.status = RewardStatus.PAID
        earning.paid_at = now_utc
    for reward in await ReferralRewardsRepo.list_by_payout_for_update(
        session,
        payout_id=payout.id,
    ):
        ensure_transition("reward", reward.status, RewardStatus.PAID)
        reward.status = RewardStatus.PAID
        reward.paid_at = now_utc
        reward.paid_by = f"{PAYOUT_PAID_BY_PREFIX}:{payout.id}"
        reward.paid_method = payout.method
        reward.transaction_id = payout.transaction_id
        reward.updated_at = now_utc


async def _release_reserved_rows(
    session: AsyncSession,
    *,
    payout: PartnerPayout,
    now_utc: datetime,
) -> None:
    for earning in await PartnerEarningsRepo.list_by_payout_for_update(
        session,
        payout_id=payout.id,
    ):
        earning.payout_id = None
    for reward in await ReferralRewardsRepo.list_by_payout_for_update(
        session,
        payout_id=payout.id,
    ):
        reward.payout_id = None
        reward.updated_at = now_utc


async def process_payout(
    session: AsyncSession,
    *,
    partner_id: int,
    payout_id: int,
    outcome: str,
    now_utc: datetime,
    notes: str | None = None,
    transaction_id: str | None = None,
) -> PartnerPayout:
    try:
        target = PayoutStatus(outcome)
    except ValueError as exc:
        raise ValidationError("unknown payout status") from exc
    if target == PayoutStatus.PENDING:
        raise ValidationError("payout cannot be moved back to pending")

    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")
    payout = await PartnerPayoutsRepo.get_by_id_for_update(session, payout_id=payout_id)
    if payout is None or payout.partner_id != partner.id:
        raise NotFoundError("payout not found")
    if payout.status in PAYOUT_TERMINAL_STATUSES:
        raise PayoutAlreadyFinalizedError(f"payout is already {payout.status}")

    if target in (PayoutStatus.COMPLETED, PayoutStatus.FAILED) and (
        payout.status == PayoutStatus.PENDING
    ):
        ensure_transition("payout", payout.status, PayoutStatus.PROCESSING)
        payout.status = PayoutStatus.PROCESSING

    ensure_transition("payout", payout.status, target)
    payout.status = target
    if notes is not None:
        payout.notes = notes
    if transaction_id is not None:
        payout.transaction_id = transaction_id
    payout.updated_at = now_utc

    if target == PayoutStatus.PROCESSING:
        return payout

    payout.processed_at = now_utc
    if target == PayoutStatus.COMPLETED:
        await _settle_reserved_rows(session, payout=payout, now_utc=now_utc)
    else:
        await _release_reserved_rows(session, payout=payout, now_utc=now_utc)
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)

    await emit_domain_event(
        session,
        event_type=(
            EVENT_PARTNER_PAYOUT_COMPLETED
            if target == PayoutStatus.COMPLETED
            else EVENT_PARTNER_PAYOUT_FAILED
        ),
        happened_at=now_utc,
        payload={
            "partner_id": partner.id,
            "payout_id": payout.id,
            "amount": str(to_money(payout.amount)),
            "status": payout.status,
            "transaction_id": payout.transaction_id,
        },
    )
    logger.info(
        "partner_payout_processed",
        partner_id=partner.id,
        payout_id=payout.id,
        status=payout.status,
    )
    return payout
