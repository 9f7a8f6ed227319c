from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.money import ZERO, to_money
from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partners import Partner
from app.db.models.referral_rewards import ReferralReward
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referrals_repo import ReferralsRepo
from app.economy.partners.constants import APPROVAL_BATCH_SIZE, RECONCILIATION_BATCH_SIZE
from app.economy.partners.types import (
    AggregateSnapshot,
    ApprovalBatchResult,
    LedgerBalance,
    PartnerReconciliation,
    ReconciliationBatch,
)
from app.economy.referrals.errors import (
    CannotCancelPaidRewardError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.economy.referrals.states import ApprovalPolicy, RewardStatus, ensure_transition

from .settings import get_partner_settings


def _merge_sums(*sums: Mapping[str, Decimal]) -> dict[str, Decimal]:
    merged: dict[str, Decimal] = {}
    for status_sums in sums:
        for status, amount in status_sums.items():
            merged[status] = merged.get(status, ZERO) + to_money(amount)
    return merged


def build_balance(sums: Mapping[str, Decimal], *, reserved: Decimal) -> LedgerBalance:
    pending = to_money(sums.get(RewardStatus.PENDING, ZERO))
    approved = to_money(sums.get(RewardStatus.APPROVED, ZERO))
    paid = to_money(sums.get(RewardStatus.PAID, ZERO))
    cancelled = to_money(sums.get(RewardStatus.CANCELLED, ZERO))
    reserved = to_money(reserved)
    return LedgerBalance(
        pending=pending,
        approved=approved,
        reserved=reserved,
        available=to_money(approved - reserved),
        paid=paid,
        cancelled=cancelled,
        total=to_money(pending + approved + paid),
    )


async def _balance_for_partner(session: AsyncSession, *, partner: Partner) -> LedgerBalance:
    earning_sums = await PartnerEarningsRepo.sum_by_status_for_partner(
        session,
        partner_id=partner.id,
    )
    reward_sums = await ReferralRewardsRepo.sum_by_status_for_user(session, user_id=partner.user_id)
    reserved = await PartnerEarningsRepo.sum_reserved_for_partner(
        session,
        partner_id=partner.id,
    ) + await ReferralRewardsRepo.sum_reserved_for_user(session, user_id=partner.user_id)
    return build_balance(_merge_sums(earning_sums, reward_sums), reserved=reserved)


async def get_balance(
    session: AsyncSession,
    *,
    partner_id: int | None = None,
    user_id: int | None = None,
) -> LedgerBalance:
    """Live balance from the ledger rows, independent of the denormalized partner totals.

    A partner balance covers its commission rows and the referral rewards paid to
    its user; a plain user balance covers referral rewards only.
    """
    if partner_id is not None:
        partner = await PartnersRepo.get_by_id(session, partner_id=partner_id)
        if partner is None:
            raise NotFoundError("partner not found")
        return await _balance_for_partner(session, partner=partner)

    if user_id is None:
        raise ValidationError("partner_id or user_id is required")

    partner = await PartnersRepo.get_by_user_id(session, user_id=user_id)
    if partner is not None:
        return await _balance_for_partner(session, partner=partner)

    reward_sums = await ReferralRewardsRepo.sum_by_status_for_user(session, user_id=user_id)
    reserved = await ReferralRewardsRepo.sum_reserved_for_user(session, user_id=user_id)
    return build_balance(reward_sums, reserved=reserved)


def snapshot_aggregates(partner: Partner) -> AggregateSnapshot:
    return AggregateSnapshot(
        total_earnings=to_money(partner.total_earnings),
        paid_earnings=to_money(partner.paid_earnings),
        pending_earnings=to_money(partner.pending_earnings),
        referral_count=int(partner.referral_count or 0),
    )


async def recompute_partner_aggregates(
    session: AsyncSession,
    *,
    partner: Partner,
    now_utc: datetime,
) -> Partner:
    balance = await _balance_for_partner(session, partner=partner)
    partner.total_earnings = balance.total
    partner.paid_earnings = balance.paid
    partner.pending_earnings = to_money(balance.pending + balance.approved)
    partner.referral_count = await ReferralsRepo.count_live_for_referrer(
        session,
        referrer_user_id=partner.user_id,
    )
    partner.updated_at = now_utc
    return partner


async def recompute_for_user(
    session: AsyncSession,
    *,
    user_id: int,
    now_utc: datetime,
) -> Partner | None:
    partner = await PartnersRepo.get_by_user_id(session, user_id=user_id, for_update=True)
    if partner is None:
        return None
    return await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)


def ensure_row_cancellable(row: ReferralReward | PartnerEarning) -> bool:
    """Returns False when the row is already cancelled."""
    if row.status == RewardStatus.CANCELLED:
        return False
    if row.status == RewardStatus.PAID:
        raise CannotCancelPaidRewardError
    if row.payout_id is not None:
        raise ConflictError("row is reserved by an open payout")
    ensure_transition("reward", row.status, RewardStatus.CANCELLED)
    return True


async def approve_reward(
    session: AsyncSession,
    *,
    reward_id: int,
    now_utc: datetime,
) -> ReferralReward:
    unlocked = await ReferralRewardsRepo.get_by_id(session, reward_id=reward_id)
    if unlocked is None:
        raise NotFoundError("reward not found")
    partner = await PartnersRepo.get_by_user_id(session, user_id=unlocked.user_id, for_update=True)

    reward = await ReferralRewardsRepo.get_by_id_for_update(session, reward_id=reward_id)
    if reward is None:
        raise NotFoundError("reward not found")
    if reward.status == RewardStatus.APPROVED:
        return reward

    ensure_transition("reward", reward.status, RewardStatus.APPROVED)
    reward.status = RewardStatus.APPROVED
    reward.approved_at = now_utc
    reward.updated_at = now_utc
    if partner is not None:
        await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    return reward


async def _get_partner_earning_for_update(
    session: AsyncSession,
    *,
    partner_id: int,
    earning_id: int,
) -> tuple[Partner, PartnerEarning]:
    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")
    earning = await PartnerEarningsRepo.get_by_id_for_update(session, earning_id=earning_id)
    if earning is None or earning.partner_id != partner.id:
        raise NotFoundError("earning not found")
    return partner, earning


async def approve_earning(
    session: AsyncSession,
    *,
    partner_id: int,
    earning_id: int,
    now_utc: datetime,
) -> PartnerEarning:
    partner, earning = await _get_partner_earning_for_update(
        session,
        partner_id=partner_id,
        earning_id=earning_id,
    )
    if earning.status == RewardStatus.APPROVED:
        return earning

    ensure_transition("reward", earning.status, RewardStatus.APPROVED)
    earning.status = RewardStatus.APPROVED
    earning.approved_at = now_utc
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    return earning


async def cancel_earning(
    session: AsyncSession,
    *,
    partner_id: int,
    earning_id: int,
    now_utc: datetime,
) -> PartnerEarning:
    partner, earning = await _get_partner_earning_for_update(
        session,
        partner_id=partner_id,
        earning_id=earning_id,
    )
    if not ensure_row_cancellable(earning):
        return earning

    earning.status = RewardStatus.CANCELLED
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    return earning


async def approve_due_rows(
    session: AsyncSession,
    *,
    now_utc: datetime,
    batch_size: int = APPROVAL_BATCH_SIZE,
) -> ApprovalBatchResult:
    settings_row = await get_partner_settings(session, now_utc=now_utc)
    if settings_row.reward_approval_policy != ApprovalPolicy.DELAYED:
        return ApprovalBatchResult(rewards_approved=0, earnings_approved=0)

    created_before_utc = now_utc - timedelta(hours=settings_row.reward_approval_delay_hours)
    due_rewards = await ReferralRewardsRepo.list_due_pending(
        session,
        created_before_utc=created_before_utc,
        limit=batch_size,
    )
    due_earnings = await PartnerEarningsRepo.list_due_pending(
        session,
        created_before_utc=created_before_utc,
        limit=batch_size,
    )

    # Owners first, then the rows, so a concurrent payout or cancellation cannot deadlock.
    partners_by_id: dict[int, Partner] = {}
    owner_ids = {earning.partner_id for earning in due_earnings}
    for user_id in sorted({reward.user_id for reward in due_rewards}):
        owner = await PartnersRepo.get_by_user_id(session, user_id=user_id)
        if owner is not None:
            owner_ids.add(owner.id)
    for partner_id in sorted(owner_ids):
        partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
        if partner is not None:
            partners_by_id[partner.id] = partner

    touched_user_ids: set[int] = set()
    rewards_approved = 0
    for due_reward in due_rewards:
        reward = await ReferralRewardsRepo.get_by_id_for_update(session, reward_id=due_reward.id)
        if reward is None or reward.status != RewardStatus.PENDING:
            continue
        reward.status = RewardStatus.APPROVED
        reward.approved_at = now_utc
        reward.updated_at = now_utc
        touched_user_ids.add(reward.user_id)
        rewards_approved += 1

    earnings_approved = 0
    for due_earning in due_earnings:
        earning = await PartnerEarningsRepo.get_by_id_for_update(
            session,
            earning_id=due_earning.id,
        )
        if earning is None or earning.status != RewardStatus.PENDING:
            continue
        earning.status = RewardStatus.APPROVED
        earning.approved_at = now_utc
        earnings_approved += 1

    for partner in partners_by_id.values():
        touched_user_ids.discard(partner.user_id)
        await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    for user_id in sorted(touched_user_ids):
        await recompute_for_user(session, user_id=user_id, now_utc=now_utc)

    return ApprovalBatchResult(
        rewards_approved=rewards_approved,
        earnings_approved=earnings_approved,
    )


async def reconcile_partner(
    session: AsyncSession,
    *,
    partner_id: int,
    now_utc: datetime,
) -> PartnerReconciliation:
    partner = await PartnersRepo.get_by_id_for_update(session, partner_id=partner_id)
    if partner is None:
        raise NotFoundError("partner not found")

    before = snapshot_aggregates(partner)
    await recompute_partner_aggregates(session, partner=partner, now_utc=now_utc)
    return PartnerReconciliation(
        partner_id=partner.id,
        before=before,
        after=snapshot_aggregates(partner),
    )


async def reconcile_partners_batch(
    session: AsyncSession,
    *,
    after_partner_id: int,
    now_utc: datetime,
    batch_size: int = RECONCILIATION_BATCH_SIZE,
) -> ReconciliationBatch:
    partner_ids = await PartnersRepo.list_ids_after(
        session,
        after_id=after_partner_id,
        limit=batch_size,
    )
    batch = ReconciliationBatch(last_partner_id=after_partner_id)
    for partner_id in partner_ids:
        batch.results.append(
            await reconcile_partner(session, partner_id=partner_id, now_utc=now_utc)
        )
        batch.last_partner_id = partner_id
    return batch
