from __future__ import annotations

from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_payouts import PartnerPayout
from app.db.models.partner_settings import PartnerSettings
from app.db.models.partners import Partner
from app.economy.partners.types import (
    AggregateSnapshot,
    LedgerBalance,
    PartnerDashboard,
    PartnerProgramStats,
)

from .partners_models import (
    AggregateSnapshotResponse,
    PartnerBalanceResponse,
    PartnerDashboardResponse,
    PartnerEarningResponse,
    PartnerProgramStatsResponse,
    PartnerResponse,
    PartnerSettingsResponse,
    PayoutResponse,
)


def _as_partner_response(partner: Partner) -> PartnerResponse:
    return PartnerResponse(
        id=partner.id,
        user_id=partner.user_id,
        commission_rate=float(partner.commission_rate),
        total_earnings=float(partner.total_earnings),
        paid_earnings=float(partner.paid_earnings),
        pending_earnings=float(partner.pending_earnings),
        referral_code=partner.referral_code,
        referral_count=partner.referral_count,
        status=partner.status,
        payout_method=partner.payout_method,
        payout_details=dict(partner.payout_details or {}),
        created_at=partner.created_at,
        updated_at=partner.updated_at,
    )


def _as_balance_response(partner_id: int, balance: LedgerBalance) -> PartnerBalanceResponse:
    return PartnerBalanceResponse(
        partner_id=partner_id,
        pending=float(balance.pending),
        approved=float(balance.approved),
        reserved=float(balance.reserved),
        available=float(balance.available),
        paid=float(balance.paid),
        cancelled=float(balance.cancelled),
        total=float(balance.total),
    )


def _as_earning_response(earning: PartnerEarning) -> PartnerEarningResponse:
    return PartnerEarningResponse(
        id=earning.id,
        partner_id=earning.partner_id,
        referred_user_id=earning.referred_user_id,
        subscription_id=earning.subscription_id,
        amount=float(earning.amount),
        commission_rate=float(earning.commission_rate),
        level=earning.level,
        status=earning.status,
        approved_at=earning.approved_at,
        paid_at=earning.paid_at,
        payout_id=earning.payout_id,
        split_from_id=earning.split_from_id,
        created_at=earning.created_at,
    )


def _as_payout_response(payout: PartnerPayout) -> PayoutResponse:
    return PayoutResponse(
        id=payout.id,
        partner_id=payout.partner_id,
        amount=float(payout.amount),
        method=payout.method,
        status=payout.status,
        transaction_id=payout.transaction_id,
        notes=payout.notes,
        idempotency_key=payout.idempotency_key,
        created_at=payout.created_at,
        processed_at=payout.processed_at,
        updated_at=payout.updated_at,
    )


def _as_settings_response(settings_row: PartnerSettings) -> PartnerSettingsResponse:
    return PartnerSettingsResponse(
        is_enabled=settings_row.is_enabled,
        level1_percent=float(settings_row.level1_percent),
        level2_percent=float(settings_row.level2_percent),
        level3_percent=float(settings_row.level3_percent),
        min_payout_amount=float(settings_row.min_payout_amount),
        reward_approval_policy=settings_row.reward_approval_policy,
        reward_approval_delay_hours=settings_row.reward_approval_delay_hours,
        updated_at=settings_row.updated_at,
    )


def _as_snapshot_response(snapshot: AggregateSnapshot) -> AggregateSnapshotResponse:
    return AggregateSnapshotResponse(
        total_earnings=float(snapshot.total_earnings),
        paid_earnings=float(snapshot.paid_earnings),
        pending_earnings=float(snapshot.pending_earnings),
        referral_count=snapshot.referral_count,
    )


def _as_program_stats_response(stats: PartnerProgramStats) -> PartnerProgramStatsResponse:
    return PartnerProgramStatsResponse(
        total_partners=stats.total_partners,
        pending_partners=stats.pending_partners,
        active_partners=stats.active_partners,
        suspended_partners=stats.suspended_partners,
        rejected_partners=stats.rejected_partners,
        total_earnings=float(stats.total_earnings),
        total_paid=float(stats.total_paid),
        total_pending=float(stats.total_pending),
        total_referrals=stats.total_referrals,
    )


def _as_dashboard_response(dashboard: PartnerDashboard) -> PartnerDashboardResponse:
    return PartnerDashboardResponse(
        partner=_as_partner_response(dashboard.partner),
        balance=_as_balance_response(dashboard.partner.id, dashboard.balance),
        recent_earnings=[_as_earning_response(earning) for earning in dashboard.recent_earnings],
        recent_payouts=[_as_payout_response(payout) for payout in dashboard.recent_payouts],
    )
