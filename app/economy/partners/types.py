from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_payouts import PartnerPayout
from app.db.models.partners import Partner


@dataclass(frozen=True, slots=True)
class LedgerBalance:
    pending: Decimal
    approved: Decimal
    reserved: Decimal
    available: Decimal
    paid: Decimal
    cancelled: Decimal
    total: Decimal


@dataclass(slots=True)
class CommissionResult:
    earnings: list[PartnerEarning]
    idempotent_replay: bool


@dataclass(slots=True)
class PayoutResult:
    payout: PartnerPayout
    idempotent_replay: bool


@dataclass(frozen=True, slots=True)
class AggregateSnapshot:
    total_earnings: Decimal
    paid_earnings: Decimal
    pending_earnings: Decimal
    referral_count: int


@dataclass(frozen=True, slots=True)
class PartnerReconciliation:
    partner_id: int
    before: AggregateSnapshot
    after: AggregateSnapshot

    @property
    def drifted(self) -> bool:
        return self.before != self.after


@dataclass(slots=True)
class ReconciliationBatch:
    results: list[PartnerReconciliation] = field(default_factory=list)
    last_partner_id: int = 0


@dataclass(frozen=True, slots=True)
class ApprovalBatchResult:
    rewards_approved: int
    earnings_approved: int


@dataclass(frozen=True, slots=True)
class PartnerProgramStats:
    total_partners: int
    pending_partners: int
    active_partners: int
    suspended_partners: int
    rejected_partners: int
    total_earnings: Decimal
    total_paid: Decimal
    total_pending: Decimal
    total_referrals: int


@dataclass(slots=True)
class PartnerDashboard:
    partner: Partner
    balance: LedgerBalance
    recent_earnings: list[PartnerEarning]
    recent_payouts: list[PartnerPayout]
