from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from .api_models import ApiModel


class PartnerCreateRequest(ApiModel):
    user_id: int = Field(gt=0)
    commission_rate: Decimal | None = Field(default=None, ge=0, le=100)
    payout_method: str | None = Field(default=None, max_length=32)
    payout_details: dict[str, object] | None = None


class PartnerResponse(ApiModel):
    id: int
    user_id: int
    commission_rate: float
    total_earnings: float
    paid_earnings: float
    pending_earnings: float
    referral_code: str
    referral_count: int
    status: str
    payout_method: str | None
    payout_details: dict[str, object]
    created_at: datetime
    updated_at: datetime


class PartnerBalanceResponse(ApiModel):
    partner_id: int
    pending: float
    approved: float
    reserved: float
    available: float
    paid: float
    cancelled: float
    total: float


class PartnerEarningResponse(ApiModel):
    id: int
    partner_id: int
    referred_user_id: int | None
    subscription_id: str
    amount: float
    commission_rate: float
    level: int
    status: str
    approved_at: datetime | None
    paid_at: datetime | None
    payout_id: int | None
    split_from_id: int | None
    created_at: datetime


class PayoutCreateRequest(ApiModel):
    amount: Decimal = Field(gt=0)
    method: str = Field(min_length=1, max_length=32)
    notes: str | None = Field(default=None, max_length=2000)
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=128)


class PayoutProcessRequest(ApiModel):
    status: Literal["processing", "completed", "failed", "cancelled"]
    notes: str | None = Field(default=None, max_length=2000)
    transaction_id: str | None = Field(default=None, max_length=128)


class PayoutResponse(ApiModel):
    id: int
    partner_id: int
    amount: float
    method: str
    status: str
    transaction_id: str | None
    notes: str | None
    idempotency_key: str | None
    created_at: datetime
    processed_at: datetime | None
    updated_at: datetime


class PartnerSettingsResponse(ApiModel):
    is_enabled: bool
    level1_percent: float
    level2_percent: float
    level3_percent: float
    min_payout_amount: float
    reward_approval_policy: str
    reward_approval_delay_hours: int
    updated_at: datetime


class PartnerSettingsUpdateRequest(ApiModel):
    is_enabled: bool | None = None
    level1_percent: Decimal | None = Field(default=None, ge=0, le=100)
    level2_percent: Decimal | None = Field(default=None, ge=0, le=100)
    level3_percent: Decimal | None = Field(default=None, ge=0, le=100)
    min_payout_amount: Decimal | None = Field(default=None, ge=0)
    reward_approval_policy: Literal["manual", "delayed"] | None = None
    reward_approval_delay_hours: int | None = Field(default=None, ge=0)


class AggregateSnapshotResponse(ApiModel):
    total_earnings: float
    paid_earnings: float
    pending_earnings: float
    referral_count: int


class PartnerReconcileResponse(ApiModel):
    partner_id: int
    drifted: bool
    before: AggregateSnapshotResponse
    after: AggregateSnapshotResponse
    partner: PartnerResponse


class PartnerUpdateRequest(ApiModel):
    commission_rate: Decimal | None = Field(default=None, ge=0, le=100)
    payout_method: str | None = Field(default=None, max_length=32)
    payout_details: dict[str, object] | None = None
    status: Literal["pending", "active", "suspended", "rejected"] | None = None


class PartnerProgramStatsResponse(ApiModel):
    total_partners: int
    pending_partners: int
    active_partners: int
    suspended_partners: int
    rejected_partners: int
    total_earnings: float
    total_paid: float
    total_pending: float
    total_referrals: int


class PartnerDashboardResponse(ApiModel):
    partner: PartnerResponse
    balance: PartnerBalanceResponse
    recent_earnings: list[PartnerEarningResponse]
    recent_payouts: list[PayoutResponse]
