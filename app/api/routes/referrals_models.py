from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from .api_models import ApiModel


class ReferralCreateRequest(ApiModel):
    referred_id: int = Field(gt=0)
    referrer_id: int | None = Field(default=None, gt=0)
    referral_code: str | None = Field(default=None, min_length=1, max_length=32)
    rule_id: int | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=2000)


class ReferralUpdateRequest(ApiModel):
    notes: str | None = Field(default=None, max_length=2000)
    status: str | None = None
    cancelled_reason: str | None = Field(default=None, max_length=256)


class ReferralCancelRequest(ApiModel):
    reason: str | None = Field(default=None, max_length=256)


class ReferralResponse(ApiModel):
    id: int
    referrer_id: int
    referred_id: int
    referral_code: str | None = None
    rule_id: int | None = None
    status: str
    referrer_reward: float
    referred_reward: float
    notes: str | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ReferralRuleWriteRequest(ApiModel):
    name: str = Field(min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=2000)
    type: str
    referrer_reward: Decimal = Field(ge=0)
    referred_reward: Decimal = Field(ge=0)
    min_purchase_amount: Decimal | None = Field(default=None, ge=0)
    applies_to_plans: list[str] | None = None
    is_active: bool = True
    is_repeatable: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None


class ReferralRuleResponse(ApiModel):
    id: int
    name: str
    description: str | None = None
    type: str
    referrer_reward: float
    referred_reward: float
    min_purchase_amount: float | None = None
    applies_to_plans: list[str] | None = None
    is_active: bool
    is_repeatable: bool
    start_date: datetime | None = None
    end_date: datetime | None = None
    version: int
    supersedes_id: int | None = None
    created_at: datetime
    updated_at: datetime


class ReferralRuleDeleteResponse(ApiModel):
    deleted: bool
    rule: ReferralRuleResponse | None = None


class ReferralRewardResponse(ApiModel):
    id: int
    referral_id: int
    user_id: int
    beneficiary_role: str
    trigger_event_id: str
    amount: float
    status: str
    rule_id: int | None = None
    description: str | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    paid_by: str | None = None
    paid_method: str | None = None
    transaction_id: str | None = None
    payout_id: int | None = None
    split_from_id: int | None = None
    created_at: datetime


class RewardPayRequest(ApiModel):
    paid_method: str
    transaction_id: str | None = Field(default=None, max_length=128)
    paid_by: str | None = Field(default=None, max_length=128)


class ReferralStatisticsResponse(ApiModel):
    total_referrals: int = Field(ge=0)
    active_referrals: int = Field(ge=0)
    completed_referrals: int = Field(ge=0)
    cancelled_referrals: int = Field(ge=0)
    total_rewards_amount: float
    pending_rewards_amount: float
    approved_rewards_amount: float
    paid_rewards_amount: float
    cancelled_rewards_amount: float


class TopReferrerResponse(ApiModel):
    referrer_id: int
    referral_count: int = Field(ge=0)
    rewards_amount: float


class PurchaseEventRequest(ApiModel):
    event_id: str = Field(min_length=1, max_length=128)
    user_id: int = Field(gt=0)
    plan_id: str | None = Field(default=None, max_length=64)
    subscription_id: str = Field(min_length=1, max_length=64)
    amount: Decimal = Field(ge=0)
    timestamp: datetime
    is_first_purchase: bool = False


class PartnerEarningSummary(ApiModel):
    id: int
    partner_id: int
    level: int
    amount: float
    commission_rate: float
    status: str


class PurchaseEventResponse(ApiModel):
    purchase_event_id: int
    referral_id: int | None = None
    rule_id: int | None = None
    idempotent_replay: bool
    rewards: list[ReferralRewardResponse]
    commissions: list[PartnerEarningSummary]
