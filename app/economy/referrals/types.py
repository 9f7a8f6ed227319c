from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from app.db.models.partner_earnings import PartnerEarning
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referral_rules import ReferralRule
from app.db.models.referrals import Referral


@dataclass(frozen=True, slots=True)
class PurchaseFacts:
    event_id: str
    user_id: int
    plan_id: str | None
    subscription_id: str
    amount: Decimal
    occurred_at: datetime
    is_first_purchase: bool


@dataclass(frozen=True, slots=True)
class RuleSelection:
    rule: ReferralRule
    referrer_reward: Decimal
    referred_reward: Decimal


@dataclass(slots=True)
class AccrualResult:
    referral: Referral
    rewards: list[ReferralReward]
    idempotent_replay: bool
    referral_completed: bool = False


@dataclass(slots=True)
class IngestionResult:
    purchase_event_id: int
    referral_id: int | None
    rule_id: int | None
    idempotent_replay: bool
    rewards: list[ReferralReward] = field(default_factory=list)
    commissions: list[PartnerEarning] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReferralStatistics:
    total_referrals: int
    active_referrals: int
    completed_referrals: int
    cancelled_referrals: int
    total_rewards_amount: Decimal
    pending_rewards_amount: Decimal
    approved_rewards_amount: Decimal
    paid_rewards_amount: Decimal
    cancelled_rewards_amount: Decimal


@dataclass(frozen=True, slots=True)
class TopReferrer:
    referrer_user_id: int
    referral_count: int
    rewards_amount: Decimal
