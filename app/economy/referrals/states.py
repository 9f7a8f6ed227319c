"""Status enums and the single transition table every status change goes through."""

from __future__ import annotations

from enum import StrEnum

from app.economy.referrals.errors import (
    InvalidStateTransitionError,
    PayoutAlreadyFinalizedError,
)


class RuleType(StrEnum):
    FIRST_PURCHASE = "first_purchase"
    SUBSCRIPTION = "subscription"
    CUMULATIVE = "cumulative"


class ReferralStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RewardStatus(StrEnum):
    """Shared by ReferralReward and PartnerEarning rows."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class BeneficiaryRole(StrEnum):
    REFERRER = "referrer"
    REFERRED = "referred"


class PartnerStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class PayoutStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutMethod(StrEnum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    CRYPTO = "crypto"
    OTHER = "other"


class ApprovalPolicy(StrEnum):
    MANUAL = "manual"
    DELAYED = "delayed"


REFERRAL_TRANSITIONS: dict[str, frozenset[str]] = {
    ReferralStatus.ACTIVE: frozenset({ReferralStatus.COMPLETED, ReferralStatus.CANCELLED}),
    ReferralStatus.COMPLETED: frozenset({ReferralStatus.CANCELLED}),
    ReferralStatus.CANCELLED: frozenset(),
}

REWARD_TRANSITIONS: dict[str, frozenset[str]] = {
    RewardStatus.PENDING: frozenset({RewardStatus.APPROVED, RewardStatus.CANCELLED}),
    RewardStatus.APPROVED: frozenset({RewardStatus.PAID, RewardStatus.CANCELLED}),
    RewardStatus.PAID: frozenset(),
    RewardStatus.CANCELLED: frozenset(),
}

PARTNER_TRANSITIONS: dict[str, frozenset[str]] = {
    PartnerStatus.PENDING: frozenset({PartnerStatus.ACTIVE, PartnerStatus.REJECTED}),
    PartnerStatus.ACTIVE: frozenset({PartnerStatus.SUSPENDED}),
    PartnerStatus.SUSPENDED: frozenset({PartnerStatus.ACTIVE}),
    PartnerStatus.REJECTED: frozenset(),
}

PAYOUT_TRANSITIONS: dict[str, frozenset[str]] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PROCESSING, PayoutStatus.CANCELLED}),
    PayoutStatus.PROCESSING: frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED}),
    PayoutStatus.COMPLETED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
    PayoutStatus.CANCELLED: frozenset(),
}

PAYOUT_TERMINAL_STATUSES = frozenset(
    {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.CANCELLED}
)
PAYOUT_OPEN_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.PROCESSING})
UNPAID_REWARD_STATUSES = frozenset({RewardStatus.PENDING, RewardStatus.APPROVED})
LIVE_REFERRAL_STATUSES = frozenset({ReferralStatus.ACTIVE, ReferralStatus.COMPLETED})

_MACHINES: dict[str, dict[str, frozenset[str]]] = {
    "referral": REFERRAL_TRANSITIONS,
    "reward": REWARD_TRANSITIONS,
    "partner": PARTNER_TRANSITIONS,
    "payout": PAYOUT_TRANSITIONS,
}


def can_transition(machine: str, current: str, target: str) -> bool:
    return target in _MACHINES[machine].get(current, frozenset())


def ensure_transition(machine: str, current: str, target: str) -> None:
    if machine == "payout" and current in PAYOUT_TERMINAL_STATUSES:
        raise PayoutAlreadyFinalizedError(f"payout is already {current}")
    if not can_transition(machine, current, target):
        raise InvalidStateTransitionError(f"{machine} cannot move from {current} to {target}")
