from __future__ import annotations

import pytest

from app.economy.referrals.errors import (
    InvalidStateTransitionError,
    PayoutAlreadyFinalizedError,
)
from app.economy.referrals.states import can_transition, ensure_transition


@pytest.mark.parametrize(
    ("machine", "current", "target"),
    [
        ("referral", "active", "completed"),
        ("referral", "completed", "cancelled"),
        ("reward", "pending", "approved"),
        ("reward", "approved", "paid"),
        ("partner", "pending", "active"),
        ("partner", "suspended", "active"),
        ("payout", "pending", "processing"),
        ("payout", "processing", "failed"),
    ],
)
def test_allowed_transitions(machine: str, current: str, target: str) -> None:
    assert can_transition(machine, current, target) is True
    ensure_transition(machine, current, target)


@pytest.mark.parametrize(
    ("machine", "current", "target"),
    [
        ("referral", "cancelled", "active"),
        ("reward", "pending", "paid"),
        ("reward", "paid", "cancelled"),
        ("partner", "rejected", "active"),
        ("partner", "pending", "suspended"),
        ("payout", "pending", "completed"),
    ],
)
def test_rejected_transitions(machine: str, current: str, target: str) -> None:
    assert can_transition(machine, current, target) is False
    with pytest.raises(InvalidStateTransitionError):
        ensure_transition(machine, current, target)


@pytest.mark.parametrize("terminal_status", ["completed", "failed", "cancelled"])
def test_terminal_payout_raises_already_finalized(terminal_status: str) -> None:
    with pytest.raises(PayoutAlreadyFinalizedError):
        ensure_transition("payout", terminal_status, "processing")
