from __future__ import annotations


class ReferralEngineError(Exception):
    status_code = 500
    code = "E_INTERNAL"
    default_message = "referral engine error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ReferralEngineError):
    status_code = 400
    code = "E_VALIDATION"
    default_message = "invalid input"


class NotFoundError(ReferralEngineError):
    status_code = 404
    code = "E_NOT_FOUND"
    default_message = "entity not found"


class ConflictError(ReferralEngineError):
    status_code = 409
    code = "E_CONFLICT"
    default_message = "conflicting state"


class InsufficientBalanceError(ConflictError):
    code = "E_INSUFFICIENT_BALANCE"
    default_message = "payout amount exceeds the approved balance"


class ReferralInactiveError(ConflictError):
    code = "E_REFERRAL_INACTIVE"
    default_message = "referral is not active"


class CannotCancelPaidRewardError(ConflictError):
    code = "E_CANNOT_CANCEL_PAID_REWARD"
    default_message = "paid rewards cannot be cancelled"


class PayoutAlreadyFinalizedError(ConflictError):
    code = "E_PAYOUT_ALREADY_FINALIZED"
    default_message = "payout is already finalized"


class InvalidStateTransitionError(ConflictError):
    code = "E_INVALID_STATE_TRANSITION"
    default_message = "status transition is not allowed"


class ReferralChainCycleDetectedError(ReferralEngineError):
    status_code = 500
    code = "E_REFERRAL_CHAIN_CYCLE"
    default_message = "referral chain contains a cycle"
