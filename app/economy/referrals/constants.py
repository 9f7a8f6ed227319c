from __future__ import annotations

MANUAL_COMPLETION_EVENT_PREFIX = "manual-complete"
CONSUMED_RULE_EVENT_PREFIX = "rule"
REWARD_IDEMPOTENCY_PREFIX = "referral_reward"

REFERRAL_CODE_LENGTH = 6
DEFAULT_TOP_REFERRERS_LIMIT = 10
CUMULATIVE_REEVALUATION_BATCH_SIZE = 200
