from __future__ import annotations

COMMISSION_CHAIN_MAX_DEPTH = 3
PARTNER_CODE_GENERATION_ATTEMPTS = 5
APPROVAL_BATCH_SIZE = 200
RECONCILIATION_BATCH_SIZE = 200
PAYOUT_PAID_BY_PREFIX = "payout"
DASHBOARD_RECENT_LIMIT = 10
