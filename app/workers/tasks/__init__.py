from app.workers.tasks.outbox import run_outbox_cleanup, run_outbox_delivery
from app.workers.tasks.partners import run_due_reward_approval, run_partner_reconciliation
from app.workers.tasks.referrals import run_cumulative_rule_reevaluation

__all__ = [
    "run_cumulative_rule_reevaluation",
    "run_due_reward_approval",
    "run_outbox_cleanup",
    "run_outbox_delivery",
    "run_partner_reconciliation",
]
