from __future__ import annotations

from .accrual import accrue_rewards
from .ingestion import ingest_purchase_event, reevaluate_cumulative_rules
from .referrals_admin import (
    cancel_referral,
    complete_referral,
    create_referral,
    get_referral,
    list_referrals,
    update_referral,
)
from .rewards_admin import cancel_reward, list_rewards, pay_reward
from .rules_admin import (
    create_rule,
    delete_rule,
    get_rule,
    list_active_rules,
    list_rules,
    update_rule,
)
from .statistics import get_statistics, list_top_referrers


class ReferralService:
    create_rule = staticmethod(create_rule)
    get_rule = staticmethod(get_rule)
    list_rules = staticmethod(list_rules)
    list_active_rules = staticmethod(list_active_rules)
    update_rule = staticmethod(update_rule)
    delete_rule = staticmethod(delete_rule)
    create_referral = staticmethod(create_referral)
    get_referral = staticmethod(get_referral)
    list_referrals = staticmethod(list_referrals)
    update_referral = staticmethod(update_referral)
    complete_referral = staticmethod(complete_referral)
    cancel_referral = staticmethod(cancel_referral)
    accrue_rewards = staticmethod(accrue_rewards)
    list_rewards = staticmethod(list_rewards)
    pay_reward = staticmethod(pay_reward)
    cancel_reward = staticmethod(cancel_reward)
    ingest_purchase_event = staticmethod(ingest_purchase_event)
    reevaluate_cumulative_rules = staticmethod(reevaluate_cumulative_rules)
    get_statistics = staticmethod(get_statistics)
    list_top_referrers = staticmethod(list_top_referrers)


__all__ = ["ReferralService"]
