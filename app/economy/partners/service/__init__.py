from __future__ import annotations

from .commissions import distribute_commissions, level_rate
from .ledger import (
    approve_due_rows,
    approve_earning,
    approve_reward,
    build_balance,
    cancel_earning,
    ensure_row_cancellable,
    get_balance,
    reconcile_partner,
    reconcile_partners_batch,
    recompute_for_user,
    recompute_partner_aggregates,
)
from .partners_admin import (
    change_partner_status,
    create_partner,
    get_partner,
    get_partner_by_referral_code,
    get_partner_dashboard,
    get_program_stats,
    list_earnings,
    list_partners,
    list_payouts,
    update_partner,
)
from .payouts import create_payout_request, process_payout
from .settings import get_partner_settings, update_partner_settings


class PartnerService:
    get_partner_settings = staticmethod(get_partner_settings)
    update_partner_settings = staticmethod(update_partner_settings)
    create_partner = staticmethod(create_partner)
    get_partner = staticmethod(get_partner)
    get_partner_by_referral_code = staticmethod(get_partner_by_referral_code)
    update_partner = staticmethod(update_partner)
    get_program_stats = staticmethod(get_program_stats)
    get_partner_dashboard = staticmethod(get_partner_dashboard)
    list_partners = staticmethod(list_partners)
    change_partner_status = staticmethod(change_partner_status)
    list_earnings = staticmethod(list_earnings)
    list_payouts = staticmethod(list_payouts)
    level_rate = staticmethod(level_rate)
    distribute_commissions = staticmethod(distribute_commissions)
    build_balance = staticmethod(build_balance)
    get_balance = staticmethod(get_balance)
    recompute_partner_aggregates = staticmethod(recompute_partner_aggregates)
    recompute_for_user = staticmethod(recompute_for_user)
    ensure_row_cancellable = staticmethod(ensure_row_cancellable)
    approve_reward = staticmethod(approve_reward)
    approve_earning = staticmethod(approve_earning)
    cancel_earning = staticmethod(cancel_earning)
    approve_due_rows = staticmethod(approve_due_rows)
    reconcile_partner = staticmethod(reconcile_partner)
    reconcile_partners_batch = staticmethod(reconcile_partners_batch)
    create_payout_request = staticmethod(create_payout_request)
    process_payout = staticmethod(process_payout)


__all__ = ["PartnerService"]
