from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.partner_earnings_repo import PartnerEarningsRepo
from app.db.repo.partner_payouts_repo import PartnerPayoutsRepo
from app.db.repo.partner_settings_repo import PartnerSettingsRepo
from app.db.repo.partners_repo import PartnersRepo
from app.db.repo.purchase_events_repo import PurchaseEventsRepo
from app.db.repo.referral_rewards_repo import ReferralRewardsRepo
from app.db.repo.referral_rules_repo import ReferralRulesRepo
from app.db.repo.referrals_repo import ReferralsRepo

__all__ = [
    "OutboxEventsRepo",
    "PartnerEarningsRepo",
    "PartnerPayoutsRepo",
    "PartnerSettingsRepo",
    "PartnersRepo",
    "PurchaseEventsRepo",
    "ReferralRewardsRepo",
    "ReferralRulesRepo",
    "ReferralsRepo",
]
