from app.db.models.outbox_events import OutboxEvent
from app.db.models.partner_earnings import PartnerEarning
from app.db.models.partner_payouts import PartnerPayout
from app.db.models.partner_settings import PartnerSettings
from app.db.models.partners import Partner
from app.db.models.purchase_events import PurchaseEvent
from app.db.models.referral_rewards import ReferralReward
from app.db.models.referral_rules import ReferralRule
from app.db.models.referrals import Referral

__all__ = [
    "OutboxEvent",
    "Partner",
    "PartnerEarning",
    "PartnerPayout",
    "PartnerSettings",
    "PurchaseEvent",
    "Referral",
    "ReferralReward",
    "ReferralRule",
]
