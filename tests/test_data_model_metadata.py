from __future__ import annotations

from sqlalchemy import CheckConstraint

from app.db.models import (  # noqa: F401
    OutboxEvent,
    Partner,
    PartnerEarning,
    PartnerPayout,
    PartnerSettings,
    PurchaseEvent,
    Referral,
    ReferralReward,
    ReferralRule,
)
from app.db.models.base import Base


def _check_names(table_name: str) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {
        constraint.name
        for constraint in table.constraints
        if isinstance(constraint, CheckConstraint)
    }


def _index(table_name: str, index_name: str):
    table = Base.metadata.tables[table_name]
    return next(index for index in table.indexes if index.name == index_name)


def test_all_engine_tables_registered() -> None:
    assert set(Base.metadata.tables) == {
        "referral_rules",
        "referrals",
        "referral_rewards",
        "partners",
        "partner_earnings",
        "partner_payouts",
        "partner_settings",
        "purchase_events",
        "outbox_events",
    }


def test_one_live_referral_per_referred_user_is_a_partial_unique_index() -> None:
    index = _index("referrals", "uq_referrals_live_referred")
    assert index.unique is True
    assert [column.name for column in index.columns] == ["referred_user_id"]
    assert "'active','completed'" in str(index.dialect_options["postgresql"]["where"])
    assert "ck_referrals_no_self_referral" in _check_names("referrals")


def test_ledger_idempotency_indexes_exclude_split_rows() -> None:
    reward_index = _index("referral_rewards", "uq_referral_rewards_idempotency_key")
    earning_index = _index("partner_earnings", "uq_partner_earnings_subscription_partner_level")

    assert reward_index.unique is True
    assert earning_index.unique is True
    assert [column.name for column in earning_index.columns] == [
        "subscription_id",
        "partner_id",
        "level",
    ]
    for index in (reward_index, earning_index):
        assert "split_from_id IS NULL" in str(index.dialect_options["postgresql"]["where"])


def test_critical_constraints_present() -> None:
    assert "ck_partners_earnings_bounded" in _check_names("partners")
    assert "ck_partners_commission_rate" in _check_names("partners")
    assert "ck_partner_earnings_level" in _check_names("partner_earnings")
    assert "ck_partner_payouts_amount_positive" in _check_names("partner_payouts")
    assert "ck_referral_rewards_amount_positive" in _check_names("referral_rewards")
    assert "ck_referral_rules_window" in _check_names("referral_rules")
    assert "ck_partner_settings_approval_policy" in _check_names("partner_settings")

    partners = Base.metadata.tables["partners"]
    assert partners.c.user_id.unique is True
    assert partners.c.referral_code.unique is True
    assert Base.metadata.tables["partner_payouts"].c.idempotency_key.unique is True
    assert Base.metadata.tables["purchase_events"].c.event_id.unique is True

    outbox_indexes = {index.name for index in Base.metadata.tables["outbox_events"].indexes}
    assert "idx_outbox_events_status_created" in outbox_indexes
