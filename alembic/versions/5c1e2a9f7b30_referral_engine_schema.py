"""referral_engine_schema

Revision ID: 5c1e2a9f7b30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e2a9f7b30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

LIVE_REFERRAL_PREDICATE = "status IN ('active','completed')"
ORIGINAL_ROW_PREDICATE = "split_from_id IS NULL"


def _money() -> sa.Numeric:
    return sa.Numeric(12, 2)


def _percent() -> sa.Numeric:
    return sa.Numeric(5, 2)


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    op.create_table(
        "referral_rules",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rule_type", sa.String(24), nullable=False),
        sa.Column("referrer_reward", _money(), nullable=False),
        sa.Column("referred_reward", _money(), nullable=False),
        sa.Column("min_purchase_amount", _money(), nullable=True),
        sa.Column("applies_to_plans", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_repeatable", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("start_date", nullable=True),
        _timestamp("end_date", nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("supersedes_id", sa.BigInteger(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "rule_type IN ('first_purchase','cumulative','subscription')",
            name="ck_referral_rules_type",
        ),
        sa.CheckConstraint("referrer_reward >= 0", name="ck_referral_rules_referrer_reward"),
        sa.CheckConstraint("referred_reward >= 0", name="ck_referral_rules_referred_reward"),
        sa.CheckConstraint(
            "min_purchase_amount IS NULL OR min_purchase_amount >= 0",
            name="ck_referral_rules_min_purchase",
        ),
        sa.CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR start_date <= end_date",
            name="ck_referral_rules_window",
        ),
        sa.ForeignKeyConstraint(["supersedes_id"], ["referral_rules.id"]),
    )
    op.create_index("idx_referral_rules_active_type", "referral_rules", ["is_active", "rule_type"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referrer_user_id", sa.BigInteger(), nullable=False),
        sa.Column("referred_user_id", sa.BigInteger(), nullable=False),
        sa.Column("referral_code", sa.String(32), nullable=True),
        sa.Column("rule_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("referrer_reward", _money(), nullable=False),
        sa.Column("referred_reward", _money(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("completed_at", nullable=True),
        _timestamp("cancelled_at", nullable=True),
        sa.Column("cancelled_reason", sa.String(256), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_referrals_status",
        ),
        sa.CheckConstraint(
            "referrer_user_id <> referred_user_id",
            name="ck_referrals_no_self_referral",
        ),
        sa.CheckConstraint("referrer_reward >= 0", name="ck_referrals_referrer_reward"),
        sa.CheckConstraint("referred_reward >= 0", name="ck_referrals_referred_reward"),
        sa.ForeignKeyConstraint(["rule_id"], ["referral_rules.id"]),
    )
    op.create_index(
        "uq_referrals_live_referred",
        "referrals",
        ["referred_user_id"],
        unique=True,
        postgresql_where=sa.text(LIVE_REFERRAL_PREDICATE),
    )
    op.create_index("idx_referrals_referrer", "referrals", ["referrer_user_id"])
    op.create_index("idx_referrals_referred", "referrals", ["referred_user_id"])
    op.create_index("idx_referrals_code", "referrals", ["referral_code"])
    op.create_index("idx_referrals_status_created", "referrals", ["status", "created_at"])

    op.create_table(
        "partners",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("commission_rate", _percent(), nullable=False),
        sa.Column("total_earnings", _money(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_earnings", _money(), nullable=False, server_default=sa.text("0")),
        sa.Column("pending_earnings", _money(), nullable=False, server_default=sa.text("0")),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("referral_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("payout_method", sa.String(32), nullable=True),
        sa.Column("payout_details", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending','active','suspended','rejected')",
            name="ck_partners_status",
        ),
        sa.CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_partners_commission_rate",
        ),
        sa.CheckConstraint(
            "pending_earnings >= 0 AND paid_earnings >= 0",
            name="ck_partners_earnings_non_negative",
        ),
        sa.CheckConstraint(
            "pending_earnings + paid_earnings <= total_earnings",
            name="ck_partners_earnings_bounded",
        ),
        sa.UniqueConstraint("user_id", name="uq_partners_user_id"),
        sa.UniqueConstraint("referral_code", name="uq_partners_referral_code"),
    )
    op.create_index("idx_partners_status", "partners", ["status"])

    op.create_table(
        "partner_payouts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("partner_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        _timestamp("created_at"),
        _timestamp("processed_at", nullable=True),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending','processing','completed','failed','cancelled')",
            name="ck_partner_payouts_status",
        ),
        sa.CheckConstraint(
            "method IN ('bank_transfer','paypal','crypto','other')",
            name="ck_partner_payouts_method",
        ),
        sa.CheckConstraint("amount > 0", name="ck_partner_payouts_amount_positive"),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.UniqueConstraint("idempotency_key", name="uq_partner_payouts_idempotency_key"),
    )
    op.create_index(
        "idx_partner_payouts_partner_created",
        "partner_payouts",
        ["partner_id", "created_at"],
    )
    op.create_index("idx_partner_payouts_status", "partner_payouts", ["status"])

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("beneficiary_role", sa.String(16), nullable=False),
        sa.Column("trigger_event_id", sa.String(128), nullable=False),
        sa.Column("idempotency_key", sa.String(256), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("rule_id", sa.BigInteger(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("approved_at", nullable=True),
        _timestamp("paid_at", nullable=True),
        sa.Column("paid_by", sa.String(128), nullable=True),
        sa.Column("paid_method", sa.String(64), nullable=True),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("payout_id", sa.BigInteger(), nullable=True),
        sa.Column("split_from_id", sa.BigInteger(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending','approved','paid','cancelled')",
            name="ck_referral_rewards_status",
        ),
        sa.CheckConstraint(
            "beneficiary_role IN ('referrer','referred')",
            name="ck_referral_rewards_role",
        ),
        sa.CheckConstraint("amount > 0", name="ck_referral_rewards_amount_positive"),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
        sa.ForeignKeyConstraint(["rule_id"], ["referral_rules.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["partner_payouts.id"]),
        sa.ForeignKeyConstraint(["split_from_id"], ["referral_rewards.id"]),
    )
    op.create_index(
        "uq_referral_rewards_idempotency_key",
        "referral_rewards",
        ["idempotency_key"],
        unique=True,
        postgresql_where=sa.text(ORIGINAL_ROW_PREDICATE),
    )
    op.create_index("idx_referral_rewards_referral", "referral_rewards", ["referral_id"])
    op.create_index("idx_referral_rewards_user_status", "referral_rewards", ["user_id", "status"])
    op.create_index("idx_referral_rewards_payout", "referral_rewards", ["payout_id"])
    op.create_index(
        "idx_referral_rewards_status_created",
        "referral_rewards",
        ["status", "created_at"],
    )

    op.create_table(
        "partner_earnings",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("partner_id", sa.BigInteger(), nullable=False),
        sa.Column("referred_user_id", sa.BigInteger(), nullable=True),
        sa.Column("subscription_id", sa.String(64), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("commission_rate", _percent(), nullable=False),
        sa.Column("level", sa.SmallInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _timestamp("approved_at", nullable=True),
        _timestamp("paid_at", nullable=True),
        sa.Column("payout_id", sa.BigInteger(), nullable=True),
        sa.Column("split_from_id", sa.BigInteger(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "status IN ('pending','approved','paid','cancelled')",
            name="ck_partner_earnings_status",
        ),
        sa.CheckConstraint("level BETWEEN 1 AND 3", name="ck_partner_earnings_level"),
        sa.CheckConstraint("amount > 0", name="ck_partner_earnings_amount_positive"),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["partner_payouts.id"]),
        sa.ForeignKeyConstraint(["split_from_id"], ["partner_earnings.id"]),
    )
    op.create_index(
        "uq_partner_earnings_subscription_partner_level",
        "partner_earnings",
        ["subscription_id", "partner_id", "level"],
        unique=True,
        postgresql_where=sa.text(ORIGINAL_ROW_PREDICATE),
    )
    op.create_index(
        "idx_partner_earnings_partner_status",
        "partner_earnings",
        ["partner_id", "status"],
    )
    op.create_index("idx_partner_earnings_payout", "partner_earnings", ["payout_id"])
    op.create_index(
        "idx_partner_earnings_status_created",
        "partner_earnings",
        ["status", "created_at"],
    )

    op.create_table(
        "partner_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("level1_percent", _percent(), nullable=False),
        sa.Column("level2_percent", _percent(), nullable=False),
        sa.Column("level3_percent", _percent(), nullable=False),
        sa.Column("min_payout_amount", _money(), nullable=False),
        sa.Column("reward_approval_policy", sa.String(16), nullable=False),
        sa.Column("reward_approval_delay_hours", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "reward_approval_policy IN ('manual','delayed')",
            name="ck_partner_settings_approval_policy",
        ),
        sa.CheckConstraint(
            "level1_percent BETWEEN 0 AND 100 AND level2_percent BETWEEN 0 AND 100 "
            "AND level3_percent BETWEEN 0 AND 100",
            name="ck_partner_settings_percent_range",
        ),
        sa.CheckConstraint("min_payout_amount >= 0", name="ck_partner_settings_min_payout"),
        sa.CheckConstraint(
            "reward_approval_delay_hours >= 0",
            name="ck_partner_settings_approval_delay",
        ),
    )

    op.create_table(
        "purchase_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("plan_id", sa.String(64), nullable=True),
        sa.Column("subscription_id", sa.String(64), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_first_purchase", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint("amount >= 0", name="ck_purchase_events_amount_non_negative"),
        sa.UniqueConstraint("event_id", name="uq_purchase_events_event_id"),
    )
    op.create_index(
        "idx_purchase_events_user_occurred",
        "purchase_events",
        ["user_id", "occurred_at"],
    )
    op.create_index("idx_purchase_events_subscription", "purchase_events", ["subscription_id"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("sent_at", nullable=True),
        sa.CheckConstraint(
            "status IN ('PENDING','SENT','FAILED','SKIPPED')",
            name="ck_outbox_events_status",
        ),
    )
    op.create_index("idx_outbox_events_status_created", "outbox_events", ["status", "created_at"])
    op.create_index("idx_outbox_events_type_created", "outbox_events", ["event_type", "created_at"])


def downgrade() -> None:
    op.drop_table("outbox_events")
    op.drop_table("purchase_events")
    op.drop_table("partner_settings")
    op.drop_table("partner_earnings")
    op.drop_table("referral_rewards")
    op.drop_table("partner_payouts")
    op.drop_table("partners")
    op.drop_table("referrals")
    op.drop_table("referral_rules")
