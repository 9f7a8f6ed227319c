from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, Money

ORIGINAL_ROW_PREDICATE = "split_from_id IS NULL"


class ReferralReward(Base):
    __tablename__ = "referral_rewards"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','paid','cancelled')",
            name="ck_referral_rewards_status",
        ),
        CheckConstraint(
            "beneficiary_role IN ('referrer','referred')",
            name="ck_referral_rewards_role",
        ),
        CheckConstraint("amount > 0", name="ck_referral_rewards_amount_positive"),
        Index(
            "uq_referral_rewards_idempotency_key",
            "idempotency_key",
            unique=True,
            postgresql_where=text(ORIGINAL_ROW_PREDICATE),
            sqlite_where=text(ORIGINAL_ROW_PREDICATE),
        ),
        Index("idx_referral_rewards_referral", "referral_id"),
        Index("idx_referral_rewards_user_status", "user_id", "status"),
        Index("idx_referral_rewards_payout", "payout_id"),
        Index("idx_referral_rewards_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    referral_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("referrals.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    beneficiary_role: Mapped[str] = mapped_column(String(16), nullable=False)
    trigger_event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(256), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    rule_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("referral_rules.id"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    paid_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payout_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("partner_payouts.id"), nullable=True
    )
    split_from_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("referral_rewards.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
