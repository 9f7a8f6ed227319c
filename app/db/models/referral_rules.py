from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, JsonDocument, Money


class ReferralRule(Base):
    __tablename__ = "referral_rules"
    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('first_purchase','cumulative','subscription')",
            name="ck_referral_rules_type",
        ),
        CheckConstraint("referrer_reward >= 0", name="ck_referral_rules_referrer_reward"),
        CheckConstraint("referred_reward >= 0", name="ck_referral_rules_referred_reward"),
        CheckConstraint(
            "min_purchase_amount IS NULL OR min_purchase_amount >= 0",
            name="ck_referral_rules_min_purchase",
        ),
        CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR start_date <= end_date",
            name="ck_referral_rules_window",
        ),
        Index("idx_referral_rules_active_type", "is_active", "rule_type"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(String(24), nullable=False)
    referrer_reward: Mapped[Decimal] = mapped_column(Money, nullable=False)
    referred_reward: Mapped[Decimal] = mapped_column(Money, nullable=False)
    min_purchase_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    applies_to_plans: Mapped[list[str] | None] = mapped_column(JsonDocument, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    is_repeatable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    supersedes_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("referral_rules.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
