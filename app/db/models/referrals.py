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

LIVE_REFERRAL_PREDICATE = "status IN ('active','completed')"


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_referrals_status",
        ),
        CheckConstraint(
            "referrer_user_id <> referred_user_id", name="ck_referrals_no_self_referral"
        ),
        CheckConstraint("referrer_reward >= 0", name="ck_referrals_referrer_reward"),
        CheckConstraint("referred_reward >= 0", name="ck_referrals_referred_reward"),
        Index(
            "uq_referrals_live_referred",
            "referred_user_id",
            unique=True,
            postgresql_where=text(LIVE_REFERRAL_PREDICATE),
            sqlite_where=text(LIVE_REFERRAL_PREDICATE),
        ),
        Index("idx_referrals_referrer", "referrer_user_id"),
        Index("idx_referrals_referred", "referred_user_id"),
        Index("idx_referrals_code", "referral_code"),
        Index("idx_referrals_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    referrer_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    referred_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    referral_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    rule_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("referral_rules.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    referrer_reward: Mapped[Decimal] = mapped_column(Money, nullable=False)
    referred_reward: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
