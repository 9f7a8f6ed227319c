from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, Money, Percent

ORIGINAL_ROW_PREDICATE = "split_from_id IS NULL"


class PartnerEarning(Base):
    __tablename__ = "partner_earnings"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','paid','cancelled')",
            name="ck_partner_earnings_status",
        ),
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_partner_earnings_level"),
        CheckConstraint("amount > 0", name="ck_partner_earnings_amount_positive"),
        Index(
            "uq_partner_earnings_subscription_partner_level",
            "subscription_id",
            "partner_id",
            "level",
            unique=True,
            postgresql_where=text(ORIGINAL_ROW_PREDICATE),
            sqlite_where=text(ORIGINAL_ROW_PREDICATE),
        ),
        Index("idx_partner_earnings_partner_status", "partner_id", "status"),
        Index("idx_partner_earnings_payout", "payout_id"),
        Index("idx_partner_earnings_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    partner_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("partners.id"), nullable=False
    )
    referred_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    subscription_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    level: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("partner_payouts.id"), nullable=True
    )
    split_from_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("partner_earnings.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
