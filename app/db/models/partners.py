from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, JsonDocument, Money, Percent


class Partner(Base):
    __tablename__ = "partners"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','active','suspended','rejected')",
            name="ck_partners_status",
        ),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_partners_commission_rate",
        ),
        CheckConstraint(
            "pending_earnings >= 0 AND paid_earnings >= 0",
            name="ck_partners_earnings_non_negative",
        ),
        # SQLite stores NUMERIC as REAL, so the exact sum check only holds on PostgreSQL.
        CheckConstraint(
            "pending_earnings + paid_earnings <= total_earnings",
            name="ck_partners_earnings_bounded",
        ).ddl_if(dialect="postgresql"),
        Index("idx_partners_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(
        Money, nullable=False, server_default=text("0")
    )
    paid_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False, server_default=text("0"))
    pending_earnings: Mapped[Decimal] = mapped_column(
        Money, nullable=False, server_default=text("0")
    )
    referral_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    referral_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    payout_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payout_details: Mapped[dict[str, object]] = mapped_column(JsonDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
