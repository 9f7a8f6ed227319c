from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, Money


class PartnerPayout(Base):
    __tablename__ = "partner_payouts"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','processing','completed','failed','cancelled')",
            name="ck_partner_payouts_status",
        ),
        CheckConstraint(
            "method IN ('bank_transfer','paypal','crypto','other')",
            name="ck_partner_payouts_method",
        ),
        CheckConstraint("amount > 0", name="ck_partner_payouts_amount_positive"),
        Index("idx_partner_payouts_partner_created", "partner_id", "created_at"),
        Index("idx_partner_payouts_status", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    partner_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("partners.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
