from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, BigIntPK, Money


class PurchaseEvent(Base):
    __tablename__ = "purchase_events"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_purchase_events_amount_non_negative"),
        Index("idx_purchase_events_user_occurred", "user_id", "occurred_at"),
        Index("idx_purchase_events_subscription", "subscription_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    plan_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subscription_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_first_purchase: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
