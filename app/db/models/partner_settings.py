from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base, Money, Percent


class PartnerSettings(Base):
    __tablename__ = "partner_settings"
    __table_args__ = (
        CheckConstraint(
            "reward_approval_policy IN ('manual','delayed')",
            name="ck_partner_settings_approval_policy",
        ),
        CheckConstraint(
            "level1_percent BETWEEN 0 AND 100 AND level2_percent BETWEEN 0 AND 100 "
            "AND level3_percent BETWEEN 0 AND 100",
            name="ck_partner_settings_percent_range",
        ),
        CheckConstraint("min_payout_amount >= 0", name="ck_partner_settings_min_payout"),
        CheckConstraint(
            "reward_approval_delay_hours >= 0",
            name="ck_partner_settings_approval_delay",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)
    level1_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    level2_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    level3_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    min_payout_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reward_approval_policy: Mapped[str] = mapped_column(String(16), nullable=False)
    reward_approval_delay_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
