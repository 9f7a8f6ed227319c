from __future__ import annotations

from decimal import Decimal

from app.db.models.partner_settings import PartnerSettings
from app.db.models.partners import Partner
from app.economy.partners.service import PartnerService


def test_build_balance_separates_reserved_from_available() -> None:
    balance = PartnerService.build_balance(
        {
            "pending": Decimal("5"),
            "approved": Decimal("40"),
            "paid": Decimal("20"),
            "cancelled": Decimal("7.5"),
        },
        reserved=Decimal("15"),
    )

    assert balance.pending == Decimal("5.00")
    assert balance.approved == Decimal("40.00")
    assert balance.reserved == Decimal("15.00")
    assert balance.available == Decimal("25.00")
    assert balance.paid == Decimal("20.00")
    assert balance.cancelled == Decimal("7.50")
    assert balance.total == Decimal("65.00")


def test_level_rate_uses_partner_rate_then_program_levels() -> None:
    partner = Partner(commission_rate=Decimal("12.50"))
    settings_row = PartnerSettings(
        level1_percent=Decimal("10.00"),
        level2_percent=Decimal("5.00"),
        level3_percent=Decimal("2.00"),
    )

    assert PartnerService.level_rate(level=1, partner=partner, settings_row=settings_row) == Decimal(
        "12.50"
    )
    assert PartnerService.level_rate(level=2, partner=partner, settings_row=settings_row) == Decimal(
        "5.00"
    )
    assert PartnerService.level_rate(level=3, partner=partner, settings_row=settings_row) == Decimal(
        "2.00"
    )
