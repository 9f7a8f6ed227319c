from __future__ import annotations

from decimal import Decimal

import pytest

from app.db.session import SessionLocal
from app.economy.partners.service import PartnerService
from app.economy.referrals.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from tests.integration.referral_engine_fixtures import (
    NOW_UTC,
    _create_partner,
    _create_referral,
    _ingest,
    _purchase,
)


async def _update(partner_id: int, changes: dict[str, object]):
    async with SessionLocal.begin() as session:
        return await PartnerService.update_partner(
            session,
            partner_id=partner_id,
            changes=changes,
            now_utc=NOW_UTC,
        )


@pytest.mark.asyncio
async def test_updated_commission_rate_applies_to_next_purchase() -> None:
    partner = await _create_partner(1)
    await _create_referral(1, 2)

    updated = await _update(
        partner.id,
        {
            "commission_rate": Decimal("25.00"),
            "payout_method": "paypal",
            "payout_details": {"email": "partner@example.test"},
        },
    )
    assert updated.commission_rate == Decimal("25.00")
    assert updated.payout_method == "paypal"
    assert updated.payout_details == {"email": "partner@example.test"}

    result = await _ingest(_purchase("evt-rate", user_id=2, amount="40.00"))
    assert [earning.amount for earning in result.commissions] == [Decimal("10.00")]


@pytest.mark.asyncio
async def test_update_rederives_totals_and_validates_input() -> None:
    partner = await _create_partner(1)
    await _create_referral(1, 2)
    await _ingest(_purchase("evt-totals", user_id=2))

    updated = await _update(partner.id, {"payout_method": None})
    assert updated.total_earnings == Decimal("10.00")
    assert updated.pending_earnings == Decimal("10.00")
    assert updated.referral_count == 1

    with pytest.raises(ValidationError):
        await _update(partner.id, {"commission_rate": Decimal("101")})
    with pytest.raises(ValidationError):
        await _update(partner.id, {"payout_method": "cheque"})


@pytest.mark.asyncio
async def test_status_change_through_update_uses_transition_table() -> None:
    partner = await _create_partner(1)

    suspended = await _update(partner.id, {"status": "suspended"})
    assert suspended.status == "suspended"

    with pytest.raises(InvalidStateTransitionError):
        await _update(partner.id, {"status": "pending"})


@pytest.mark.asyncio
async def test_lookup_by_referral_code_is_case_insensitive() -> None:
    partner = await _create_partner(1)

    async with SessionLocal() as session:
        found = await PartnerService.get_partner_by_referral_code(
            session,
            referral_code=f"  {partner.referral_code.lower()} ",
        )
        assert found.id == partner.id
        with pytest.raises(NotFoundError):
            await PartnerService.get_partner_by_referral_code(session, referral_code="PNOPE0000")


@pytest.mark.asyncio
async def test_program_stats_and_dashboard() -> None:
    active = await _create_partner(1)
    await _create_partner(3, activate=False)
    await _create_referral(1, 2)
    await _ingest(_purchase("evt-dashboard", user_id=2))

    async with SessionLocal() as session:
        stats = await PartnerService.get_program_stats(session)
        dashboard = await PartnerService.get_partner_dashboard(session, partner_id=active.id)

    assert stats.total_partners == 2
    assert stats.active_partners == 1
    assert stats.pending_partners == 1
    assert stats.total_earnings == Decimal("10.00")
    assert stats.total_referrals == 1

    assert dashboard.partner.id == active.id
    assert dashboard.balance.pending == Decimal("10.00")
    assert [earning.level for earning in dashboard.recent_earnings] == [1]
    assert dashboard.recent_payouts == []
