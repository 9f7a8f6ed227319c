from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionLocal, run_in_transaction
from app.economy.partners.service import PartnerService
from app.economy.referrals.states import PartnerStatus

from .api_models import Page, PageParams, build_page, page_params
from .partners_helpers import (
    _as_balance_response,
    _as_dashboard_response,
    _as_earning_response,
    _as_partner_response,
    _as_payout_response,
    _as_program_stats_response,
    _as_settings_response,
    _as_snapshot_response,
)
from .partners_models import (
    PartnerBalanceResponse,
    PartnerCreateRequest,
    PartnerDashboardResponse,
    PartnerEarningResponse,
    PartnerProgramStatsResponse,
    PartnerReconcileResponse,
    PartnerResponse,
    PartnerSettingsResponse,
    PartnerSettingsUpdateRequest,
    PartnerUpdateRequest,
    PayoutCreateRequest,
    PayoutProcessRequest,
    PayoutResponse,
)

router = APIRouter(prefix="/partners", tags=["partners"])


@router.get("", response_model=Page[PartnerResponse])
async def list_partners(
    params: PageParams = Depends(page_params),
    partner_status: str | None = Query(default=None, alias="status"),
) -> Page[PartnerResponse]:
    async with SessionLocal() as session:
        partners, total = await PartnerService.list_partners(
            session,
            status=partner_status,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_partner_response(partner) for partner in partners]
    return build_page(items, total=total, params=params)


@router.post("", response_model=PartnerResponse, status_code=status.HTTP_201_CREATED)
async def create_partner(payload: PartnerCreateRequest) -> PartnerResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerResponse:
        partner = await PartnerService.create_partner(
            session,
            user_id=payload.user_id,
            commission_rate=payload.commission_rate,
            payout_method=payload.payout_method,
            payout_details=payload.payout_details,
            now_utc=now_utc,
        )
        return _as_partner_response(partner)

    return await run_in_transaction(_operation)


@router.get("/settings", response_model=PartnerSettingsResponse)
async def get_partner_settings() -> PartnerSettingsResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerSettingsResponse:
        settings_row = await PartnerService.get_partner_settings(session, now_utc=now_utc)
        return _as_settings_response(settings_row)

    return await run_in_transaction(_operation)


@router.put("/settings", response_model=PartnerSettingsResponse)
async def update_partner_settings(
    payload: PartnerSettingsUpdateRequest,
) -> PartnerSettingsResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerSettingsResponse:
        settings_row = await PartnerService.update_partner_settings(
            session,
            changes=payload.model_dump(exclude_none=True),
            now_utc=now_utc,
        )
        return _as_settings_response(settings_row)

    return await run_in_transaction(_operation)


@router.get("/stats/overview", response_model=PartnerProgramStatsResponse)
async def get_partner_program_stats() -> PartnerProgramStatsResponse:
    async with SessionLocal() as session:
        stats = await PartnerService.get_program_stats(session)
    return _as_program_stats_response(stats)


@router.get("/by-code/{referral_code}", response_model=PartnerResponse)
async def get_partner_by_referral_code(referral_code: str) -> PartnerResponse:
    async with SessionLocal() as session:
        partner = await PartnerService.get_partner_by_referral_code(
            session,
            referral_code=referral_code,
        )
        return _as_partner_response(partner)


@router.get("/{partner_id}", response_model=PartnerResponse)
async def get_partner(partner_id: int) -> PartnerResponse:
    async with SessionLocal() as session:
        partner = await PartnerService.get_partner(session, partner_id=partner_id)
        return _as_partner_response(partner)


@router.patch("/{partner_id}", response_model=PartnerResponse)
async def update_partner(partner_id: int, payload: PartnerUpdateRequest) -> PartnerResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerResponse:
        partner = await PartnerService.update_partner(
            session,
            partner_id=partner_id,
            changes=payload.model_dump(exclude_unset=True),
            now_utc=now_utc,
        )
        return _as_partner_response(partner)

    return await run_in_transaction(_operation)


@router.get("/{partner_id}/dashboard", response_model=PartnerDashboardResponse)
async def get_partner_dashboard(partner_id: int) -> PartnerDashboardResponse:
    async with SessionLocal() as session:
        dashboard = await PartnerService.get_partner_dashboard(session, partner_id=partner_id)
        return _as_dashboard_response(dashboard)


async def _change_status(partner_id: int, target_status: PartnerStatus) -> PartnerResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerResponse:
        partner = await PartnerService.change_partner_status(
            session,
            partner_id=partner_id,
            target_status=target_status,
            now_utc=now_utc,
        )
        return _as_partner_response(partner)

    return await run_in_transaction(_operation)


@router.post("/{partner_id}/activate", response_model=PartnerResponse)
async def activate_partner(partner_id: int) -> PartnerResponse:
    return await _change_status(partner_id, PartnerStatus.ACTIVE)


@router.post("/{partner_id}/suspend", response_model=PartnerResponse)
async def suspend_partner(partner_id: int) -> PartnerResponse:
    return await _change_status(partner_id, PartnerStatus.SUSPENDED)


@router.post("/{partner_id}/reject", response_model=PartnerResponse)
async def reject_partner(partner_id: int) -> PartnerResponse:
    return await _change_status(partner_id, PartnerStatus.REJECTED)


@router.get("/{partner_id}/balance", response_model=PartnerBalanceResponse)
async def get_partner_balance(partner_id: int) -> PartnerBalanceResponse:
    async with SessionLocal() as session:
        balance = await PartnerService.get_balance(session, partner_id=partner_id)
    return _as_balance_response(partner_id, balance)


@router.get("/{partner_id}/earnings", response_model=Page[PartnerEarningResponse])
async def list_partner_earnings(
    partner_id: int,
    params: PageParams = Depends(page_params),
    earning_status: str | None = Query(default=None, alias="status"),
) -> Page[PartnerEarningResponse]:
    async with SessionLocal() as session:
        earnings, total = await PartnerService.list_earnings(
            session,
            partner_id=partner_id,
            status=earning_status,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_earning_response(earning) for earning in earnings]
    return build_page(items, total=total, params=params)


@router.post(
    "/{partner_id}/earnings/{earning_id}/approve",
    response_model=PartnerEarningResponse,
)
async def approve_partner_earning(partner_id: int, earning_id: int) -> PartnerEarningResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerEarningResponse:
        earning = await PartnerService.approve_earning(
            session,
            partner_id=partner_id,
            earning_id=earning_id,
            now_utc=now_utc,
        )
        return _as_earning_response(earning)

    return await run_in_transaction(_operation)


@router.post(
    "/{partner_id}/earnings/{earning_id}/cancel",
    response_model=PartnerEarningResponse,
)
async def cancel_partner_earning(partner_id: int, earning_id: int) -> PartnerEarningResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerEarningResponse:
        earning = await PartnerService.cancel_earning(
            session,
            partner_id=partner_id,
            earning_id=earning_id,
            now_utc=now_utc,
        )
        return _as_earning_response(earning)

    return await run_in_transaction(_operation)


@router.get("/{partner_id}/payouts", response_model=Page[PayoutResponse])
async def list_partner_payouts(
    partner_id: int,
    params: PageParams = Depends(page_params),
    payout_status: str | None = Query(default=None, alias="status"),
) -> Page[PayoutResponse]:
    async with SessionLocal() as session:
        payouts, total = await PartnerService.list_payouts(
            session,
            partner_id=partner_id,
            status=payout_status,
            offset=params.offset,
            limit=params.limit,
        )
        items = [_as_payout_response(payout) for payout in payouts]
    return build_page(items, total=total, params=params)


@router.post(
    "/{partner_id}/payouts",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payout_request(
    partner_id: int,
    payload: PayoutCreateRequest,
    response: Response,
) -> PayoutResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> tuple[PayoutResponse, bool]:
        result = await PartnerService.create_payout_request(
            session,
            partner_id=partner_id,
            amount=payload.amount,
            method=payload.method,
            notes=payload.notes,
            idempotency_key=payload.idempotency_key,
            now_utc=now_utc,
        )
        return _as_payout_response(result.payout), result.idempotent_replay

    payout, idempotent_replay = await run_in_transaction(_operation)
    if idempotent_replay:
        response.status_code = status.HTTP_200_OK
    return payout


@router.post(
    "/{partner_id}/payouts/{payout_id}/process",
    response_model=PayoutResponse,
)
async def process_payout(
    partner_id: int,
    payout_id: int,
    payload: PayoutProcessRequest,
) -> PayoutResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PayoutResponse:
        payout = await PartnerService.process_payout(
            session,
            partner_id=partner_id,
            payout_id=payout_id,
            outcome=payload.status,
            notes=payload.notes,
            transaction_id=payload.transaction_id,
            now_utc=now_utc,
        )
        return _as_payout_response(payout)

    return await run_in_transaction(_operation)


@router.post("/{partner_id}/reconcile", response_model=PartnerReconcileResponse)
async def reconcile_partner(partner_id: int) -> PartnerReconcileResponse:
    now_utc = datetime.now(timezone.utc)

    async def _operation(session: AsyncSession) -> PartnerReconcileResponse:
        reconciliation = await PartnerService.reconcile_partner(
            session,
            partner_id=partner_id,
            now_utc=now_utc,
        )
        partner = await PartnerService.get_partner(session, partner_id=partner_id)
        return PartnerReconcileResponse(
            partner_id=reconciliation.partner_id,
            drifted=reconciliation.drifted,
            before=_as_snapshot_response(reconciliation.before),
            after=_as_snapshot_response(reconciliation.after),
            partner=_as_partner_response(partner),
        )

    return await run_in_transaction(_operation)
