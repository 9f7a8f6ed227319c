import asyncio
from decimal import Decimal

from app.economy.partners.types import (
    AggregateSnapshot,
    ApprovalBatchResult,
    PartnerReconciliation,
    ReconciliationBatch,
)
from app.workers.tasks import partners


class _FakeBegin:
    async def __aenter__(self):
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeSessionLocal:
    @staticmethod
    def begin() -> _FakeBegin:
        return _FakeBegin()


def _snapshot(total: str) -> AggregateSnapshot:
    return AggregateSnapshot(
        total_earnings=Decimal(total),
        paid_earnings=Decimal("0.00"),
        pending_earnings=Decimal(total),
        referral_count=1,
    )


def test_run_due_reward_approval_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"batches": 1, "rewards_approved": batch_size, "earnings_approved": 0}

    monkeypatch.setattr(partners, "run_due_reward_approval_async", fake_async)

    result = partners.run_due_reward_approval(batch_size=4)
    assert result["rewards_approved"] == 4


def test_due_reward_approval_stops_after_short_batch(monkeypatch) -> None:
    results = [
        ApprovalBatchResult(rewards_approved=2, earnings_approved=1),
        ApprovalBatchResult(rewards_approved=1, earnings_approved=0),
    ]
    calls: list[int] = []

    async def fake_approve(session, *, now_utc, batch_size: int) -> ApprovalBatchResult:
        del session, now_utc
        calls.append(batch_size)
        return results[len(calls) - 1]

    monkeypatch.setattr(partners, "SessionLocal", _FakeSessionLocal)
    monkeypatch.setattr(partners.PartnerService, "approve_due_rows", fake_approve)

    result = asyncio.run(partners.run_due_reward_approval_async(batch_size=2))

    assert calls == [2, 2]
    assert result == {"batches": 2, "rewards_approved": 3, "earnings_approved": 1}


def test_partner_reconciliation_counts_drifted_partners(monkeypatch) -> None:
    batches = {
        0: ReconciliationBatch(
            results=[
                PartnerReconciliation(partner_id=1, before=_snapshot("5"), after=_snapshot("5")),
                PartnerReconciliation(partner_id=2, before=_snapshot("9"), after=_snapshot("7")),
            ],
            last_partner_id=2,
        ),
        2: ReconciliationBatch(results=[], last_partner_id=2),
    }

    async def fake_batch(session, *, after_partner_id: int, now_utc, batch_size: int):
        del session, now_utc, batch_size
        return batches[after_partner_id]

    monkeypatch.setattr(partners, "SessionLocal", _FakeSessionLocal)
    monkeypatch.setattr(partners.PartnerService, "reconcile_partners_batch", fake_batch)

    result = asyncio.run(partners.run_partner_reconciliation_async(batch_size=2))

    assert result == {"batches": 1, "partners_examined": 2, "partners_drifted": 1}


def test_run_partner_reconciliation_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"batches": 1, "partners_examined": batch_size, "partners_drifted": 0}

    monkeypatch.setattr(partners, "run_partner_reconciliation_async", fake_async)

    result = partners.run_partner_reconciliation(batch_size=9)
    assert result["partners_examined"] == 9
