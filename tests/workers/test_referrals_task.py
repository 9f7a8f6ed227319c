import asyncio

from app.workers.tasks import referrals


class _FakeBegin:
    async def __aenter__(self):
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeSessionLocal:
    @staticmethod
    def begin() -> _FakeBegin:
        return _FakeBegin()


def test_run_cumulative_rule_reevaluation_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int) -> dict[str, int]:
        return {"batches": 1, "referrals_examined": batch_size, "rewards_created": 2}

    monkeypatch.setattr(referrals, "run_cumulative_rule_reevaluation_async", fake_async)

    result = referrals.run_cumulative_rule_reevaluation(batch_size=7)
    assert result == {"batches": 1, "referrals_examined": 7, "rewards_created": 2}


def test_cumulative_reevaluation_pages_until_cursor_stops(monkeypatch) -> None:
    cursors: list[int] = []
    pages = {0: 50, 50: 80, 80: 80}

    async def fake_reevaluate(session, *, after_referral_id: int, now_utc, batch_size: int):
        del session, now_utc
        assert batch_size == 50
        cursors.append(after_referral_id)
        examined = 0 if pages[after_referral_id] == after_referral_id else 3
        return {"referrals_examined": examined, "rewards_created": 1 if examined else 0}, pages[
            after_referral_id
        ]

    monkeypatch.setattr(referrals, "SessionLocal", _FakeSessionLocal)
    monkeypatch.setattr(
        referrals.ReferralService,
        "reevaluate_cumulative_rules",
        fake_reevaluate,
    )

    result = asyncio.run(referrals.run_cumulative_rule_reevaluation_async(batch_size=50))

    assert cursors == [0, 50, 80]
    assert result == {"batches": 3, "referrals_examined": 6, "rewards_created": 2}


def test_cumulative_reevaluation_is_scheduled_hourly() -> None:
    schedule = referrals.celery_app.conf.beat_schedule["referral-cumulative-rules-every-hour"]
    assert schedule["task"] == "app.workers.tasks.referrals.run_cumulative_rule_reevaluation"
    assert schedule["schedule"] == 3600.0
