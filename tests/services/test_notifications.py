from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from app.db.models.outbox_events import OutboxEvent
from app.services import notifications

NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _Response:
    def raise_for_status(self) -> None:
        return None


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, fail: bool = False) -> None:
        self._calls = calls
        self._fail = fail

    async def post(self, url: str, json: dict[str, object]) -> _Response:
        self._calls.append({"url": url, "json": json})
        if self._fail:
            raise RuntimeError("delivery failed")
        return _Response()


def _event(*, attempts: int = 0) -> OutboxEvent:
    return OutboxEvent(
        id=11,
        event_type="partner_payout_completed",
        payload={"payout_id": 3, "amount": "25.00"},
        status="PENDING",
        attempts=attempts,
        created_at=NOW_UTC,
    )


def test_build_notification_body() -> None:
    assert notifications.build_notification_body(_event()) == {
        "id": 11,
        "event_type": "partner_payout_completed",
        "payload": {"payout_id": 3, "amount": "25.00"},
        "created_at": "2026-03-01T12:00:00+00:00",
    }


def test_post_json_reports_delivery() -> None:
    calls: list[dict[str, Any]] = []

    delivered = asyncio.run(
        notifications.post_json(
            client=_Client(calls),
            url="https://hooks.example.test/referrals",
            body={"id": 1},
            event_type="referral_completed",
        )
    )

    assert delivered is True
    assert calls == [{"url": "https://hooks.example.test/referrals", "json": {"id": 1}}]


def test_post_json_swallows_transport_errors() -> None:
    calls: list[dict[str, Any]] = []

    delivered = asyncio.run(
        notifications.post_json(
            client=_Client(calls, fail=True),
            url="https://hooks.example.test/referrals",
            body={"id": 1},
            event_type="referral_completed",
        )
    )

    assert delivered is False
    assert len(calls) == 1


def test_apply_delivery_outcome_marks_sent() -> None:
    event = _event()

    status = notifications.apply_delivery_outcome(event, delivered=True, now_utc=NOW_UTC)

    assert status == "SENT"
    assert event.attempts == 1
    assert event.sent_at == NOW_UTC


def test_apply_delivery_outcome_retries_until_attempts_exhausted() -> None:
    event = _event(attempts=notifications.NOTIFICATION_MAX_ATTEMPTS - 2)

    assert notifications.apply_delivery_outcome(event, delivered=False, now_utc=NOW_UTC) == "PENDING"
    assert notifications.apply_delivery_outcome(event, delivered=False, now_utc=NOW_UTC) == "FAILED"
    assert event.attempts == notifications.NOTIFICATION_MAX_ATTEMPTS
    assert event.sent_at is None
