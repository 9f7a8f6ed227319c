from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
import structlog

from app.core.config import get_settings
from app.core.domain_events import (
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_SENT,
    OUTBOX_STATUS_SKIPPED,
)
from app.db.models.outbox_events import OutboxEvent
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.session import SessionLocal

logger = structlog.get_logger(__name__)

NOTIFICATION_MAX_ATTEMPTS = 5
NOTIFICATION_BATCH_SIZE = 100


def build_notification_body(event: OutboxEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "payload": event.payload,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


async def post_json(
    *,
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    event_type: str,
) -> bool:
    try:
        response = await client.post(url, json=body)
        response.raise_for_status()
        return True
    except Exception:
        logger.exception(
            "notification_delivery_failed",
            notification_event=event_type,
        )
        return False


def apply_delivery_outcome(event: OutboxEvent, *, delivered: bool, now_utc: datetime) -> str:
    event.attempts = int(event.attempts or 0) + 1
    if delivered:
        event.status = OUTBOX_STATUS_SENT
        event.sent_at = now_utc
    elif event.attempts >= NOTIFICATION_MAX_ATTEMPTS:
        event.status = OUTBOX_STATUS_FAILED
    else:
        event.status = OUTBOX_STATUS_PENDING
    return event.status


async def deliver_pending_notifications(
    *,
    now_utc: datetime,
    batch_size: int = NOTIFICATION_BATCH_SIZE,
    client: httpx.AsyncClient | None = None,
) -> dict[str, int]:
    """Pushes one batch of pending outbox events to the notification webhook.

    Events are marked SKIPPED when no webhook is configured. Failed posts stay
    PENDING until they run out of attempts and become FAILED.
    """
    settings = get_settings()
    webhook_url = settings.notification_webhook_url.strip()
    counters = {"sent": 0, "failed": 0, "retry": 0, "skipped": 0}

    async with SessionLocal.begin() as session:
        events = await OutboxEventsRepo.list_pending_for_update(session, limit=batch_size)
        if not events:
            return counters

        if not webhook_url:
            for event in events:
                event.status = OUTBOX_STATUS_SKIPPED
            counters["skipped"] = len(events)
            return counters

        owns_client = client is None
        http_client = client or httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
        try:
            for event in events:
                delivered = await post_json(
                    client=http_client,
                    url=webhook_url,
                    body=build_notification_body(event),
                    event_type=event.event_type,
                )
                outcome = apply_delivery_outcome(event, delivered=delivered, now_utc=now_utc)
                if outcome == OUTBOX_STATUS_SENT:
                    counters["sent"] += 1
                elif outcome == OUTBOX_STATUS_FAILED:
                    counters["failed"] += 1
                else:
                    counters["retry"] += 1
        finally:
            if owns_client:
                await http_client.aclose()

    return counters
