from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import Any, TypeVar

import structlog

from app.db.session import dispose_engine

logger = structlog.get_logger(__name__)
T = TypeVar("T")


async def _run_with_fresh_db_pool(job: Coroutine[Any, Any, T]) -> T:
    # Each Celery invocation gets its own event loop, so pooled connections from a previous loop are dropped.
    await dispose_engine()
    try:
        return await job
    finally:
        await dispose_engine()


def run_async_job(job: Coroutine[Any, Any, T]) -> T:
    job_name = getattr(job, "__qualname__", type(job).__name__)
    started = time.monotonic()
    try:
        result = asyncio.run(_run_with_fresh_db_pool(job))
    except Exception:
        logger.exception(
            "worker_job_failed",
            job=job_name,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        raise
    logger.info(
        "worker_job_finished",
        job=job_name,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    return result
