from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings

logger = structlog.get_logger(__name__)
T = TypeVar("T")


def _build_engine(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = _build_engine(get_settings().database_url)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def dispose_engine() -> None:
    await engine.dispose()


async def run_in_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    retries_on_integrity_error: int = 1,
) -> T:
    """Runs `operation` in one transaction, retrying after a lost unique-index race.

    Every mutating engine operation resolves a duplicate through its replay path,
    so a rerun after the competing transaction committed returns the existing rows.
    """
    attempt = 0
    while True:
        try:
            async with SessionLocal.begin() as session:
                return await operation(session)
        except IntegrityError:
            if attempt >= retries_on_integrity_error:
                raise
            attempt += 1
            logger.warning("transaction_integrity_conflict_retry", attempt=attempt)
