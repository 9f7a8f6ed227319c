from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from app.db import session as session_module


class _Begin:
    def __init__(self, factory: "_FakeSessionLocal") -> None:
        self._factory = factory

    async def __aenter__(self) -> object:
        self._factory.opened += 1
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._factory.rolled_back += 1
        return False


class _FakeSessionLocal:
    def __init__(self) -> None:
        self.opened = 0
        self.rolled_back = 0

    def begin(self) -> _Begin:
        return _Begin(self)


def _duplicate_key() -> IntegrityError:
    return IntegrityError("INSERT INTO purchase_events", {}, Exception("duplicate key"))


@pytest.mark.asyncio
async def test_integrity_error_is_retried_once(monkeypatch) -> None:
    factory = _FakeSessionLocal()
    monkeypatch.setattr(session_module, "SessionLocal", factory)
    attempts: list[int] = []

    async def _operation(_session: object) -> str:
        attempts.append(len(attempts) + 1)
        if len(attempts) == 1:
            raise _duplicate_key()
        return "replayed"

    result = await session_module.run_in_transaction(_operation)

    assert result == "replayed"
    assert attempts == [1, 2]
    assert factory.opened == 2
    assert factory.rolled_back == 1


@pytest.mark.asyncio
async def test_repeated_integrity_error_propagates(monkeypatch) -> None:
    factory = _FakeSessionLocal()
    monkeypatch.setattr(session_module, "SessionLocal", factory)

    async def _operation(_session: object) -> str:
        raise _duplicate_key()

    with pytest.raises(IntegrityError):
        await session_module.run_in_transaction(_operation)
    assert factory.opened == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(monkeypatch) -> None:
    factory = _FakeSessionLocal()
    monkeypatch.setattr(session_module, "SessionLocal", factory)

    async def _operation(_session: object) -> str:
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await session_module.run_in_transaction(_operation)
    assert factory.opened == 1
