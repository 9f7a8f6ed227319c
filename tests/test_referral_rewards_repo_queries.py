from __future__ import annotations

import warnings

import pytest

from app.db.repo.referral_rewards_repo import ReferralRewardsRepo


class _Scalars:
    def __init__(self, values: list[int]) -> None:
        self._values = values

    def all(self) -> list[int]:
        return self._values


class _Result:
    def __init__(self, values: list[int]) -> None:
        self._values = values

    def scalars(self) -> _Scalars:
        return _Scalars(self._values)


class _RecordingSession:
    def __init__(self, values: list[int]) -> None:
        self.values = values
        self.statements: list[object] = []

    async def execute(self, stmt: object) -> _Result:
        self.statements.append(stmt)
        return _Result(self.values)


@pytest.mark.asyncio
async def test_consumed_rule_ids_query_selects_distinct_rows() -> None:
    session = _RecordingSession([3, 7])

    rule_ids = await ReferralRewardsRepo.list_rule_ids_for_referral(session, referral_id=5)

    assert rule_ids == {3, 7}
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compiled = str(session.statements[0])
    assert compiled.startswith("SELECT DISTINCT referral_rewards.rule_id")
