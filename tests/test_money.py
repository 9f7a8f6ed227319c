from __future__ import annotations

from decimal import Decimal

import pytest

from app.core.money import ZERO, percent_of, to_money


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, ZERO),
        (Decimal("10"), Decimal("10.00")),
        (Decimal("0.005"), Decimal("0.01")),
        (12.345, Decimal("12.35")),
        ("7.1", Decimal("7.10")),
        (3, Decimal("3.00")),
    ],
)
def test_to_money_quantizes_to_cents(value: object, expected: Decimal) -> None:
    assert to_money(value) == expected


def test_percent_of_rounds_half_up() -> None:
    assert percent_of(Decimal("100"), Decimal("10")) == Decimal("10.00")
    assert percent_of(Decimal("9.99"), Decimal("5")) == Decimal("0.50")
    assert percent_of(Decimal("0.10"), Decimal("2")) == ZERO
