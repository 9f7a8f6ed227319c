from __future__ import annotations

import pytest

from app.core.referral_codes import (
    ALPHABET,
    PARTNER_CODE_LENGTH,
    PARTNER_CODE_PREFIX,
    generate_partner_referral_code,
    generate_referral_code,
    normalize_referral_code,
)


def test_generate_referral_code_length_and_charset() -> None:
    code = generate_referral_code(8)
    assert len(code) == 8
    assert set(code).issubset(set(ALPHABET))


def test_generate_referral_code_rejects_non_positive_length() -> None:
    with pytest.raises(ValueError):
        generate_referral_code(0)


def test_generate_partner_referral_code_has_prefix() -> None:
    code = generate_partner_referral_code()
    assert code.startswith(PARTNER_CODE_PREFIX)
    assert len(code) == len(PARTNER_CODE_PREFIX) + PARTNER_CODE_LENGTH


@pytest.mark.parametrize(
    ("raw_code", "expected"),
    [
        (None, None),
        ("", None),
        ("   ", None),
        (" pabc234 ", "PABC234"),
    ],
)
def test_normalize_referral_code(raw_code: str | None, expected: str | None) -> None:
    assert normalize_referral_code(raw_code) == expected
