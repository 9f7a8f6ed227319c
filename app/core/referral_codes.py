from __future__ import annotations

import secrets

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PARTNER_CODE_PREFIX = "P"
PARTNER_CODE_LENGTH = 8


def generate_referral_code(length: int = 6) -> str:
    """Generates a short uppercase referral code with low typo ambiguity."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_partner_referral_code() -> str:
    return f"{PARTNER_CODE_PREFIX}{generate_referral_code(PARTNER_CODE_LENGTH)}"


def normalize_referral_code(raw_code: str | None) -> str | None:
    if raw_code is None:
        return None
    normalized = raw_code.strip().upper()
    return normalized or None
