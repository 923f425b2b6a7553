from __future__ import annotations

from decimal import Decimal
from typing import Optional

ONE = Decimal("1")
ZERO = Decimal("0")


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def same_currency(left: str, right: str) -> bool:
    """Case-insensitive currency comparison without code validation."""
    return left.upper() == right.upper()


def rate_to_primary(
    currency: str,
    primary_currency: str,
    rate: Optional[Decimal],
) -> Decimal:
    """Pick the multiplier that converts ``currency`` into ``primary_currency``.

    The primary currency always converts at exactly 1. Any other currency uses
    the supplied rate, and a missing rate values the amount at 0.
    """
    if same_currency(currency, primary_currency):
        return ONE
    if rate is None:
        return ZERO
    return coerce_amount(rate)


def convert_to_primary(
    amount: Decimal | int | float | str,
    currency: str,
    primary_currency: str,
    rate: Optional[Decimal],
) -> Decimal:
    return coerce_amount(amount) * rate_to_primary(currency, primary_currency, rate)


def coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
