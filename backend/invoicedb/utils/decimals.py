"""Decimal helpers shared by pricing, stock and AP code."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Coerce anything numeric-ish to Decimal; junk becomes 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        result = Decimal(str(value).strip() or "0")
    except (InvalidOperation, ValueError):
        return ZERO
    return result if result.is_finite() else ZERO


def round_to(value: Any, dp: int = 3) -> Decimal:
    quantum = Decimal(1).scaleb(-dp)
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def round2(value: Any) -> Decimal:
    return round_to(value, 2)


def non_negative(value: Any) -> Decimal:
    d = to_decimal(value)
    return d if d > ZERO else ZERO
