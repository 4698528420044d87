"""Fixed-scale decimal helpers shared by the storage backends."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Final

RATE_PRECISION: Final[int] = 20
RATE_SCALE: Final[int] = 10
_QUANTUM: Final[Decimal] = Decimal(1).scaleb(-RATE_SCALE)
# Smallest value that no longer fits NUMERIC(20, 10).
MAX_RATE: Final[Decimal] = Decimal(10) ** (RATE_PRECISION - RATE_SCALE)


def to_rate_decimal(value: object) -> Decimal:
    """Convert ``value`` into a ``Decimal`` truncated to the storage scale.

    Floats go through ``str`` so ``0.83`` is kept as ``0.83`` instead of its
    binary expansion. Raises ``ValueError`` for anything non-numeric.
    """

    if isinstance(value, bool):
        raise ValueError(f"Invalid rate value: {value!r}")
    try:
        if isinstance(value, Decimal):
            number = value
        else:
            number = Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid rate value: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"Invalid rate value: {value!r}")
    try:
        return truncate_rate(number)
    except InvalidOperation as exc:
        raise ValueError(f"Rate value out of range: {value!r}") from exc


def truncate_rate(value: Decimal) -> Decimal:
    """Truncate ``value`` to :data:`RATE_SCALE` fractional digits."""

    return value.quantize(_QUANTUM, rounding=ROUND_DOWN)


def is_storable_rate(value: Decimal) -> bool:
    """Return True when ``value`` is positive and fits the storage column."""

    return Decimal(0) < value < MAX_RATE


def inverse_rate(value: Decimal) -> Decimal:
    """Return ``1 / value`` truncated to the storage scale."""

    if value <= 0:
        raise ValueError("Cannot invert a non-positive rate")
    return truncate_rate(Decimal(1) / value)


__all__ = [
    "MAX_RATE",
    "RATE_PRECISION",
    "RATE_SCALE",
    "inverse_rate",
    "is_storable_rate",
    "to_rate_decimal",
    "truncate_rate",
]
