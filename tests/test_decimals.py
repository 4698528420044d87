from __future__ import annotations

from decimal import Decimal

import pytest

from fx_fallback.utils.decimals import (
    MAX_RATE,
    inverse_rate,
    is_storable_rate,
    to_rate_decimal,
    truncate_rate,
)


def test_floats_keep_their_decimal_spelling() -> None:
    assert to_rate_decimal(0.83) == Decimal("0.83")
    assert to_rate_decimal(108.5) == Decimal("108.5")
    assert to_rate_decimal("1.5") == Decimal("1.5")
    assert to_rate_decimal(3) == Decimal(3)


def test_values_are_truncated_not_rounded() -> None:
    assert to_rate_decimal("0.12345678919") == Decimal("0.1234567891")
    assert truncate_rate(Decimal(2) / Decimal(3)) == Decimal("0.6666666666")


@pytest.mark.parametrize("value", ["abc", None, True, float("nan"), float("inf"), "1e30"])
def test_invalid_values_raise_value_error(value: object) -> None:
    with pytest.raises(ValueError):
        to_rate_decimal(value)


def test_is_storable_rate() -> None:
    assert is_storable_rate(Decimal("0.0000000001"))
    assert not is_storable_rate(Decimal(0))
    assert not is_storable_rate(Decimal(-1))
    assert not is_storable_rate(MAX_RATE)


def test_inverse_rate() -> None:
    assert inverse_rate(Decimal("0.83")) == Decimal("1.2048192771")
    assert inverse_rate(Decimal(4)) == Decimal("0.25")
    with pytest.raises(ValueError):
        inverse_rate(Decimal(0))
