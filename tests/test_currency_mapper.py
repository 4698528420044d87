from __future__ import annotations

import logging

import pytest

from fx_fallback.utils import currency_mapper as mapper_module
from fx_fallback.utils.currency_mapper import CurrencyMapper


def test_aggregate_regions_map_to_nothing() -> None:
    mapper = CurrencyMapper()

    for code in ("WLD", "EUU", "LDC", "AFE", "arb"):
        assert mapper.is_aggregate_region(code)
        assert mapper.map_country_to_currency(code) is None
    assert not mapper.is_aggregate_region("USA")


def test_overrides_and_multi_currency_table_take_precedence() -> None:
    mapper = CurrencyMapper()

    assert mapper.map_country_to_currency("EMU") == "EUR"
    assert mapper.map_country_to_currency("tca") == "USD"
    assert mapper.map_country_to_currency(" XKX ") == "EUR"
    assert mapper.map_country_to_currency("CHI") == "GBP"
    assert mapper.map_country_to_currency("ZWE") == "ZWL"
    assert mapper.map_country_to_currency("CUB") == "CUP"


def test_reference_data_lookup() -> None:
    mapper = CurrencyMapper()

    assert mapper.map_country_to_currency("USA") == "USD"
    assert mapper.map_country_to_currency("GBR") == "GBP"
    assert mapper.map_country_to_currency("JPN") == "JPY"
    assert mapper.map_country_to_currency("DEU") == "EUR"
    assert mapper.map_country_to_currency("ZZZ") is None
    assert mapper.map_country_to_currency("") is None


def test_override_is_shared_across_instances() -> None:
    CurrencyMapper().add_currency_override("qqq", "xts")

    assert CurrencyMapper().map_country_to_currency("QQQ") == "XTS"

    CurrencyMapper().remove_currency_override("QQQ")
    assert CurrencyMapper().map_country_to_currency("QQQ") is None


def test_private_override_table_does_not_leak() -> None:
    private = CurrencyMapper(overrides={})
    private.add_currency_override("QQQ", "XTS")

    assert private.map_country_to_currency("QQQ") == "XTS"
    assert CurrencyMapper().map_country_to_currency("QQQ") is None


def test_lookup_errors_are_logged_not_raised(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    def _boom(territory: str) -> list[str]:
        raise RuntimeError("no locale data")

    monkeypatch.setattr(mapper_module, "get_territory_currencies", _boom)

    with caplog.at_level(logging.WARNING):
        assert CurrencyMapper().map_country_to_currency("USA") is None
    assert "Failed to map country USA" in caplog.text
