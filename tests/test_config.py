from __future__ import annotations

import pytest

from fx_fallback.config import DEFAULT_FALLBACK_ORDER, Settings, parse_fallback_order
from fx_fallback.ingestion.strategy import ProviderName


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_env({})

    assert settings.exchange_rate_api.api_key is None
    assert settings.exchange_rate_api.version == "v6"
    assert settings.exchange_rate_api.base_url == "https://v6.exchangerate-api.com"
    assert settings.open_exchange_rates.app_id is None
    assert settings.open_exchange_rates.base_url == "https://openexchangerates.org/api"
    assert settings.world_bank.base_url == "https://api.worldbank.org/v2"
    assert settings.fallback_order == DEFAULT_FALLBACK_ORDER
    assert settings.db_url is None
    assert settings.http_timeout == 30


def test_values_from_environment() -> None:
    settings = Settings.from_env(
        {
            "EXCHANGE_RATE_API_TOKEN": " token ",
            "EXCHANGE_RATE_API_VERSION": "v7",
            "OPEN_EXCHANGE_RATE_APP_ID": "app",
            "WORLD_BANK_EXCHANGE_RATE_BASE_URL": "http://localhost:8080/v2",
            "EXCHANGE_RATES_FALLBACK_ORDER": "world_bank, OPEN_EXCHANGE_RATES,world_bank",
            "EXCHANGE_RATES_DB_URL": "postgresql://user:pw@db/forex",
            "EXCHANGE_RATES_HTTP_TIMEOUT": "2.5",
        }
    )

    assert settings.exchange_rate_api.api_key == "token"
    assert settings.exchange_rate_api.version == "v7"
    assert settings.open_exchange_rates.app_id == "app"
    assert settings.world_bank.base_url == "http://localhost:8080/v2"
    assert settings.fallback_order == (
        ProviderName.WORLD_BANK,
        ProviderName.OPEN_EXCHANGE_RATES,
    )
    assert settings.db_url == "postgresql://user:pw@db/forex"
    assert settings.http_timeout == 2.5


def test_blank_values_are_ignored() -> None:
    settings = Settings.from_env({"EXCHANGE_RATE_API_TOKEN": "  ", "EXCHANGE_RATES_DB_URL": ""})

    assert settings.exchange_rate_api.api_key is None
    assert settings.db_url is None


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValueError, match="fixer"):
        parse_fallback_order("exchange_rate_api,fixer")
    assert parse_fallback_order(" , ") == DEFAULT_FALLBACK_ORDER


@pytest.mark.parametrize("timeout", ["0", "-1", "soon"])
def test_invalid_timeout(timeout: str) -> None:
    with pytest.raises(ValueError):
        Settings.from_env({"EXCHANGE_RATES_HTTP_TIMEOUT": timeout})
