"""Settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from fx_fallback.ingestion import exchange_rate_api, open_exchange_rates, world_bank
from fx_fallback.ingestion.strategy import DEFAULT_TIMEOUT, ProviderName

DEFAULT_FALLBACK_ORDER: tuple[ProviderName, ...] = (
    ProviderName.EXCHANGE_RATE_API,
    ProviderName.OPEN_EXCHANGE_RATES,
    ProviderName.WORLD_BANK,
)


@dataclass(frozen=True)
class ExchangeRateApiSettings:
    api_key: str | None = None
    version: str = exchange_rate_api.DEFAULT_VERSION
    base_url: str = exchange_rate_api.DEFAULT_BASE_URL


@dataclass(frozen=True)
class OpenExchangeRatesSettings:
    app_id: str | None = None
    base_url: str = open_exchange_rates.DEFAULT_BASE_URL


@dataclass(frozen=True)
class WorldBankSettings:
    base_url: str = world_bank.DEFAULT_BASE_URL
    lookback_years: int = 1


@dataclass(frozen=True)
class Settings:
    """Provider credentials, fallback order and storage location."""

    exchange_rate_api: ExchangeRateApiSettings = field(default_factory=ExchangeRateApiSettings)
    open_exchange_rates: OpenExchangeRatesSettings = field(
        default_factory=OpenExchangeRatesSettings
    )
    world_bank: WorldBankSettings = field(default_factory=WorldBankSettings)
    fallback_order: tuple[ProviderName, ...] = DEFAULT_FALLBACK_ORDER
    db_url: str | None = None
    http_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``environ`` (``os.environ`` by default).

        Raises ``ValueError`` for unknown provider names or a bad timeout.
        """

        env = os.environ if environ is None else environ
        return cls(
            exchange_rate_api=ExchangeRateApiSettings(
                api_key=_get(env, "EXCHANGE_RATE_API_TOKEN"),
                version=_get(env, "EXCHANGE_RATE_API_VERSION") or exchange_rate_api.DEFAULT_VERSION,
                base_url=_get(env, "EXCHANGE_RATE_API_BASE_URL")
                or exchange_rate_api.DEFAULT_BASE_URL,
            ),
            open_exchange_rates=OpenExchangeRatesSettings(
                app_id=_get(env, "OPEN_EXCHANGE_RATE_APP_ID"),
                base_url=_get(env, "OPEN_EXCHANGE_RATE_BASE_URL")
                or open_exchange_rates.DEFAULT_BASE_URL,
            ),
            world_bank=WorldBankSettings(
                base_url=_get(env, "WORLD_BANK_EXCHANGE_RATE_BASE_URL")
                or world_bank.DEFAULT_BASE_URL,
            ),
            fallback_order=parse_fallback_order(_get(env, "EXCHANGE_RATES_FALLBACK_ORDER")),
            db_url=_get(env, "EXCHANGE_RATES_DB_URL"),
            http_timeout=_parse_timeout(_get(env, "EXCHANGE_RATES_HTTP_TIMEOUT")),
        )


def parse_fallback_order(value: str | None) -> tuple[ProviderName, ...]:
    """Parse a comma separated provider list; empty means the default order."""

    names = [part for part in (chunk.strip() for chunk in (value or "").split(",")) if part]
    if not names:
        return DEFAULT_FALLBACK_ORDER
    return tuple(dict.fromkeys(ProviderName.parse(name) for name in names))


def _parse_timeout(value: str | None) -> float:
    if value is None:
        return DEFAULT_TIMEOUT
    timeout = float(value)
    if timeout <= 0:
        raise ValueError("EXCHANGE_RATES_HTTP_TIMEOUT must be positive")
    return timeout


def _get(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


__all__ = [
    "DEFAULT_FALLBACK_ORDER",
    "ExchangeRateApiSettings",
    "OpenExchangeRatesSettings",
    "Settings",
    "WorldBankSettings",
    "parse_fallback_order",
]
