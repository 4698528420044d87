"""Adapter for openexchangerates.org."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Mapping

import requests

from fx_fallback.exceptions import TransientProviderError
from fx_fallback.ingestion.models import FetchedRates, normalise_currency
from fx_fallback.ingestion.strategy import (
    DEFAULT_TIMEOUT,
    ExchangeRateProvider,
    HistoricalSupport,
    ProviderName,
)
from fx_fallback.utils.date_range import from_unix_timestamp, to_utc_naive

DEFAULT_BASE_URL = "https://openexchangerates.org/api"


class OpenExchangeRatesProvider(HistoricalSupport, ExchangeRateProvider):
    """openexchangerates.org, authenticated with an app id header."""

    name: ClassVar[str] = ProviderName.OPEN_EXCHANGE_RATES.value

    def __init__(
        self,
        repository: Any,
        *,
        app_id: str | None,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not app_id:
            raise ValueError("openexchangerates.org requires an app id")
        super().__init__(repository, session=session, timeout=timeout)
        self.app_id = app_id
        self.base_url = base_url.rstrip("/")

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Token {self.app_id}"}

    def fetch_latest(self, base_currency: str) -> FetchedRates:
        base = normalise_currency(base_currency)
        payload = self._get_json(
            f"{self.base_url}/latest.json",
            label=f"latest {base}",
            params={"base": base},
            headers=self.headers,
        )
        return self._parse(payload, base, fallback_time=None)

    def fetch_historical(self, base_currency: str, at: datetime) -> FetchedRates:
        base = normalise_currency(base_currency)
        day = to_utc_naive(at)
        payload = self._get_json(
            f"{self.base_url}/historical/{day.date().isoformat()}.json",
            label=f"historical {base} {day.date()}",
            params={"base": base},
            headers=self.headers,
        )
        return self._parse(payload, base, fallback_time=day)

    def _parse(
        self, payload: Any, base: str, *, fallback_time: datetime | None
    ) -> FetchedRates:
        if not isinstance(payload, Mapping):
            raise TransientProviderError(self.name, "unexpected response shape")
        if payload.get("error"):
            reason = payload.get("description") or payload.get("message") or "unknown error"
            raise TransientProviderError(self.name, f"API error: {reason}")
        rates = payload.get("rates")
        if not isinstance(rates, Mapping):
            raise TransientProviderError(self.name, "response has no rates")
        stamp = payload.get("timestamp")
        return FetchedRates(
            base_currency=str(payload.get("base") or base),
            rates=dict(rates),
            observed_at=from_unix_timestamp(stamp) if stamp else fallback_time,
        )


__all__ = ["OpenExchangeRatesProvider", "DEFAULT_BASE_URL"]
