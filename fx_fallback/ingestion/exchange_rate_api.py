"""Adapter for exchangerate-api.com.

Example payload (``GET /v6/<key>/latest/USD``)::

    {"result": "success", "base_code": "USD",
     "time_last_update_unix": 1714521601,
     "conversion_rates": {"USD": 1, "EUR": 0.9351, ...}}

History responses (``/history/USD/2024/1/31``) carry ``year``/``month``/``day``
instead of the update timestamp.
"""

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

DEFAULT_BASE_URL = "https://v6.exchangerate-api.com"
DEFAULT_VERSION = "v6"


class ExchangeRateApiProvider(HistoricalSupport, ExchangeRateProvider):
    """exchangerate-api.com, keyed by an API token in the URL path."""

    name: ClassVar[str] = ProviderName.EXCHANGE_RATE_API.value

    def __init__(
        self,
        repository: Any,
        *,
        api_key: str | None,
        version: str = DEFAULT_VERSION,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not api_key:
            raise ValueError("exchangerate-api.com requires an API token")
        super().__init__(repository, session=session, timeout=timeout)
        self.api_key = api_key
        self.version = version.strip("/")
        self.base_url = base_url.rstrip("/")

    def _url(self, *segments: object) -> str:
        path = "/".join(str(segment) for segment in segments)
        return f"{self.base_url}/{self.version}/{self.api_key}/{path}"

    def fetch_latest(self, base_currency: str) -> FetchedRates:
        base = normalise_currency(base_currency)
        payload = self._get_json(self._url("latest", base), label=f"latest {base}")
        rates = self._conversion_rates(payload)
        stamp = payload.get("time_last_update_unix")
        return FetchedRates(
            base_currency=str(payload.get("base_code") or base),
            rates=rates,
            observed_at=from_unix_timestamp(stamp) if stamp else None,
        )

    def fetch_historical(self, base_currency: str, at: datetime) -> FetchedRates:
        base = normalise_currency(base_currency)
        day = to_utc_naive(at)
        payload = self._get_json(
            self._url("history", base, day.year, day.month, day.day),
            label=f"history {base} {day.date()}",
        )
        rates = self._conversion_rates(payload)
        return FetchedRates(
            base_currency=str(payload.get("base_code") or base),
            rates=rates,
            observed_at=_payload_day(payload) or day,
        )

    def _conversion_rates(self, payload: Any) -> dict[str, float]:
        if not isinstance(payload, Mapping):
            raise TransientProviderError(self.name, "unexpected response shape")
        if payload.get("result") == "error":
            reason = payload.get("error-type") or "unknown error"
            raise TransientProviderError(self.name, f"API error: {reason}")
        rates = payload.get("conversion_rates")
        if not isinstance(rates, Mapping):
            raise TransientProviderError(self.name, "response has no conversion_rates")
        return dict(rates)


def _payload_day(payload: Mapping[str, Any]) -> datetime | None:
    try:
        return datetime(int(payload["year"]), int(payload["month"]), int(payload["day"]))
    except (KeyError, TypeError, ValueError):
        return None


__all__ = ["ExchangeRateApiProvider", "DEFAULT_BASE_URL", "DEFAULT_VERSION"]
