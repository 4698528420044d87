"""Adapter for the World Bank official exchange rate indicator.

The World Bank publishes one yearly average per country (``PA.NUS.FCRF``,
local currency units per USD). Responses are cached per year for a day and
rebased on the requested currency by :class:`WorldBankRateExtractor`.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, ClassVar, Iterable, Mapping, Sequence

import requests

from fx_fallback.exceptions import TransientProviderError
from fx_fallback.ingestion.models import (
    FetchedRates,
    HistoricalBaseCurrency,
    normalise_currency,
)
from fx_fallback.ingestion.strategy import (
    DEFAULT_TIMEOUT,
    ExchangeRateProvider,
    HistoricalSupport,
    ProviderName,
)
from fx_fallback.utils.cache_utils import get_ttl_cache
from fx_fallback.utils.date_range import to_utc_naive, utc_now
from fx_fallback.utils.logger import get_logger
from fx_fallback.utils.world_bank import WorldBankRateExtractor, fetch_all_pages, last_updated

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.worldbank.org/v2"
INDICATOR = "PA.NUS.FCRF"
PER_PAGE = 1000
CACHE_NAME = "world_bank_rates"
CACHE_TTL_SECONDS = 24 * 60 * 60


class WorldBankProvider(HistoricalSupport, ExchangeRateProvider):
    """World Bank yearly rates, cross-computed for any base currency."""

    name: ClassVar[str] = ProviderName.WORLD_BANK.value

    def __init__(
        self,
        repository: Any,
        *,
        base_url: str = DEFAULT_BASE_URL,
        extractor: WorldBankRateExtractor | None = None,
        lookback_years: int = 1,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if lookback_years < 0:
            raise ValueError("lookback_years must not be negative")
        super().__init__(repository, session=session, timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.extractor = extractor or WorldBankRateExtractor()
        self.lookback_years = lookback_years
        self.cache = get_ttl_cache(CACHE_NAME, maxsize=32, ttl=CACHE_TTL_SECONDS)

    def fetch_year(self, year: int) -> list[Any]:
        """Return every page of the indicator for ``year``, cached for a day."""

        cached = self.cache.get(year)
        if cached is not None:
            LOGGER.debug("Using cached World Bank data for %s", year)
            return cached
        first = self._fetch_page(year, 1)
        raw = fetch_all_pages(first, lambda page: self._fetch_page(year, page))
        self.cache[year] = raw
        return raw

    def _fetch_page(self, year: int, page: int) -> Sequence[Any]:
        payload = self._get_json(
            f"{self.base_url}/country/all/indicator/{INDICATOR}",
            label=f"{INDICATOR} {year} page {page}",
            params={"date": str(year), "format": "json", "per_page": PER_PAGE, "page": page},
        )
        if not isinstance(payload, list) or not payload:
            raise TransientProviderError(self.name, "unexpected response shape")
        head = payload[0]
        if isinstance(head, Mapping) and "message" in head:
            raise TransientProviderError(self.name, f"API error: {head['message']}")
        return payload

    def _candidate_years(self) -> range:
        current = utc_now().year
        return range(current, current - self.lookback_years - 1, -1)

    def fetch_latest(self, base_currency: str) -> FetchedRates:
        base = normalise_currency(base_currency)
        return self.fetch_latest_bulk([base]).get(base) or FetchedRates(base, {}, None)

    def fetch_latest_bulk(self, base_currencies: Iterable[str]) -> dict[str, FetchedRates]:
        """Price every base from the most recent year that has data.

        One download per year serves all requested bases.
        """

        bases = list(dict.fromkeys(normalise_currency(code) for code in base_currencies))
        for year in self._candidate_years():
            raw = self.fetch_year(year)
            tables = self.extractor.extract_for_multiple_currencies(bases, raw)
            if not tables:
                LOGGER.info("World Bank has no %s data for %s yet", INDICATOR, year)
                continue
            observed_at = last_updated(raw) or utc_now()
            return {
                base: FetchedRates(base_currency=base, rates=rates, observed_at=observed_at)
                for base, rates in tables.items()
            }
        return {}

    def fetch_historical(self, base_currency: str, at: datetime) -> FetchedRates:
        item = HistoricalBaseCurrency(base_currency, at)
        return self.fetch_historical_bulk([item])[0][1]

    def fetch_historical_bulk(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> list[tuple[HistoricalBaseCurrency, FetchedRates]]:
        """Group requests by year: one download and one parse per year.

        Each set is stamped at its requested instant so different days of
        the same year stay distinct rows.
        """

        by_year: dict[int, list[HistoricalBaseCurrency]] = defaultdict(list)
        for item in {item.key: item for item in items}.values():
            by_year[item.at.year].append(item)

        results: list[tuple[HistoricalBaseCurrency, FetchedRates]] = []
        for year in sorted(by_year):
            group = by_year[year]
            raw = self.fetch_year(year)
            tables = self.extractor.extract_for_multiple_currencies(
                [item.base_currency for item in group], raw
            )
            for item in group:
                results.append(
                    (
                        item,
                        FetchedRates(
                            base_currency=item.base_currency,
                            rates=tables.get(item.base_currency, {}),
                            observed_at=to_utc_naive(item.at),
                        ),
                    )
                )
        return results

    def available_currencies(self, year: int | None = None) -> list[str]:
        """Currencies the World Bank can price for ``year`` (default: this year)."""

        return self.extractor.available_currencies(self.fetch_year(year or utc_now().year))


__all__ = ["WorldBankProvider", "CACHE_NAME", "DEFAULT_BASE_URL", "INDICATOR"]
