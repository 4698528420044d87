"""Provider contracts: capabilities, the base adapter and the historical mixin.

A provider only has to implement ``fetch_latest`` (and ``fetch_historical``
when it mixes in :class:`HistoricalSupport`); storing, reading back and the
repository fallbacks are shared here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Iterable, Mapping

import requests

from fx_fallback.exceptions import RateNotFoundError, TransientProviderError
from fx_fallback.ingestion.models import (
    FetchedRates,
    HistoricalBaseCurrency,
    HistoricalRateSet,
    RatePoint,
    RateSet,
    normalise_currency,
)
from fx_fallback.utils.date_range import to_utc_naive, utc_now
from fx_fallback.utils.logger import get_logger, log_time

LOGGER = get_logger(__name__)

DEFAULT_TIMEOUT = 30


class Capability(str, Enum):
    """Operation families a provider can serve."""

    BASE = "base"
    HISTORICAL = "historical"


class ProviderName(str, Enum):
    """Identifiers accepted in the configured fallback order."""

    EXCHANGE_RATE_API = "exchange_rate_api"
    OPEN_EXCHANGE_RATES = "open_exchange_rates"
    WORLD_BANK = "world_bank"

    @classmethod
    def parse(cls, value: str) -> "ProviderName":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(
                f"Unknown exchange rate provider {value!r}; expected one of {valid}"
            ) from None


def supports(provider: object, capability: Capability) -> bool:
    """Return True when ``provider`` declares ``capability``."""

    return capability in getattr(provider, "capabilities", frozenset())


class ExchangeRateProvider(ABC):
    """Base adapter for an HTTP exchange rate source."""

    name: ClassVar[str] = "provider"
    capabilities: ClassVar[frozenset[Capability]] = frozenset({Capability.BASE})

    def __init__(
        self,
        repository: Any,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.repository = repository
        self.session = session or requests.Session()
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @abstractmethod
    def fetch_latest(self, base_currency: str) -> FetchedRates:
        """Download the latest rates for ``base_currency``."""

    def fetch_latest_bulk(self, base_currencies: Iterable[str]) -> dict[str, FetchedRates]:
        """Download the latest rates for several bases, one request each."""

        return {code: self.fetch_latest(code) for code in _unique_codes(base_currencies)}

    def store_rates(self, base_currency: str) -> RateSet:
        """Fetch and persist the latest rates of one base currency."""

        fetched = self.fetch_latest(normalise_currency(base_currency))
        return self._persist_latest([fetched]).get(fetched.base_currency) or RateSet(
            fetched.base_currency, provider=self.name
        )

    def store_rates_bulk(self, base_currencies: Iterable[str]) -> dict[str, RateSet]:
        fetched = self.fetch_latest_bulk(base_currencies)
        return self._persist_latest(fetched.values())

    def get_rates(self, base_currency: str) -> RateSet:
        base = normalise_currency(base_currency)
        return RateSet.from_points(base, self.repository.get_rates(base))

    def get_all_rates(self) -> list[RateSet]:
        return group_rate_sets(self.repository.get_all_rates())

    def _persist_latest(self, batch: Iterable[FetchedRates]) -> dict[str, RateSet]:
        current: dict[str, RateSet] = {}
        history: list[HistoricalRateSet] = []
        for fetched in batch:
            rate_set = RateSet.from_fetched(fetched, provider=self.name)
            if not rate_set:
                LOGGER.warning(
                    "%s returned no usable rates for %s", self.name, fetched.base_currency
                )
                continue
            current[rate_set.base_currency] = rate_set
            history.append(
                HistoricalRateSet(
                    base_currency=rate_set.base_currency,
                    rates=rate_set.rates,
                    observed_at=rate_set.observed_at or utc_now(),
                    provider=self.name,
                )
            )
        if current:
            self.repository.update_rates_bulk(list(current.values()), provider=self.name)
            self.repository.update_rates_history_bulk(history, provider=self.name)
            LOGGER.info("%s stored rates for %s", self.name, ", ".join(current))
        return current

    def _get_json(
        self,
        url: str,
        *,
        label: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``url`` and decode JSON, mapping every failure to a transient error.

        ``label`` is what gets logged; URLs may carry credentials.
        """

        with log_time(f"{self.name} {label}", LOGGER):
            try:
                response = self.session.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
                response.raise_for_status()
            except requests.RequestException as exc:
                raise TransientProviderError(self.name, f"{label} request failed: {exc}") from exc
            try:
                return response.json()
            except ValueError as exc:
                raise TransientProviderError(self.name, f"{label} returned invalid JSON") from exc


class HistoricalSupport(ABC):
    """Mixin for providers that can also serve rates for past dates."""

    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.BASE, Capability.HISTORICAL}
    )

    name: ClassVar[str]
    repository: Any

    @abstractmethod
    def fetch_historical(self, base_currency: str, at: datetime) -> FetchedRates:
        """Download the rates of ``base_currency`` on the day of ``at``."""

    def fetch_historical_bulk(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> list[tuple[HistoricalBaseCurrency, FetchedRates]]:
        """Download every requested ``(base, at)``, one request each."""

        return [
            (item, self.fetch_historical(item.base_currency, item.at))
            for item in _unique_items(items)
        ]

    def store_historical_rates(
        self, base_currency: str, at: datetime | date
    ) -> HistoricalRateSet:
        item = HistoricalBaseCurrency(base_currency, at)
        fetched = self.fetch_historical(item.base_currency, item.at)
        stored = self._persist_historical([(item, fetched)])
        rate_set = stored.get(item.base_currency, {}).get(item.day)
        if rate_set is None:
            return HistoricalRateSet(item.base_currency, observed_at=item.at, provider=self.name)
        return rate_set

    def store_historical_rates_bulk(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> dict[str, dict[date, HistoricalRateSet]]:
        """Fetch and persist several ``(base, at)`` requests.

        The result is keyed by base currency, then by requested day.
        """

        return self._persist_historical(self.fetch_historical_bulk(items))

    def get_historical_rates(self, base_currency: str, at: datetime | date) -> HistoricalRateSet:
        """Stored rates for the day of ``at``, fetched from the provider if missing."""

        item = HistoricalBaseCurrency(base_currency, at)
        points = self.repository.get_historical_rates(item.base_currency, item.at)
        if points:
            return HistoricalRateSet.from_points(item.base_currency, points, observed_at=item.at)
        LOGGER.info(
            "No stored %s rates for %s, fetching from %s", item.base_currency, item.day, self.name
        )
        return self.store_historical_rates(item.base_currency, item.at)

    def get_historical_rate(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> RatePoint:
        """Stored rate for one pair, fetching that day's rates once if missing."""

        try:
            return self.repository.get_historical_rate(base_currency, target_currency, at)
        except RateNotFoundError:
            LOGGER.info(
                "No stored %s/%s rate for %s, fetching from %s",
                base_currency,
                target_currency,
                to_utc_naive(at).date(),
                self.name,
            )
        self.store_historical_rates(base_currency, at)
        return self.repository.get_historical_rate(base_currency, target_currency, at)

    def _persist_historical(
        self, batch: Iterable[tuple[HistoricalBaseCurrency, FetchedRates]]
    ) -> dict[str, dict[date, HistoricalRateSet]]:
        result: dict[str, dict[date, HistoricalRateSet]] = defaultdict(dict)
        to_store: list[HistoricalRateSet] = []
        for item, fetched in batch:
            rate_set = HistoricalRateSet.from_fetched(
                FetchedRates(
                    base_currency=fetched.base_currency,
                    rates=fetched.rates,
                    observed_at=fetched.observed_at or item.at,
                ),
                provider=self.name,
            )
            if not rate_set:
                LOGGER.warning("%s returned no usable rates for %s", self.name, item.key)
                continue
            result[rate_set.base_currency][item.day] = rate_set
            to_store.append(rate_set)
        if to_store:
            self.repository.update_rates_history_bulk(to_store, provider=self.name)
            LOGGER.info("%s stored %s historical rate sets", self.name, len(to_store))
        return dict(result)


def group_rate_sets(points: Iterable[RatePoint]) -> list[RateSet]:
    """Group stored rows into one :class:`RateSet` per base currency."""

    grouped: dict[str, list[RatePoint]] = defaultdict(list)
    for point in points:
        grouped[point.base_currency].append(point)
    return [RateSet.from_points(base, rows) for base, rows in grouped.items()]


def _unique_codes(codes: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(normalise_currency(code), None)
    return list(seen)


def _unique_items(items: Iterable[HistoricalBaseCurrency]) -> list[HistoricalBaseCurrency]:
    seen: dict[str, HistoricalBaseCurrency] = {}
    for item in items:
        seen.setdefault(item.key, item)
    return list(seen.values())


__all__ = [
    "Capability",
    "ExchangeRateProvider",
    "HistoricalSupport",
    "ProviderName",
    "group_rate_sets",
    "supports",
]
