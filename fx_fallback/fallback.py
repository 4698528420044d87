"""Try exchange rate providers in order until one returns usable data."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, ClassVar, Iterable, TypeVar, Union

from fx_fallback.exceptions import (
    AllProvidersExhaustedError,
    CapabilityMismatchError,
    InvalidArgumentError,
    RateNotFoundError,
)
from fx_fallback.ingestion.models import (
    HistoricalBaseCurrency,
    HistoricalRateSet,
    RatePoint,
    RateSet,
    normalise_currency,
)
from fx_fallback.ingestion.strategy import Capability, group_rate_sets, supports
from fx_fallback.utils.date_range import to_utc_naive
from fx_fallback.utils.decimals import truncate_rate
from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
ProviderEntry = Union[Any, Callable[[], Any]]


class FallbackOrchestrator:
    """Run an operation against an ordered list of providers.

    Entries are provider instances or zero-argument factories; a factory is
    called the first time its slot is reached and the instance is reused
    afterwards. Exceptions, ``None``, ``False`` and empty results all count
    as failures and move on to the next provider. Reads never go through
    the chain: stored rates are provider-agnostic.
    """

    name: ClassVar[str] = "fallback"
    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.BASE, Capability.HISTORICAL}
    )

    def __init__(self, repository: Any, providers: Iterable[ProviderEntry]) -> None:
        self.repository = repository
        self._entries: list[ProviderEntry] = _checked_entries(providers)
        self._resolved: dict[int, Any] = {}
        self._last_successful_provider: Any | None = None

    @property
    def fallback_order(self) -> list[ProviderEntry]:
        return list(self._entries)

    @fallback_order.setter
    def fallback_order(self, providers: Iterable[ProviderEntry]) -> None:
        self._entries = _checked_entries(providers)
        self._resolved = {}

    @property
    def last_successful_provider(self) -> Any | None:
        return self._last_successful_provider

    def _resolve(self, index: int) -> Any:
        if index not in self._resolved:
            entry = self._entries[index]
            self._resolved[index] = entry if _is_provider(entry) else entry()
        return self._resolved[index]

    def execute(self, operation: Callable[[Any], T], operation_name: str) -> T:
        last_error: BaseException | None = None
        for index in range(len(self._entries)):
            try:
                provider = self._resolve(index)
            except Exception as exc:
                LOGGER.warning(
                    "Could not create provider #%s for %s: %s", index, operation_name, exc
                )
                last_error = exc
                continue
            provider_name = getattr(provider, "name", type(provider).__name__)
            if not supports(provider, Capability.BASE):
                LOGGER.warning("Skipping %s: not an exchange rate provider", provider_name)
                continue

            LOGGER.info("Trying %s for %s", provider_name, operation_name)
            try:
                result = operation(provider)
            except Exception as exc:
                LOGGER.warning("%s failed for %s: %s", provider_name, operation_name, exc)
                last_error = exc
                continue
            if _is_empty(result):
                LOGGER.warning("%s returned no data for %s", provider_name, operation_name)
                continue

            self._last_successful_provider = provider
            LOGGER.info("%s succeeded for %s", provider_name, operation_name)
            return result

        LOGGER.error("All exchange rate providers failed for %s", operation_name)
        raise AllProvidersExhaustedError(operation_name, last_error) from last_error

    # -- fallback-wrapped operations ------------------------------------

    def store_exchange_rates(self, base_currency: str) -> RateSet:
        base = normalise_currency(base_currency)
        return self.execute(
            lambda provider: provider.store_rates(base), "store_exchange_rates"
        )

    def store_bulk_exchange_rates_for_multiple_currencies(
        self, base_currencies: Iterable[str]
    ) -> dict[str, RateSet]:
        bases = [normalise_currency(code) for code in base_currencies]
        return self.execute(
            lambda provider: provider.store_rates_bulk(bases),
            "store_bulk_exchange_rates_for_multiple_currencies",
        )

    def store_historical_exchange_rates(
        self, base_currency: str, at: datetime | date
    ) -> HistoricalRateSet:
        base = normalise_currency(base_currency)
        return self.execute(
            lambda provider: _require_historical(provider).store_historical_rates(base, at),
            "store_historical_exchange_rates",
        )

    def store_bulk_historical_exchange_rates_for_multiple_currencies(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> dict[str, dict[date, HistoricalRateSet]]:
        batch = list(items)
        return self.execute(
            lambda provider: _require_historical(provider).store_historical_rates_bulk(batch),
            "store_bulk_historical_exchange_rates_for_multiple_currencies",
        )

    # -- repository reads -----------------------------------------------

    def get_exchange_rates(self, base_currency: str) -> RateSet:
        base = normalise_currency(base_currency)
        return RateSet.from_points(base, self.repository.get_rates(base))

    def get_all_exchange_rates(self) -> list[RateSet]:
        return group_rate_sets(self.repository.get_all_rates())

    def get_historical_exchange_rates(
        self, base_currency: str, at: datetime | date
    ) -> HistoricalRateSet:
        base = normalise_currency(base_currency)
        return HistoricalRateSet.from_points(
            base, self.repository.get_historical_rates(base, at), observed_at=to_utc_naive(at)
        )

    def get_historical_exchange_rate(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> RatePoint:
        return self.repository.get_historical_rate(base_currency, target_currency, at)

    # Provider-protocol names, so the orchestrator can stand in for a provider.
    store_rates = store_exchange_rates
    store_rates_bulk = store_bulk_exchange_rates_for_multiple_currencies
    store_historical_rates = store_historical_exchange_rates
    store_historical_rates_bulk = store_bulk_historical_exchange_rates_for_multiple_currencies
    get_rates = get_exchange_rates
    get_all_rates = get_all_exchange_rates
    get_historical_rates = get_historical_exchange_rates
    get_historical_rate = get_historical_exchange_rate

    def interpolate_rate(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> Decimal:
        """Rate at ``at``: that day's stored row, else a blend of its neighbours."""

        moment = to_utc_naive(at)
        try:
            point = self.repository.get_historical_rate(base_currency, target_currency, moment)
            return point.rate
        except RateNotFoundError:
            pass
        bounds = self.repository.get_bounding_historical_rates(
            base_currency, target_currency, moment
        )
        if not bounds:
            raise RateNotFoundError(
                f"Cannot interpolate {base_currency}/{target_currency} at {moment}: "
                "no surrounding historical rates"
            )
        before, after = bounds
        return interpolate_between(before, after, moment)


def interpolate_between(before: RatePoint, after: RatePoint, at: datetime) -> Decimal:
    """Linear interpolation of two historical points at ``at``."""

    span = (after.observed_at - before.observed_at).total_seconds()
    if span <= 0:
        return before.rate
    elapsed = (at - before.observed_at).total_seconds()
    weight = Decimal(str(elapsed)) / Decimal(str(span))
    return truncate_rate(before.rate + (after.rate - before.rate) * weight)


def _require_historical(provider: Any) -> Any:
    if not supports(provider, Capability.HISTORICAL):
        raise CapabilityMismatchError(
            getattr(provider, "name", type(provider).__name__), Capability.HISTORICAL.value
        )
    return provider


def _checked_entries(providers: Iterable[ProviderEntry]) -> list[ProviderEntry]:
    entries = list(providers)
    for entry in entries:
        if isinstance(entry, type):
            raise InvalidArgumentError(
                f"Pass a {entry.__name__} instance or a factory, not the class itself"
            )
    return entries


def _is_provider(entry: Any) -> bool:
    return not callable(entry) or hasattr(entry, "capabilities")


def _is_empty(result: Any) -> bool:
    if result is None or result is False:
        return True
    if hasattr(result, "__len__"):
        return len(result) == 0
    return False


__all__ = ["FallbackOrchestrator", "interpolate_between"]
