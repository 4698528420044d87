"""Data models shared by the providers, the orchestrator and the repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Iterator, Mapping

from fx_fallback.exceptions import InvalidArgumentError
from fx_fallback.utils.date_range import to_utc_naive
from fx_fallback.utils.decimals import is_storable_rate, to_rate_decimal


def normalise_currency(code: str) -> str:
    """Upper-case and strip a currency code."""

    if not isinstance(code, str) or not code.strip():
        raise InvalidArgumentError(f"Invalid currency code: {code!r}")
    return code.strip().upper()


@dataclass(slots=True)
class RatePoint:
    """One stored rate row. ``observed_at`` is only set on historical rows."""

    base_currency: str
    target_currency: str
    rate: Decimal
    provider: str | None = None
    observed_at: datetime | None = None
    last_update: datetime | None = None

    @property
    def is_historical(self) -> bool:
        return self.observed_at is not None


@dataclass(slots=True)
class FetchedRates:
    """Rates exactly as a provider returned them, before persistence."""

    base_currency: str
    rates: dict[str, float]
    observed_at: datetime | None = None


@dataclass(slots=True)
class RateSet:
    """One base currency's ``{target: rate}`` table at a point in time.

    A set without rates is falsy.
    """

    base_currency: str
    rates: dict[str, Decimal] = field(default_factory=dict)
    observed_at: datetime | None = None
    provider: str | None = None

    def __post_init__(self) -> None:
        self.base_currency = normalise_currency(self.base_currency)
        if self.observed_at is not None:
            self.observed_at = to_utc_naive(self.observed_at)

    def __len__(self) -> int:
        return len(self.rates)

    def __bool__(self) -> bool:
        return bool(self.rates)

    def __contains__(self, target: object) -> bool:
        return isinstance(target, str) and target.strip().upper() in self.rates

    def __iter__(self) -> Iterator[str]:
        return iter(self.rates)

    def get(self, target: str) -> Decimal | None:
        return self.rates.get(normalise_currency(target))

    @classmethod
    def from_fetched(cls, fetched: FetchedRates, provider: str | None = None) -> "RateSet":
        """Build a set from raw provider numbers, dropping unusable values."""

        return cls(
            base_currency=fetched.base_currency,
            rates=_clean_rates(fetched.rates),
            observed_at=fetched.observed_at,
            provider=provider,
        )

    @classmethod
    def from_points(
        cls,
        base_currency: str,
        points: Iterable[RatePoint],
        observed_at: datetime | None = None,
    ) -> "RateSet":
        """Rebuild a set from stored rows of ``base_currency``.

        ``observed_at`` is only used when none of the rows carries one.
        """

        rates: dict[str, Decimal] = {}
        stamp: datetime | None = None
        provider: str | None = None
        for point in points:
            rates[point.target_currency] = point.rate
            stamp = stamp or point.observed_at
            provider = provider or point.provider
        return cls(
            base_currency=base_currency,
            rates=rates,
            observed_at=stamp or observed_at,
            provider=provider,
        )

    def points(self, last_update: datetime | None = None) -> list[RatePoint]:
        return [
            RatePoint(
                base_currency=self.base_currency,
                target_currency=target,
                rate=rate,
                provider=self.provider,
                observed_at=self.observed_at,
                last_update=last_update,
            )
            for target, rate in self.rates.items()
        ]


@dataclass(slots=True)
class HistoricalRateSet(RateSet):
    """A :class:`RateSet` pinned to a mandatory ``observed_at``."""

    def __post_init__(self) -> None:
        RateSet.__post_init__(self)
        if self.observed_at is None:
            raise InvalidArgumentError("HistoricalRateSet requires observed_at")


@dataclass(slots=True)
class HistoricalBaseCurrency:
    """Request item for bulk historical operations."""

    base_currency: str
    at: datetime

    def __post_init__(self) -> None:
        self.base_currency = normalise_currency(self.base_currency)
        self.at = to_utc_naive(self.at)

    @property
    def day(self) -> date:
        return self.at.date()

    @property
    def key(self) -> str:
        return f"{self.base_currency}_{self.day.isoformat()}"


@dataclass(slots=True)
class CurrencyPair:
    base_currency: str
    target_currency: str

    def __post_init__(self) -> None:
        self.base_currency = normalise_currency(self.base_currency)
        self.target_currency = normalise_currency(self.target_currency)

    @property
    def key(self) -> str:
        return f"{self.base_currency}_{self.target_currency}"


@dataclass(slots=True)
class HistoricalCurrencyPair:
    base_currency: str
    target_currency: str
    at: datetime

    def __post_init__(self) -> None:
        self.base_currency = normalise_currency(self.base_currency)
        self.target_currency = normalise_currency(self.target_currency)
        self.at = to_utc_naive(self.at)

    @property
    def key(self) -> str:
        return f"{self.base_currency}_{self.target_currency}_{self.at.date().isoformat()}"


def _clean_rates(rates: Mapping[str, object]) -> dict[str, Decimal]:
    cleaned: dict[str, Decimal] = {}
    for target, value in rates.items():
        if not isinstance(target, str) or not target.strip():
            continue
        try:
            rate = to_rate_decimal(value)
        except ValueError:
            continue
        if is_storable_rate(rate):
            cleaned[target.strip().upper()] = rate
    return cleaned


__all__ = [
    "CurrencyPair",
    "FetchedRates",
    "HistoricalBaseCurrency",
    "HistoricalCurrencyPair",
    "HistoricalRateSet",
    "RatePoint",
    "RateSet",
    "normalise_currency",
]
