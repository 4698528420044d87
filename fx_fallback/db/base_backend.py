"""Repository interface shared by every storage backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from fx_fallback.exceptions import InvalidArgumentError, RateNotFoundError
from fx_fallback.ingestion.models import (
    CurrencyPair,
    HistoricalBaseCurrency,
    HistoricalCurrencyPair,
    HistoricalRateSet,
    RatePoint,
    RateSet,
    normalise_currency,
)
from fx_fallback.utils.date_range import day_window, to_utc_naive, utc_now
from fx_fallback.utils.decimals import inverse_rate, is_storable_rate, to_rate_decimal
from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

CURRENT_TABLE = "currency_exchange_rates"
HISTORY_TABLE = "currency_exchange_rates_history"

Row = dict[str, Any]
RowKey = tuple[Any, ...]


class RateRepository(ABC):
    """Durable store for current and historical rate rows.

    Subclasses provide the storage primitives (``_upsert_*``/``_select_*``);
    row building, validation and the lookup semantics live here so every
    backend behaves the same way.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create required tables/collections and verify connectivity."""

    @abstractmethod
    def _upsert_current(self, rows: Sequence[Row]) -> None:
        """Insert or update current rows in a single transaction."""

    @abstractmethod
    def _upsert_history(self, rows: Sequence[Row]) -> None:
        """Insert or update historical rows in a single transaction."""

    @abstractmethod
    def _select_current(
        self, base: str | None = None, target: str | None = None
    ) -> list[RatePoint]:
        """Return current rows ordered by base then target."""

    @abstractmethod
    def _select_history(
        self, base: str, target: str | None, start: datetime, end: datetime
    ) -> list[RatePoint]:
        """Return historical rows with ``start <= observed_at < end``."""

    @abstractmethod
    def _select_bound(
        self, base: str, target: str, at: datetime, *, before: bool
    ) -> RatePoint | None:
        """Closest historical row at or ``before``/after ``at``."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Backends may override to release connections/resources."""

    def __enter__(self) -> "RateRepository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- writes ---------------------------------------------------------

    def update_rates(
        self, base: str, rates: Mapping[str, Any], provider: str | None = None
    ) -> bool:
        rows = build_rate_rows([(base, rates, None, provider)])
        if not rows:
            return False
        self._upsert_current(rows)
        return True

    def update_rates_bulk(
        self, rate_sets: Iterable[RateSet], provider: str | None = None
    ) -> bool:
        rate_sets = list(rate_sets)
        for rate_set in rate_sets:
            if not isinstance(rate_set, RateSet):
                raise InvalidArgumentError(
                    f"update_rates_bulk expects RateSet items, got {type(rate_set).__name__}"
                )
        rows = build_rate_rows(
            (rate_set.base_currency, rate_set.rates, None, provider or rate_set.provider)
            for rate_set in rate_sets
        )
        if not rows:
            return False
        self._upsert_current(rows)
        return True

    def update_rates_history(
        self,
        base: str,
        rates: Mapping[str, Any],
        at: datetime | date,
        provider: str | None = None,
    ) -> bool:
        rows = build_rate_rows([(base, rates, to_utc_naive(at), provider)])
        if not rows:
            return False
        self._upsert_history(rows)
        return True

    def update_rates_history_bulk(
        self, historical_rate_sets: Iterable[HistoricalRateSet], provider: str | None = None
    ) -> bool:
        rate_sets = list(historical_rate_sets)
        for rate_set in rate_sets:
            if not isinstance(rate_set, HistoricalRateSet):
                raise InvalidArgumentError(
                    "update_rates_history_bulk expects HistoricalRateSet items, "
                    f"got {type(rate_set).__name__}"
                )
        rows = build_rate_rows(
            (
                rate_set.base_currency,
                rate_set.rates,
                rate_set.observed_at,
                provider or rate_set.provider,
            )
            for rate_set in rate_sets
        )
        if not rows:
            return False
        self._upsert_history(rows)
        return True

    # -- current reads --------------------------------------------------

    def get_rates(self, base: str) -> list[RatePoint]:
        return self._select_current(base=normalise_currency(base))

    def get_all_rates(self) -> list[RatePoint]:
        return self._select_current()

    def get_rates_bulk(self, bases: Iterable[str]) -> dict[str, list[RatePoint]]:
        return {code: self.get_rates(code) for code in _unique_codes(bases)}

    def get_rate(self, base: str, target: str) -> RatePoint:
        base, target = normalise_currency(base), normalise_currency(target)
        rows = self._select_current(base=base, target=target)
        if not rows:
            raise RateNotFoundError(f"No exchange rate stored for {base}/{target}")
        return rows[0]

    def get_bulk_rate(self, pairs: Iterable[CurrencyPair]) -> dict[str, list[RatePoint]]:
        result: dict[str, list[RatePoint]] = {}
        for pair in pairs:
            result[pair.key] = self._select_current(
                base=pair.base_currency, target=pair.target_currency
            )
        return result

    # -- historical reads -----------------------------------------------

    def get_historical_rates(self, base: str, at: datetime | date) -> list[RatePoint]:
        """Rows of ``base`` observed on the calendar day of ``at``."""

        window = day_window(at)
        return self._select_history(normalise_currency(base), None, *window.as_tuple())

    def get_historical_rate(self, base: str, target: str, at: datetime | date) -> RatePoint:
        base, target = normalise_currency(base), normalise_currency(target)
        window = day_window(at)
        rows = self._select_history(base, target, *window.as_tuple())
        if not rows:
            raise RateNotFoundError(
                f"No historical rate stored for {base}/{target} on {window.start.date()}"
            )
        return rows[-1]

    def get_historical_rates_bulk(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> dict[str, list[RatePoint]]:
        return {item.key: self.get_historical_rates(item.base_currency, item.at) for item in items}

    def get_bulk_historical_rate(
        self, pairs: Iterable[HistoricalCurrencyPair]
    ) -> dict[str, list[RatePoint]]:
        """Rows of each pair on its calendar day, keyed ``BASE_TARGET_YYYY-MM-DD``."""

        result: dict[str, list[RatePoint]] = {}
        for pair in pairs:
            window = day_window(pair.at)
            result[pair.key] = self._select_history(
                pair.base_currency, pair.target_currency, *window.as_tuple()
            )
        return result

    def get_previous_historical_rate(
        self, base: str, target: str, at: datetime | date
    ) -> RatePoint | None:
        """Latest historical row with ``observed_at <= at``."""

        return self._select_bound(
            normalise_currency(base), normalise_currency(target), to_utc_naive(at), before=True
        )

    def get_next_historical_rate(
        self, base: str, target: str, at: datetime | date
    ) -> RatePoint | None:
        """Earliest historical row with ``observed_at >= at``."""

        return self._select_bound(
            normalise_currency(base), normalise_currency(target), to_utc_naive(at), before=False
        )

    def get_bounding_historical_rates(
        self, base: str, target: str, at: datetime | date
    ) -> list[RatePoint]:
        """Return ``[before, after]`` around ``at``, or ``[]``.

        Empty when either bound is missing or both bounds are the same row.
        """

        before = self.get_previous_historical_rate(base, target, at)
        after = self.get_next_historical_rate(base, target, at)
        if before is None or after is None:
            return []
        if before.observed_at == after.observed_at:
            return []
        return [before, after]


def build_rate_rows(
    entries: Iterable[tuple[str, Mapping[str, Any], datetime | None, str | None]],
    *,
    now: datetime | None = None,
) -> list[Row]:
    """Expand ``(base, rates, observed_at, provider)`` entries into storage rows.

    Every rate also produces its inverse row. Rows are de-duplicated on their
    unique key; a direct row always replaces an inverse one.
    """

    now = now or utc_now()
    rows: dict[RowKey, Row] = {}
    direct_keys: set[RowKey] = set()
    for base, rates, observed_at, provider in entries:
        base = normalise_currency(base)
        for target, value in rates.items():
            target = normalise_currency(target)
            try:
                rate = to_rate_decimal(value)
            except ValueError:
                LOGGER.warning("Dropping invalid rate %r for %s/%s", value, base, target)
                continue
            if not is_storable_rate(rate):
                LOGGER.warning("Dropping out-of-range rate %s for %s/%s", rate, base, target)
                continue
            direct = _row(base, target, rate, observed_at, provider, now)
            key = _row_key(direct)
            rows[key] = direct
            direct_keys.add(key)

            inverse_value = inverse_rate(rate)
            if not is_storable_rate(inverse_value):
                continue
            inverse = _row(target, base, inverse_value, observed_at, provider, now)
            inverse_key = _row_key(inverse)
            if inverse_key not in direct_keys:
                rows[inverse_key] = inverse
    return list(rows.values())


def _row(
    base: str,
    target: str,
    rate: Any,
    observed_at: datetime | None,
    provider: str | None,
    now: datetime,
) -> Row:
    row: Row = {
        "base_currency_code": base,
        "target_currency_code": target,
        "exchange_rate": rate,
        "provider": provider,
        "last_update_date": now,
    }
    if observed_at is not None:
        row["date_time"] = observed_at
    return row


def _row_key(row: Row) -> RowKey:
    return (row["base_currency_code"], row["target_currency_code"], row.get("date_time"))


def _unique_codes(codes: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(normalise_currency(code), None)
    return list(seen)


__all__ = [
    "CURRENT_TABLE",
    "HISTORY_TABLE",
    "RateRepository",
    "build_rate_rows",
]
