"""Backfill historical exchange rates, one batch per year."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

from fx_fallback.exceptions import CapabilityMismatchError, FxFallbackError
from fx_fallback.ingestion.models import HistoricalBaseCurrency, normalise_currency
from fx_fallback.ingestion.strategy import Capability, ProviderName, supports
from fx_fallback.utils.date_range import utc_now, year_range
from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CURRENCIES: tuple[str, ...] = ("USD", "EUR", "GBP")
DEFAULT_YEARS_BACK = 5


@dataclass(slots=True)
class BackfillSummary:
    currencies: list[str]
    start_year: int
    end_year: int
    succeeded_years: list[int] = field(default_factory=list)
    failed_years: list[int] = field(default_factory=list)
    stored_sets: int = 0

    @property
    def succeeded(self) -> int:
        return len(self.succeeded_years)

    @property
    def failed(self) -> int:
        return len(self.failed_years)


def backfill_historical_rates(
    service: Any,
    currencies: Iterable[str] = DEFAULT_CURRENCIES,
    start_year: int | None = None,
    end_year: int | None = None,
) -> BackfillSummary:
    """Store January 1st rates of every currency for each year in the range.

    ``service`` is any historical-capable provider (an adapter, the fallback
    orchestrator or the facade's orchestrator). A year that fails is logged
    and counted; the run carries on with the next one.
    """

    end_year = end_year if end_year is not None else utc_now().year
    start_year = start_year if start_year is not None else end_year - DEFAULT_YEARS_BACK
    if start_year > end_year:
        raise ValueError("start_year must be on or before end_year")
    codes = list(dict.fromkeys(normalise_currency(code) for code in currencies))
    if not codes:
        raise ValueError("At least one currency is required")
    if not supports(service, Capability.HISTORICAL):
        raise CapabilityMismatchError(
            getattr(service, "name", type(service).__name__), Capability.HISTORICAL.value
        )

    summary = BackfillSummary(currencies=codes, start_year=start_year, end_year=end_year)
    for year in year_range(start_year, end_year):
        items = [HistoricalBaseCurrency(code, datetime(year, 1, 1)) for code in codes]
        LOGGER.info("Backfilling %s for %s", ", ".join(codes), year)
        try:
            stored = service.store_historical_rates_bulk(items)
        except FxFallbackError as exc:
            LOGGER.error("Backfill for %s failed: %s", year, exc)
            summary.failed_years.append(year)
            continue
        stored_sets = sum(len(per_day) for per_day in (stored or {}).values())
        if not stored_sets:
            LOGGER.warning("Backfill for %s stored no rates", year)
            summary.failed_years.append(year)
            continue
        summary.succeeded_years.append(year)
        summary.stored_sets += stored_sets

    LOGGER.info(
        "Backfill finished (succeeded=%s, failed=%s, rate sets=%s)",
        summary.succeeded,
        summary.failed,
        summary.stored_sets,
    )
    return summary


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--currency",
        dest="currencies",
        action="append",
        help="Base currency to backfill (repeatable, default: USD, EUR, GBP)",
    )
    parser.add_argument("--start-year", dest="start_year", type=int, help="First year")
    parser.add_argument("--end-year", dest="end_year", type=int, help="Last year (default: now)")
    parser.add_argument(
        "--db",
        dest="db_url",
        help="Database URL (defaults to EXCHANGE_RATES_DB_URL or the bundled SQLite file)",
    )
    parser.add_argument(
        "--service",
        type=ProviderName.parse,
        help="Use only this provider (exchange_rate_api, open_exchange_rates or world_bank)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    from fx_fallback import ExchangeRates

    args = parse_args(argv)
    with ExchangeRates(args.db_url) as rates:
        service = rates.provider(args.service) if args.service else rates.orchestrator
        summary = backfill_historical_rates(
            service,
            args.currencies or DEFAULT_CURRENCIES,
            start_year=args.start_year,
            end_year=args.end_year,
        )
    return 1 if summary.failed else 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
