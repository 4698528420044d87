"""Turn the World Bank ``PA.NUS.FCRF`` indicator into currency rate tables.

The indicator reports local currency units per US dollar for every country,
for example (``GET /country/all/indicator/PA.NUS.FCRF?date=2024&format=json``)::

    [
        {"page": 1, "pages": 1, "per_page": 1000, "total": 266,
         "lastupdated": "2025-10-07"},
        [
            {"countryiso3code": "GBR", "date": "2024", "value": 0.782414, ...},
            {"countryiso3code": "AFE", "date": "2024", "value": null, ...},
            ...
        ]
    ]

Rows are mapped to currencies, aggregates and gaps are dropped, and the
resulting USD-anchored table is rebased on whichever currency is requested.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Final, Iterable, Mapping, Sequence

from fx_fallback.utils.currency_mapper import CurrencyMapper
from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

# Countries whose row wins when several countries report the same currency,
# best first.
CURRENCY_PRIORITY: Final[dict[str, tuple[str, ...]]] = {
    "EUR": ("EMU", "DEU", "FRA", "ITA", "ESP", "NLD"),
    "USD": ("USA",),
    "GBP": ("GBR",),
    "AUD": ("AUS",),
    "NZD": ("NZL",),
    "CHF": ("CHE",),
    "DKK": ("DNK",),
    "NOK": ("NOR",),
    "INR": ("IND",),
    "ZAR": ("ZAF",),
    "ILS": ("ISR",),
    "XOF": ("SEN", "CIV"),
    "XAF": ("CMR", "GAB"),
    "XCD": ("LCA", "GRD"),
    "ANG": ("CUW",),
}

RawResponse = Sequence[Any]
PageFetcher = Callable[[int], RawResponse]


def fetch_all_pages(first_response: RawResponse, fetch_page: PageFetcher) -> list[Any]:
    """Stitch every page of a paginated response into one data array.

    ``fetch_page`` receives the page number (2..pages) and returns that page's
    raw response. The returned value keeps the first page's metadata.
    """

    metadata = _metadata(first_response)
    data = list(_data_rows(first_response))
    try:
        pages = int(metadata.get("pages") or 1)
    except (TypeError, ValueError):
        pages = 1
    for page in range(2, pages + 1):
        page_rows = _data_rows(fetch_page(page))
        LOGGER.debug("Fetched World Bank page %s/%s (%s rows)", page, pages, len(page_rows))
        data.extend(page_rows)
    return [metadata, data]


def last_updated(raw_response: RawResponse) -> datetime | None:
    """Return the ``lastupdated`` stamp of a response, if it has a usable one."""

    value = _metadata(raw_response).get("lastupdated")
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        LOGGER.warning("Ignoring malformed World Bank lastupdated value %r", value)
        return None


class WorldBankRateExtractor:
    """Build USD-anchored and cross-currency rate tables from indicator data."""

    def __init__(self, mapper: CurrencyMapper | None = None) -> None:
        self.mapper = mapper or CurrencyMapper()

    def parse_to_usd_rates(self, raw_response: RawResponse) -> dict[str, float]:
        """Return ``{currency: units per USD}``; USD is always present at par."""

        rows = _data_rows(raw_response)
        if not rows:
            return {}

        rates: dict[str, float] = {}
        sources: dict[str, str] = {}
        for item in rows:
            if not isinstance(item, Mapping):
                continue
            iso3 = str(item.get("countryiso3code") or "").strip().upper()
            if not iso3:
                continue
            value = item.get("value")
            if value is None:
                continue
            try:
                rate = float(value)
            except (TypeError, ValueError):
                LOGGER.debug("Skipping non-numeric value %r for %s", value, iso3)
                continue
            if self.mapper.is_aggregate_region(iso3):
                continue
            currency = self.mapper.map_country_to_currency(iso3)
            if not currency:
                continue
            if currency not in rates:
                rates[currency] = rate
                sources[currency] = iso3
                continue
            existing_country = sources[currency]
            rates[currency] = self.aggregate_currency_rate(
                currency, rates[currency], rate, iso3, existing_country_iso3=existing_country
            )
            if _outranks(currency, iso3, existing_country):
                sources[currency] = iso3

        rates["USD"] = 1.0
        return rates

    @staticmethod
    def aggregate_currency_rate(
        currency: str,
        existing_rate: float,
        new_rate: float,
        new_country_iso3: str,
        existing_country_iso3: str | None = None,
    ) -> float:
        """Pick between two rates reported for the same currency.

        The newcomer only wins when its country is on the currency's priority
        list and outranks the country that supplied ``existing_rate``.
        """

        if _outranks(currency, new_country_iso3, existing_country_iso3):
            return new_rate
        return existing_rate

    @staticmethod
    def compute_cross_currency_rates(
        base_currency: str, usd_rates: Mapping[str, float]
    ) -> dict[str, float]:
        """Rebase a USD-anchored table on ``base_currency``.

        Both sides are quoted per USD, so ``1 base = usd[c] / usd[base]`` units
        of ``c``. With EUR as base, GBP is ``GBP_per_USD / EUR_per_USD``.
        """

        base = base_currency.upper()
        base_rate = usd_rates.get(base)
        if not base_rate:
            return {}
        return {
            currency: 1.0 if currency == base else rate / base_rate
            for currency, rate in usd_rates.items()
        }

    @staticmethod
    def has_country_rates(usd_rates: Mapping[str, float]) -> bool:
        """False when no country row was usable and only USD at par remains."""

        return any(currency != "USD" for currency in usd_rates)

    def extract_for_currency(
        self, currency_code: str, raw_response: RawResponse
    ) -> dict[str, float]:
        return self.extract_for_multiple_currencies([currency_code], raw_response).get(
            currency_code.upper(), {}
        )

    def extract_for_multiple_currencies(
        self, currency_codes: Iterable[str], raw_response: RawResponse
    ) -> dict[str, dict[str, float]]:
        """Compute one table per base, parsing the response only once.

        A year the World Bank has not published yet lists every country with
        a null value; that response yields no tables at all.
        """

        usd_rates = self.parse_to_usd_rates(raw_response)
        if not self.has_country_rates(usd_rates):
            return {}
        result: dict[str, dict[str, float]] = {}
        for code in currency_codes:
            base = code.upper()
            if base in result:
                continue
            rates = self.compute_cross_currency_rates(base, usd_rates)
            if rates:
                result[base] = rates
            else:
                LOGGER.warning("World Bank data has no rate for %s", base)
        return result

    def available_currencies(self, raw_response: RawResponse) -> list[str]:
        usd_rates = self.parse_to_usd_rates(raw_response)
        return sorted(usd_rates) if self.has_country_rates(usd_rates) else []


def _outranks(currency: str, new_country: str, existing_country: str | None) -> bool:
    priority = CURRENCY_PRIORITY.get(currency.upper(), ())
    new_country = new_country.upper()
    if new_country not in priority:
        return False
    existing_country = (existing_country or "").upper()
    if existing_country in priority:
        return priority.index(new_country) < priority.index(existing_country)
    return True


def _metadata(raw_response: RawResponse | None) -> Mapping[str, Any]:
    if isinstance(raw_response, Sequence) and raw_response and isinstance(raw_response[0], Mapping):
        return raw_response[0]
    return {}


def _data_rows(raw_response: RawResponse | None) -> list[Any]:
    if not isinstance(raw_response, Sequence) or isinstance(raw_response, (str, bytes)):
        return []
    if len(raw_response) < 2 or not isinstance(raw_response[1], list):
        return []
    return raw_response[1]


__all__ = [
    "CURRENCY_PRIORITY",
    "WorldBankRateExtractor",
    "fetch_all_pages",
    "last_updated",
]
