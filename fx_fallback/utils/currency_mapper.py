"""Map World Bank ISO3 country codes to ISO4217 currency codes."""

from __future__ import annotations

from typing import Final, MutableMapping

import pycountry
from babel.numbers import get_territory_currencies

from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

# World Bank regional, income and lending groupings. None of them issues a
# currency of its own, so they are dropped before any mapping happens.
AGGREGATE_REGIONS: Final[frozenset[str]] = frozenset(
    {
        "AFE", "AFR", "AFW", "ARB", "CEA", "CEB", "CEU", "CLA", "CME", "CSA",
        "CSS", "EAP", "EAR", "EAS", "ECA", "ECS", "EUU", "FCS", "FXS", "HIC",
        "HPC", "IBB", "IBD", "IBT", "IDA", "IDB", "IDX", "INX", "LAC", "LCN",
        "LDC", "LIC", "LMC", "LMY", "LTE", "MDE", "MEA", "MIC", "MNA", "NAC",
        "NAF", "NRS", "OED", "OSS", "PRE", "PSS", "PST", "RRS", "SAS", "SSA",
        "SSF", "SST", "SXZ", "TEA", "TEC", "TLA", "TMN", "TSA", "TSS", "UMC",
        "WLD", "XZN",
    }
)

DEFAULT_CURRENCY_OVERRIDES: Final[dict[str, str]] = {
    # Euro area aggregate reported by the World Bank as a single row.
    "EMU": "EUR",
    "XKX": "EUR",
    "MNE": "EUR",
    "AND": "EUR",
    "SMR": "EUR",
    "MCO": "EUR",
    "CHI": "GBP",
    "PSE": "ILS",
    "CUW": "ANG",
    "SXM": "ANG",
    "KIR": "AUD",
    "TUV": "AUD",
    "NRU": "AUD",
    "TCA": "USD",
    "VIR": "USD",
    "TLS": "USD",
    "ECU": "USD",
    "SLV": "USD",
    "PRI": "USD",
    "GUM": "USD",
    "ASM": "USD",
    "MNP": "USD",
    "FSM": "USD",
    "MHL": "USD",
    "PLW": "USD",
}

# Countries where several currencies are legal tender; the World Bank
# indicator is quoted in the one listed here.
MULTI_CURRENCY_PRIORITY: Final[dict[str, str]] = {
    "ZWE": "ZWL",
    "CUB": "CUP",
    "PAN": "PAB",
    "BTN": "BTN",
    "LSO": "LSL",
    "NAM": "NAD",
    "SWZ": "SZL",
    "HTI": "HTG",
}

_currency_overrides: dict[str, str] = dict(DEFAULT_CURRENCY_OVERRIDES)


class CurrencyMapper:
    """Resolve ISO3 country codes to the currency the country reports in.

    Resolution order: aggregate regions map to nothing, then manual overrides,
    then the multi-currency priority table, then the pycountry/babel reference
    data. Overrides live in a process-wide table unless a private mapping is
    supplied.
    """

    def __init__(self, overrides: MutableMapping[str, str] | None = None) -> None:
        self._overrides = _currency_overrides if overrides is None else overrides

    def map_country_to_currency(self, iso3: str) -> str | None:
        code = (iso3 or "").strip().upper()
        if not code or self.is_aggregate_region(code):
            return None
        override = self._overrides.get(code)
        if override:
            return override
        priority = MULTI_CURRENCY_PRIORITY.get(code)
        if priority:
            return priority
        return self._lookup_reference_currency(code)

    @staticmethod
    def is_aggregate_region(iso3: str) -> bool:
        return (iso3 or "").strip().upper() in AGGREGATE_REGIONS

    def add_currency_override(self, iso3: str, currency: str) -> None:
        """Register ``iso3 -> currency`` for every later lookup."""

        self._overrides[iso3.strip().upper()] = currency.strip().upper()

    def remove_currency_override(self, iso3: str) -> None:
        self._overrides.pop(iso3.strip().upper(), None)

    @staticmethod
    def _lookup_reference_currency(iso3: str) -> str | None:
        try:
            country = pycountry.countries.get(alpha_3=iso3)
            if country is None:
                return None
            currencies = get_territory_currencies(country.alpha_2)
        except Exception as exc:  # reference data is best effort
            LOGGER.warning("Failed to map country %s to a currency: %s", iso3, exc)
            return None
        if not currencies:
            return None
        return str(currencies[0])


__all__ = [
    "AGGREGATE_REGIONS",
    "DEFAULT_CURRENCY_OVERRIDES",
    "MULTI_CURRENCY_PRIORITY",
    "CurrencyMapper",
]
