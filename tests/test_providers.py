"""exchangerate-api.com and openexchangerates.org adapters against stub sessions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pytest
import requests

from fx_fallback.db.sqlite_backend import SQLiteRateRepository
from fx_fallback.exceptions import RateNotFoundError, TransientProviderError
from fx_fallback.ingestion.exchange_rate_api import ExchangeRateApiProvider
from fx_fallback.ingestion.models import HistoricalBaseCurrency
from fx_fallback.ingestion.open_exchange_rates import OpenExchangeRatesProvider
from fx_fallback.ingestion.strategy import Capability, ProviderName, supports

ERA_URL = "https://v6.exchangerate-api.com/v6/secret"
LATEST_USD = {
    "result": "success",
    "base_code": "USD",
    "time_last_update_unix": 1714521601,
    "conversion_rates": {"EUR": 0.83, "GBP": 0.71, "JPY": 108.50},
}


def _history_payload(base: str, year: int, month: int, day: int, rates: dict) -> dict:
    return {
        "result": "success",
        "base_code": base,
        "year": year,
        "month": month,
        "day": day,
        "conversion_rates": rates,
    }


def test_exchange_rate_api_store_rates_end_to_end(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    session = make_session(lambda url, params, headers: LATEST_USD)
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session, timeout=5)

    stored = provider.store_rates("usd")

    assert session.calls[0]["url"] == f"{ERA_URL}/latest/USD"
    assert session.calls[0]["timeout"] == 5
    assert stored.provider == "exchange_rate_api"
    assert stored.observed_at == datetime(2024, 5, 1, 0, 0, 1)
    assert stored.rates == {
        "EUR": Decimal("0.83"),
        "GBP": Decimal("0.71"),
        "JPY": Decimal("108.5"),
    }

    current = repository.get_rates("USD")
    assert len(current) == 3
    assert {row.provider for row in current} == {"exchange_rate_api"}
    history = repository.get_historical_rates("USD", date(2024, 5, 1))
    assert len(history) == 3
    assert {row.observed_at for row in history} == {datetime(2024, 5, 1, 0, 0, 1)}

    assert provider.get_rates("USD").rates["JPY"] == Decimal("108.5")
    assert {rate_set.base_currency for rate_set in provider.get_all_rates()} == {
        "USD",
        "EUR",
        "GBP",
        "JPY",
    }


def test_exchange_rate_api_bulk_makes_one_request_per_base(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    def handler(url: str, params: dict, headers: dict) -> dict:
        base = url.rsplit("/", 1)[-1]
        return dict(LATEST_USD, base_code=base, conversion_rates={"CHF": 0.9})

    session = make_session(handler)
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    stored = provider.store_rates_bulk(["USD", "eur", "USD"])

    assert sorted(stored) == ["EUR", "USD"]
    assert len(session.calls) == 2


def test_exchange_rate_api_historical_bulk(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    def handler(url: str, params: dict, headers: dict) -> dict:
        _, base, year, month, day = url.rsplit("/", 4)
        return _history_payload(base, int(year), int(month), int(day), {"EUR": 0.9})

    session = make_session(handler)
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    stored = provider.store_historical_rates_bulk(
        [
            HistoricalBaseCurrency("USD", date(2024, 1, 31)),
            HistoricalBaseCurrency("GBP", date(2024, 1, 31)),
            HistoricalBaseCurrency("USD", date(2023, 12, 31)),
        ]
    )

    assert [call["url"] for call in session.calls] == [
        f"{ERA_URL}/history/USD/2024/1/31",
        f"{ERA_URL}/history/GBP/2024/1/31",
        f"{ERA_URL}/history/USD/2023/12/31",
    ]
    assert set(stored["USD"]) == {date(2024, 1, 31), date(2023, 12, 31)}
    assert stored["GBP"][date(2024, 1, 31)].observed_at == datetime(2024, 1, 31)
    assert repository.get_rates("USD") == []


def test_exchange_rate_api_error_payload(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    payload = {"result": "error", "error-type": "invalid-key"}
    session = make_session(lambda url, params, headers: payload)
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    with pytest.raises(TransientProviderError, match="invalid-key"):
        provider.store_rates("USD")
    assert repository.get_all_rates() == []


@pytest.mark.parametrize(
    "outcome",
    [
        requests.ConnectionError("connection refused"),
        requests.Timeout("read timed out"),
        "http_error",
        "invalid_json",
        {"result": "success"},
        ["not", "a", "mapping"],
    ],
)
def test_exchange_rate_api_failures_are_transient(
    repository: SQLiteRateRepository, make_session: Any, stub_response: Any, outcome: Any
) -> None:
    if outcome == "http_error":
        outcome = stub_response({}, status_code=503)
    elif outcome == "invalid_json":
        outcome = stub_response(invalid_json=True)
    session = make_session(lambda url, params, headers: outcome)
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    with pytest.raises(TransientProviderError):
        provider.fetch_latest("USD")


def test_transient_errors_do_not_leak_the_api_key(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    session = make_session(lambda url, params, headers: requests.Timeout("read timed out"))
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    with pytest.raises(TransientProviderError) as excinfo:
        provider.fetch_latest("USD")
    assert "secret" not in str(excinfo.value)


def test_exchange_rate_api_requires_key(repository: SQLiteRateRepository) -> None:
    with pytest.raises(ValueError):
        ExchangeRateApiProvider(repository, api_key=None)


def test_get_historical_rate_reads_through_once(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    session = make_session(
        lambda url, params, headers: _history_payload("USD", 2024, 1, 31, {"EUR": 0.92})
    )
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    point = provider.get_historical_rate("USD", "EUR", date(2024, 1, 31))
    assert point.rate == Decimal("0.92")
    assert len(session.calls) == 1

    again = provider.get_historical_rate("usd", "eur", datetime(2024, 1, 31, 12))
    assert again.rate == Decimal("0.92")
    assert len(session.calls) == 1

    with pytest.raises(RateNotFoundError):
        provider.get_historical_rate("USD", "JPY", date(2024, 1, 31))
    assert len(session.calls) == 2


def test_get_historical_rates_reads_through(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    session = make_session(
        lambda url, params, headers: _history_payload("USD", 2024, 1, 31, {"EUR": 0.92})
    )
    provider = ExchangeRateApiProvider(repository, api_key="secret", session=session)

    fetched = provider.get_historical_rates("USD", date(2024, 1, 31))
    stored = provider.get_historical_rates("USD", date(2024, 1, 31))

    assert fetched.rates == stored.rates == {"EUR": Decimal("0.92")}
    assert stored.observed_at == datetime(2024, 1, 31)
    assert len(session.calls) == 1


def test_open_exchange_rates_latest(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    payload = {"timestamp": 1704067200, "base": "EUR", "rates": {"USD": 1.1, "GBP": 0.86}}
    session = make_session(lambda url, params, headers: payload)
    provider = OpenExchangeRatesProvider(repository, app_id="app-123", session=session)

    stored = provider.store_rates("eur")

    call = session.calls[0]
    assert call["url"] == "https://openexchangerates.org/api/latest.json"
    assert call["params"] == {"base": "EUR"}
    assert call["headers"] == {"Authorization": "Token app-123"}
    assert stored.observed_at == datetime(2024, 1, 1)
    assert repository.get_rate("EUR", "GBP").rate == Decimal("0.86")
    assert repository.get_historical_rate("GBP", "EUR", date(2024, 1, 1)).rate == Decimal(
        "1.1627906976"
    )


def test_open_exchange_rates_historical(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    payload = {"base": "USD", "rates": {"EUR": 0.9}}
    session = make_session(lambda url, params, headers: payload)
    provider = OpenExchangeRatesProvider(repository, app_id="app-123", session=session)

    stored = provider.store_historical_rates("USD", datetime(2024, 2, 29, 18))

    assert session.calls[0]["url"].endswith("/api/historical/2024-02-29.json")
    assert stored.observed_at == datetime(2024, 2, 29, 18)
    assert repository.get_rates("USD") == []


def test_open_exchange_rates_error_payload(
    repository: SQLiteRateRepository, make_session: Any
) -> None:
    payload = {"error": True, "status": 401, "message": "invalid_app_id", "description": "Bad id"}
    session = make_session(lambda url, params, headers: payload)
    provider = OpenExchangeRatesProvider(repository, app_id="app-123", session=session)

    with pytest.raises(TransientProviderError, match="Bad id"):
        provider.fetch_latest("USD")
    with pytest.raises(ValueError):
        OpenExchangeRatesProvider(repository, app_id="")


def test_capabilities_and_names(repository: SQLiteRateRepository) -> None:
    provider = OpenExchangeRatesProvider(repository, app_id="app-123")

    assert supports(provider, Capability.HISTORICAL)
    assert supports(provider, Capability.BASE)
    assert ProviderName.parse(" World_Bank ") is ProviderName.WORLD_BANK
    with pytest.raises(ValueError):
        ProviderName.parse("fixer")
