"""Mongo repository tests that monkeypatch pymongo primitives."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List

import pytest

from fx_fallback.db import mongo_backend as mongo_module
from fx_fallback.exceptions import RateNotFoundError
from fx_fallback.ingestion.models import HistoricalRateSet, RateSet


class _DummyDecimal128:
    def __init__(self, value: str) -> None:
        self.value = value

    def to_decimal(self) -> Decimal:
        return Decimal(self.value)


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for field, condition in query.items():
        value = doc.get(field)
        if isinstance(condition, dict):
            if "$gte" in condition and not value >= condition["$gte"]:
                return False
            if "$lte" in condition and not value <= condition["$lte"]:
                return False
            if "$lt" in condition and not value < condition["$lt"]:
                return False
        elif value != condition:
            return False
    return True


class _DummyCursor:
    def __init__(self, docs: List[Dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, keys: list[tuple[str, int]]) -> "_DummyCursor":
        docs = list(self._docs)
        for field, direction in reversed(keys):
            docs.sort(key=lambda doc: doc[field], reverse=direction == -1)
        return _DummyCursor(docs)

    def limit(self, count: int) -> "_DummyCursor":
        return _DummyCursor(self._docs[:count])

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._docs)


class _DummyCollection:
    def __init__(self) -> None:
        self.docs: Dict[tuple[Any, ...], Dict[str, Any]] = {}
        self.indexes: list[tuple[tuple[tuple[str, int], ...], bool]] = []
        self.bulk_calls = 0

    def __bool__(self) -> bool:  # pragma: no cover - behavioural parity with pymongo
        raise NotImplementedError("Collection truthiness is undefined")

    def create_index(self, fields: list[tuple[str, int]], unique: bool) -> None:
        self.indexes.append((tuple(fields), unique))

    def bulk_write(self, operations: list["_DummyUpdateOne"], ordered: bool) -> "_DummyBulkResult":
        assert ordered is True
        self.bulk_calls += 1
        for op in operations:
            assert isinstance(op, _DummyUpdateOne)
            key = tuple(op.filter.values())
            self.docs[key] = dict(op.update["$set"])
        return _DummyBulkResult()

    def find(self, query: Dict[str, Any]) -> _DummyCursor:
        return _DummyCursor([doc for doc in self.docs.values() if _matches(doc, query)])


class _DummyBulkResult:
    upserted_count = 0
    modified_count = 0


class _DummyUpdateOne:
    def __init__(
        self, filter: Dict[str, Any], update: Dict[str, Dict[str, Any]], *, upsert: bool
    ) -> None:
        assert upsert is True
        self.filter = filter
        self.update = update


class _DummyDatabase(dict):
    def __getitem__(self, name: str) -> _DummyCollection:  # type: ignore[override]
        if name not in self:
            self[name] = _DummyCollection()
        return dict.__getitem__(self, name)


class _DummyClient:
    def __init__(self, url: str) -> None:
        self.url = url
        self.admin = self
        self.closed = False
        self.databases: Dict[str, _DummyDatabase] = {}

    def __getitem__(self, name: str) -> _DummyDatabase:
        return self.databases.setdefault(name, _DummyDatabase())

    def get_default_database(self) -> _DummyDatabase:
        return self.__getitem__("default")

    def command(self, name: str) -> None:
        assert name == "ping"

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def patch_mongo_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mongo_module, "MongoClient", _DummyClient)
    monkeypatch.setattr(mongo_module, "PyMongoError", RuntimeError)
    monkeypatch.setattr(mongo_module, "UpdateOne", _DummyUpdateOne)
    monkeypatch.setattr(mongo_module, "Decimal128", _DummyDecimal128)


def test_mongo_repository_roundtrip() -> None:
    repo = mongo_module.MongoRateRepository("mongodb://example.com/", database="fx")
    repo.ensure_schema()

    assert repo._current.indexes == [
        ((("base_currency_code", 1), ("target_currency_code", 1)), True)
    ]
    rate_set = RateSet("USD", {"EUR": Decimal("0.8"), "GBP": Decimal("0.7")})
    assert repo.update_rates_bulk([rate_set])
    assert repo._current.bulk_calls == 1

    stored = next(iter(repo._current.docs.values()))
    assert isinstance(stored["exchange_rate"], _DummyDecimal128)

    rows = repo.get_rates("USD")
    assert [(row.target_currency, row.rate) for row in rows] == [
        ("EUR", Decimal("0.8")),
        ("GBP", Decimal("0.7")),
    ]
    assert repo.get_rate("EUR", "USD").rate == Decimal("1.25")
    with pytest.raises(RateNotFoundError):
        repo.get_rate("USD", "JPY")

    repo.close()
    assert repo._client.closed


def test_mongo_upsert_replaces_existing_documents() -> None:
    repo = mongo_module.MongoRateRepository("mongodb://example.com/", database="fx")

    repo.update_rates("USD", {"EUR": 0.8})
    repo.update_rates("USD", {"EUR": 0.85})

    assert len(repo._current.docs) == 2
    assert repo.get_rate("USD", "EUR").rate == Decimal("0.85")


def test_mongo_history_and_bounds() -> None:
    repo = mongo_module.MongoRateRepository("mongodb://example.com/fx")
    repo.update_rates_history_bulk(
        [
            HistoricalRateSet("USD", {"EUR": Decimal("0.9")}, observed_at=datetime(2024, 1, 1)),
            HistoricalRateSet("USD", {"EUR": Decimal("0.94")}, observed_at=datetime(2024, 1, 11)),
        ]
    )

    day = repo.get_historical_rates("USD", date(2024, 1, 11))
    assert [(row.target_currency, row.rate) for row in day] == [("EUR", Decimal("0.94"))]
    assert repo.get_historical_rate("EUR", "USD", date(2024, 1, 1)).rate == Decimal(
        "1.1111111111"
    )

    before, after = repo.get_bounding_historical_rates("USD", "EUR", date(2024, 1, 5))
    assert before.observed_at == datetime(2024, 1, 1)
    assert after.observed_at == datetime(2024, 1, 11)
    assert repo.get_bounding_historical_rates("USD", "EUR", date(2024, 2, 1)) == []
    assert repo.get_next_historical_rate("USD", "EUR", date(2023, 12, 1)).rate == Decimal("0.9")


def test_mongo_requires_database_name(monkeypatch: pytest.MonkeyPatch) -> None:
    class _NoDefaultClient(_DummyClient):
        def get_default_database(self) -> _DummyDatabase:
            raise RuntimeError("No default database name defined or provided.")

    monkeypatch.setattr(mongo_module, "MongoClient", _NoDefaultClient)

    with pytest.raises(ValueError):
        mongo_module.MongoRateRepository("mongodb://example.com/")
