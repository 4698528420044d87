"""MongoDB repository."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from fx_fallback.db.base_backend import CURRENT_TABLE, HISTORY_TABLE, RateRepository, Row
from fx_fallback.ingestion.models import RatePoint
from fx_fallback.utils.decimals import to_rate_decimal
from fx_fallback.utils.logger import get_logger

try:  # pragma: no cover - optional dependency
    from bson.decimal128 import Decimal128
    from pymongo import ASCENDING, DESCENDING, MongoClient, UpdateOne
    from pymongo.collection import Collection
    from pymongo.errors import PyMongoError
except ModuleNotFoundError:  # pragma: no cover - handled dynamically
    Decimal128 = None  # type: ignore[assignment,misc]
    MongoClient = None  # type: ignore[assignment,misc]
    UpdateOne = None  # type: ignore[assignment,misc]
    Collection = None  # type: ignore[assignment,misc]
    PyMongoError = Exception  # type: ignore[assignment,misc]
    ASCENDING, DESCENDING = 1, -1

LOGGER = get_logger(__name__)

CURRENT_KEYS = ("base_currency_code", "target_currency_code")
HISTORY_KEYS = ("base_currency_code", "target_currency_code", "date_time")


class MongoRateRepository(RateRepository):
    """Repository that persists rates inside MongoDB.

    Rates are stored as ``Decimal128``. A bulk write is a single ordered
    ``bulk_write`` call; it is only all-or-nothing when the server runs it
    inside a transaction.
    """

    def __init__(self, url: str, *, database: str | None = None) -> None:
        if MongoClient is None:  # pragma: no cover - defensive
            raise ModuleNotFoundError("pymongo is required for MongoDB backends")
        self.url = url
        self._client = MongoClient(url)
        if database is not None:
            db = self._client[database]
        else:
            try:
                db = self._client.get_default_database()
            except PyMongoError as exc:
                raise ValueError("MongoDB connection URI must include a database name") from exc
        self._current: Collection = db[CURRENT_TABLE]
        self._history: Collection = db[HISTORY_TABLE]

    def ensure_schema(self) -> None:
        try:
            LOGGER.info("Ensuring MongoDB exchange rate collections exist")
            self._client.admin.command("ping")
            self._current.create_index([(key, ASCENDING) for key in CURRENT_KEYS], unique=True)
            self._history.create_index([(key, ASCENDING) for key in HISTORY_KEYS], unique=True)
        except PyMongoError as exc:  # pragma: no cover - error path
            raise RuntimeError(f"Failed to ensure MongoDB schema: {exc}") from exc

    def _upsert_current(self, rows: Sequence[Row]) -> None:
        self._bulk_upsert(self._current, rows, CURRENT_KEYS)

    def _upsert_history(self, rows: Sequence[Row]) -> None:
        self._bulk_upsert(self._history, rows, HISTORY_KEYS)

    def _bulk_upsert(
        self, collection: Collection, rows: Sequence[Row], keys: Sequence[str]
    ) -> None:
        operations = []
        for row in rows:
            doc = dict(row)
            doc["exchange_rate"] = Decimal128(str(row["exchange_rate"]))
            operations.append(
                UpdateOne({key: doc[key] for key in keys}, {"$set": doc}, upsert=True)
            )
        try:
            collection.bulk_write(operations, ordered=True)
        except PyMongoError as exc:  # pragma: no cover - error path
            raise RuntimeError(f"Failed to upsert MongoDB rates: {exc}") from exc
        LOGGER.debug("Upserted %s documents", len(operations))

    def _select_current(
        self, base: str | None = None, target: str | None = None
    ) -> list[RatePoint]:
        query: dict[str, Any] = {}
        if base is not None:
            query["base_currency_code"] = base
        if target is not None:
            query["target_currency_code"] = target
        cursor = self._current.find(query).sort(
            [("base_currency_code", ASCENDING), ("target_currency_code", ASCENDING)]
        )
        return [_to_point(doc) for doc in cursor]

    def _select_history(
        self, base: str, target: str | None, start: datetime, end: datetime
    ) -> list[RatePoint]:
        query: dict[str, Any] = {
            "base_currency_code": base,
            "date_time": {"$gte": start, "$lt": end},
        }
        if target is not None:
            query["target_currency_code"] = target
        cursor = self._history.find(query).sort(
            [("date_time", ASCENDING), ("target_currency_code", ASCENDING)]
        )
        return [_to_point(doc) for doc in cursor]

    def _select_bound(
        self, base: str, target: str, at: datetime, *, before: bool
    ) -> RatePoint | None:
        query = {
            "base_currency_code": base,
            "target_currency_code": target,
            "date_time": {"$lte": at} if before else {"$gte": at},
        }
        direction = DESCENDING if before else ASCENDING
        for doc in self._history.find(query).sort([("date_time", direction)]).limit(1):
            return _to_point(doc)
        return None

    def close(self) -> None:  # pragma: no cover - trivial cleanup
        self._client.close()


def _to_point(doc: dict[str, Any]) -> RatePoint:
    return RatePoint(
        base_currency=doc["base_currency_code"],
        target_currency=doc["target_currency_code"],
        rate=_as_decimal(doc["exchange_rate"]),
        provider=doc.get("provider"),
        observed_at=doc.get("date_time"),
        last_update=doc.get("last_update_date"),
    )


def _as_decimal(value: Any) -> Decimal:
    if hasattr(value, "to_decimal"):
        value = value.to_decimal()
    return to_rate_decimal(value)


__all__ = ["MongoRateRepository"]
