"""Shared logic for the SQLAlchemy (SQLite/Postgres/MySQL) repositories."""

from __future__ import annotations

from abc import abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Sequence

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    select,
    text,
)

from fx_fallback.db.base_backend import CURRENT_TABLE, HISTORY_TABLE, RateRepository, Row
from fx_fallback.ingestion.models import RatePoint
from fx_fallback.utils.decimals import RATE_PRECISION, RATE_SCALE, to_rate_decimal
from fx_fallback.utils.logger import get_logger

if TYPE_CHECKING:  # pragma: no cover - type checker helper
    from sqlalchemy.engine import Engine
    from sqlalchemy.sql.dml import Insert

LOGGER = get_logger(__name__)

# Rows per INSERT statement. Keeps the bound parameter count below the
# SQLite limit of 999 on older builds.
UPSERT_CHUNK_SIZE = 100

metadata = MetaData()

current_rates_table = Table(
    CURRENT_TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("base_currency_code", String(3), nullable=False),
    Column("target_currency_code", String(3), nullable=False),
    Column("exchange_rate", Numeric(RATE_PRECISION, RATE_SCALE), nullable=False),
    Column("provider", String(64), nullable=True),
    Column("last_update_date", DateTime, nullable=False),
    UniqueConstraint(
        "base_currency_code", "target_currency_code", name="uq_currency_exchange_rates_pair"
    ),
)

history_rates_table = Table(
    HISTORY_TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("base_currency_code", String(3), nullable=False),
    Column("target_currency_code", String(3), nullable=False),
    Column("exchange_rate", Numeric(RATE_PRECISION, RATE_SCALE), nullable=False),
    Column("provider", String(64), nullable=True),
    Column("date_time", DateTime, nullable=False),
    Column("last_update_date", DateTime, nullable=False),
    UniqueConstraint(
        "base_currency_code",
        "target_currency_code",
        "date_time",
        name="uq_currency_exchange_rates_history_pair_time",
    ),
)

CURRENT_KEYS = ("base_currency_code", "target_currency_code")
HISTORY_KEYS = ("base_currency_code", "target_currency_code", "date_time")


class RelationalRateRepository(RateRepository):
    """Repository backed by SQLAlchemy Core.

    Subclasses only decide how a multi-row upsert is spelled for their
    dialect (:meth:`_upsert_statement`).
    """

    def __init__(self, url: str, **engine_options: Any) -> None:
        self.url = url
        self._engine_options = engine_options
        self._engine_instance: Engine | None = None

    def _get_engine(self) -> Engine:
        if self._engine_instance is None:
            self._engine_instance = create_engine(self.url, **self._engine_options)
        return self._engine_instance

    def ensure_schema(self) -> None:
        engine = self._get_engine()
        with engine.begin() as connection:
            LOGGER.info("Ensuring exchange rate schema exists")
            connection.execute(text("SELECT 1"))
            metadata.create_all(connection)

    @abstractmethod
    def _upsert_statement(
        self, table: Table, rows: Sequence[Row], key_columns: Sequence[str]
    ) -> Insert:
        """Dialect-native insert-or-update for ``rows`` keyed on ``key_columns``."""

    def _upsert(self, table: Table, rows: Sequence[Row], key_columns: Sequence[str]) -> None:
        engine = self._get_engine()
        with engine.begin() as connection:
            for chunk in _chunks(rows, UPSERT_CHUNK_SIZE):
                connection.execute(self._upsert_statement(table, chunk, key_columns))
        LOGGER.debug("Upserted %s rows into %s", len(rows), table.name)

    def _upsert_current(self, rows: Sequence[Row]) -> None:
        self._upsert(current_rates_table, rows, CURRENT_KEYS)

    def _upsert_history(self, rows: Sequence[Row]) -> None:
        self._upsert(history_rates_table, rows, HISTORY_KEYS)

    def _select_current(
        self, base: str | None = None, target: str | None = None
    ) -> list[RatePoint]:
        table = current_rates_table
        query = select(table)
        if base is not None:
            query = query.where(table.c.base_currency_code == base)
        if target is not None:
            query = query.where(table.c.target_currency_code == target)
        query = query.order_by(table.c.base_currency_code, table.c.target_currency_code)
        with self._get_engine().connect() as connection:
            return [_to_point(row._mapping) for row in connection.execute(query)]

    def _select_history(
        self, base: str, target: str | None, start: datetime, end: datetime
    ) -> list[RatePoint]:
        table = history_rates_table
        query = select(table).where(
            table.c.base_currency_code == base,
            table.c.date_time >= start,
            table.c.date_time < end,
        )
        if target is not None:
            query = query.where(table.c.target_currency_code == target)
        query = query.order_by(table.c.date_time, table.c.target_currency_code)
        with self._get_engine().connect() as connection:
            return [_to_point(row._mapping) for row in connection.execute(query)]

    def _select_bound(
        self, base: str, target: str, at: datetime, *, before: bool
    ) -> RatePoint | None:
        table = history_rates_table
        query = select(table).where(
            table.c.base_currency_code == base,
            table.c.target_currency_code == target,
        )
        if before:
            query = query.where(table.c.date_time <= at).order_by(table.c.date_time.desc())
        else:
            query = query.where(table.c.date_time >= at).order_by(table.c.date_time.asc())
        with self._get_engine().connect() as connection:
            row = connection.execute(query.limit(1)).first()
        return _to_point(row._mapping) if row is not None else None

    def close(self) -> None:  # pragma: no cover - trivial resource cleanup
        if self._engine_instance is not None:
            self._engine_instance.dispose()


def _to_point(mapping: Mapping[str, Any]) -> RatePoint:
    return RatePoint(
        base_currency=mapping["base_currency_code"],
        target_currency=mapping["target_currency_code"],
        rate=_normalise_rate(mapping["exchange_rate"]),
        provider=mapping["provider"],
        observed_at=_normalise_datetime(mapping.get("date_time")),
        last_update=_normalise_datetime(mapping["last_update_date"]),
    )


def _normalise_rate(value: object) -> Decimal:
    return to_rate_decimal(value)


def _normalise_datetime(value: object) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def _chunks(rows: Sequence[Row], size: int) -> Iterator[Sequence[Row]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


__all__ = [
    "RelationalRateRepository",
    "current_rates_table",
    "history_rates_table",
    "metadata",
]
