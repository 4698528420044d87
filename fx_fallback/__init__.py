"""Public interface for the fx_fallback package."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Callable, Iterable
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests
from sqlalchemy import create_engine, text

from fx_fallback.config import Settings
from fx_fallback.db import DEFAULT_SQLITE_DB_PATH
from fx_fallback.db.base_backend import RateRepository
from fx_fallback.db.sqlite_backend import SQLiteRateRepository, sqlite_url
from fx_fallback.exceptions import InvalidArgumentError
from fx_fallback.fallback import FallbackOrchestrator, ProviderEntry
from fx_fallback.ingestion.exchange_rate_api import ExchangeRateApiProvider
from fx_fallback.ingestion.models import (
    CurrencyPair,
    HistoricalBaseCurrency,
    HistoricalCurrencyPair,
    HistoricalRateSet,
    RatePoint,
    RateSet,
)
from fx_fallback.ingestion.open_exchange_rates import OpenExchangeRatesProvider
from fx_fallback.ingestion.strategy import ProviderName
from fx_fallback.ingestion.world_bank import WorldBankProvider

__all__ = [
    "__version__",
    "DatabaseBackend",
    "DatabaseConnectionInfo",
    "ExchangeRates",
    "FallbackOrchestrator",
    "HistoricalBaseCurrency",
    "RateSet",
    "Settings",
    "backfill_historical_rates",
]

try:
    __version__ = importlib_metadata.version("fx-fallback")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


class DatabaseBackend(str, Enum):
    """Supported storage engines."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"

    @classmethod
    def resolve_backend_and_scheme(cls, scheme: str) -> tuple["DatabaseBackend", str]:
        """Return backend enum + canonical scheme used in connection URLs."""

        if not scheme:
            raise ValueError("DB_URL must include a scheme (e.g. mysql:// or postgres://)")
        scheme_lower = scheme.lower()
        base_scheme, _, driver = scheme_lower.partition("+")
        if base_scheme in {"postgresql", "postgres", "postgressql"}:
            # Keep explicit drivers such as ``postgresql+psycopg2``.
            canonical_scheme = f"postgresql+{driver}" if driver else "postgresql"
            return cls.POSTGRES, canonical_scheme
        if base_scheme == "sqlite":
            return cls.SQLITE, "sqlite"
        if base_scheme == "mysql":
            canonical_scheme = scheme_lower if driver else "mysql+pymysql"
            return cls.MYSQL, canonical_scheme
        if base_scheme == "mongodb":
            # Keep srv-style schemes intact so pymongo can route via DNS.
            canonical_scheme = scheme_lower if driver else "mongodb"
            return cls.MONGODB, canonical_scheme
        raise ValueError(
            "Unsupported database backend. Supported values are SQLite, MySQL, "
            "Postgres, and MongoDB."
        )

    @classmethod
    def from_scheme(cls, scheme: str) -> "DatabaseBackend":
        backend, _ = cls.resolve_backend_and_scheme(scheme)
        return backend


@dataclass(slots=True)
class DatabaseConnectionInfo:
    """Represents how rates are persisted."""

    backend: DatabaseBackend
    url: str
    name: str | None
    username: str | None
    password: str | None
    host: str | None
    port: int | None

    @classmethod
    def from_url(cls, url: str) -> "DatabaseConnectionInfo":
        """Create a connection object by parsing a database URL/DSN."""

        cleaned_url, query_db_name = cls._normalise_database_name_parameter(url)
        parsed = urlparse(cleaned_url)
        if not parsed.scheme:
            raise ValueError("DB_URL must include a scheme (e.g. mysql:// or postgres://)")
        backend, canonical_scheme = DatabaseBackend.resolve_backend_and_scheme(parsed.scheme)
        if parsed.scheme != canonical_scheme:
            parsed = parsed._replace(scheme=canonical_scheme)
            cleaned_url = urlunparse(parsed)
        resolved_name = parsed.path[1:] if parsed.path and parsed.path != "/" else None
        if not resolved_name:
            resolved_name = query_db_name

        return cls(
            backend=backend,
            url=cleaned_url,
            name=resolved_name,
            username=parsed.username,
            password=parsed.password,
            host=parsed.hostname,
            port=parsed.port,
        )

    @classmethod
    def default_sqlite(
        cls, db_path: str | Path = DEFAULT_SQLITE_DB_PATH
    ) -> "DatabaseConnectionInfo":
        return cls(
            backend=DatabaseBackend.SQLITE,
            url=sqlite_url(db_path),
            name=str(db_path),
            username=None,
            password=None,
            host=None,
            port=None,
        )

    @staticmethod
    def _normalise_database_name_parameter(url: str) -> tuple[str, str | None]:
        """Support a ``DATABASE_NAME`` query parameter in place of a URL path."""

        if not re.search(r"(?i)DATABASE_NAME=", url):
            return url, None
        # ``DATABASE_NAME=foo`` is sometimes appended without an ``&`` delimiter.
        patched_url = re.sub(
            r"(?i)(?<![?&])DATABASE_NAME=",
            "&DATABASE_NAME=",
            url,
        )
        parsed = urlparse(patched_url)
        query_pairs = parse_qsl(parsed.query, keep_blank_values=True)
        remaining_pairs: list[tuple[str, str]] = []
        database_name: str | None = None
        for key, value in query_pairs:
            if key.lower() == "database_name":
                if value:
                    database_name = value
                # Drivers reject unknown parameters.
                continue
            remaining_pairs.append((key, value))

        new_path = parsed.path
        if (not new_path or new_path == "/") and database_name:
            new_path = f"/{database_name}"

        new_query = urlencode(remaining_pairs, doseq=True)
        cleaned = parsed._replace(query=new_query, path=new_path)
        return urlunparse(cleaned), database_name

    @property
    def is_sqlite(self) -> bool:
        return self.backend is DatabaseBackend.SQLITE

    @property
    def is_external(self) -> bool:
        """Return True for MySQL/Postgres/MongoDB backends."""

        return not self.is_sqlite


class ExchangeRates:
    """Package facade: storage, providers and the fallback chain in one place."""

    __slots__ = (
        "connection_info",
        "settings",
        "_providers",
        "_session",
        "_owns_session",
        "_repository",
        "_orchestrator",
    )

    _DRIVER_HINTS: dict[DatabaseBackend, str] = {
        DatabaseBackend.POSTGRES: (
            "Install psycopg2-binary via 'pip install fx-fallback[postgres]'."
        ),
        DatabaseBackend.MYSQL: "Install PyMySQL via 'pip install fx-fallback[mysql]'.",
        DatabaseBackend.MONGODB: "Install pymongo via 'pip install fx-fallback[mongo]'.",
    }

    __version__ = __version__

    def __init__(
        self,
        db_config: DatabaseConnectionInfo | str | None = None,
        *,
        settings: Settings | None = None,
        providers: Iterable[ProviderEntry] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Configure storage and the provider chain.

        ``db_config`` is a ``DatabaseConnectionInfo`` or a DSN string; when
        omitted, ``EXCHANGE_RATES_DB_URL`` is used, then the default SQLite
        file. ``providers`` overrides the configured fallback order with
        provider instances or zero-argument factories.
        """

        self.settings = settings or Settings.from_env()
        self.connection_info = self._build_connection_info(
            db_config=db_config if db_config is not None else self.settings.db_url
        )
        self._providers = list(providers) if providers is not None else None
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._repository: RateRepository | None = None
        self._orchestrator: FallbackOrchestrator | None = None

    @staticmethod
    def _build_connection_info(
        *, db_config: DatabaseConnectionInfo | str | None
    ) -> DatabaseConnectionInfo:
        if isinstance(db_config, DatabaseConnectionInfo):
            return db_config
        if isinstance(db_config, str):
            return DatabaseConnectionInfo.from_url(db_config)
        if db_config is None:
            return DatabaseConnectionInfo.default_sqlite()
        raise InvalidArgumentError(
            "db_config must be a DSN string or DatabaseConnectionInfo, "
            f"got {type(db_config).__name__}"
        )

    # -- wiring ---------------------------------------------------------

    @property
    def repository(self) -> RateRepository:
        if self._repository is None:
            try:
                repository = self._build_repository()
            except ModuleNotFoundError as exc:
                raise ModuleNotFoundError(self._missing_driver_message(exc)) from exc
            repository.ensure_schema()
            self._repository = repository
        return self._repository

    def _build_repository(self) -> RateRepository:
        info = self.connection_info
        if info.backend is DatabaseBackend.SQLITE:
            return SQLiteRateRepository(Path(info.name or DEFAULT_SQLITE_DB_PATH))
        if info.backend is DatabaseBackend.POSTGRES:
            from fx_fallback.db.postgres_backend import PostgresRateRepository

            return PostgresRateRepository(info.url)
        if info.backend is DatabaseBackend.MYSQL:
            from fx_fallback.db.mysql_backend import MySQLRateRepository

            return MySQLRateRepository(info.url)
        if info.backend is DatabaseBackend.MONGODB:
            from fx_fallback.db.mongo_backend import MongoRateRepository

            return MongoRateRepository(info.url, database=info.name)
        raise ValueError(f"Unsupported backend: {info.backend}")

    @property
    def orchestrator(self) -> FallbackOrchestrator:
        if self._orchestrator is None:
            entries = self._providers if self._providers is not None else self._provider_factories()
            self._orchestrator = FallbackOrchestrator(self.repository, entries)
        return self._orchestrator

    def provider(self, name: ProviderName | str) -> Any:
        """Build the single named provider, bypassing the fallback chain."""

        return self._provider_factories([ProviderName.parse(name)])[0]()

    def _provider_factories(
        self, names: Iterable[ProviderName] | None = None
    ) -> list[Callable[[], Any]]:
        """One factory per provider name, in the configured fallback order by default.

        Factories run on first use, so a provider with missing credentials
        only fails its own attempt.
        """

        settings = self.settings

        def exchange_rate_api() -> ExchangeRateApiProvider:
            return ExchangeRateApiProvider(
                self.repository,
                api_key=settings.exchange_rate_api.api_key,
                version=settings.exchange_rate_api.version,
                base_url=settings.exchange_rate_api.base_url,
                session=self._session,
                timeout=settings.http_timeout,
            )

        def open_exchange_rates() -> OpenExchangeRatesProvider:
            return OpenExchangeRatesProvider(
                self.repository,
                app_id=settings.open_exchange_rates.app_id,
                base_url=settings.open_exchange_rates.base_url,
                session=self._session,
                timeout=settings.http_timeout,
            )

        def world_bank() -> WorldBankProvider:
            return WorldBankProvider(
                self.repository,
                base_url=settings.world_bank.base_url,
                lookback_years=settings.world_bank.lookback_years,
                session=self._session,
                timeout=settings.http_timeout,
            )

        factories: dict[ProviderName, Callable[[], Any]] = {
            ProviderName.EXCHANGE_RATE_API: exchange_rate_api,
            ProviderName.OPEN_EXCHANGE_RATES: open_exchange_rates,
            ProviderName.WORLD_BANK: world_bank,
        }
        return [factories[name] for name in (names or settings.fallback_order)]

    @property
    def last_successful_provider(self) -> Any | None:
        return self.orchestrator.last_successful_provider

    # -- writes (fallback chain) ----------------------------------------

    def store_exchange_rates(self, base_currency: str) -> RateSet:
        return self.orchestrator.store_exchange_rates(base_currency)

    def store_bulk_exchange_rates_for_multiple_currencies(
        self, base_currencies: Iterable[str]
    ) -> dict[str, RateSet]:
        return self.orchestrator.store_bulk_exchange_rates_for_multiple_currencies(base_currencies)

    def store_historical_exchange_rates(
        self, base_currency: str, at: datetime | date
    ) -> HistoricalRateSet:
        return self.orchestrator.store_historical_exchange_rates(base_currency, at)

    def store_bulk_historical_exchange_rates_for_multiple_currencies(
        self, items: Iterable[HistoricalBaseCurrency]
    ) -> dict[str, dict[date, HistoricalRateSet]]:
        return self.orchestrator.store_bulk_historical_exchange_rates_for_multiple_currencies(
            items
        )

    # -- reads (repository) ---------------------------------------------

    def get_exchange_rates(self, base_currency: str) -> RateSet:
        return self.orchestrator.get_exchange_rates(base_currency)

    def get_all_exchange_rates(self) -> list[RateSet]:
        return self.orchestrator.get_all_exchange_rates()

    def get_exchange_rate(self, base_currency: str, target_currency: str) -> RatePoint:
        return self.repository.get_rate(base_currency, target_currency)

    def get_bulk_exchange_rates(self, pairs: Iterable[CurrencyPair]) -> dict[str, list[RatePoint]]:
        return self.repository.get_bulk_rate(pairs)

    def get_historical_exchange_rates(
        self, base_currency: str, at: datetime | date
    ) -> HistoricalRateSet:
        return self.orchestrator.get_historical_exchange_rates(base_currency, at)

    def get_historical_exchange_rate(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> RatePoint:
        return self.orchestrator.get_historical_exchange_rate(base_currency, target_currency, at)

    def get_bulk_historical_exchange_rates(
        self, pairs: Iterable[HistoricalCurrencyPair]
    ) -> dict[str, list[RatePoint]]:
        return self.repository.get_bulk_historical_rate(pairs)

    def get_bounding_historical_rates(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> list[RatePoint]:
        return self.repository.get_bounding_historical_rates(base_currency, target_currency, at)

    def interpolate_rate(
        self, base_currency: str, target_currency: str, at: datetime | date
    ) -> Decimal:
        return self.orchestrator.interpolate_rate(base_currency, target_currency, at)

    # -- lifecycle ------------------------------------------------------

    def connection(self) -> tuple[bool, str | None]:
        """Attempt to reach the configured database and report the outcome."""

        if self.connection_info.backend is DatabaseBackend.MONGODB:
            return self._probe_mongodb()
        return self._probe_relational_db()

    def _missing_driver_message(self, exc: ModuleNotFoundError) -> str:
        module_name = exc.name or str(exc)
        hint = self._DRIVER_HINTS.get(self.connection_info.backend)
        base = (
            f"Missing optional dependency '{module_name}' required for "
            f"{self.connection_info.backend.value} connections."
        )
        if hint:
            return f"{base} {hint}"
        return base

    def _probe_relational_db(self) -> tuple[bool, str | None]:
        engine = None
        try:
            engine = create_engine(self.connection_info.url)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except ModuleNotFoundError as exc:
            return False, self._missing_driver_message(exc)
        except Exception as exc:  # pragma: no cover - SQLAlchemy provides error detail
            return False, str(exc)
        finally:
            if engine is not None:
                engine.dispose()
        return True, None

    def _probe_mongodb(self) -> tuple[bool, str | None]:
        try:
            from pymongo import MongoClient
        except ModuleNotFoundError as exc:
            return False, self._missing_driver_message(exc)

        client = None
        try:
            client = MongoClient(self.connection_info.url, serverSelectionTimeoutMS=5000)
            client.admin.command("ping")
        except Exception as exc:  # pragma: no cover - pymongo surfaces detail
            return False, str(exc)
        finally:
            if client is not None:
                client.close()
        return True, None

    def close(self) -> None:
        if self._repository is not None:
            self._repository.close()
            self._repository = None
        self._orchestrator = None
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "ExchangeRates":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def __getattr__(name: str) -> Any:
    """Lazily expose the backfill helper."""

    if name == "backfill_historical_rates":
        from fx_fallback.seeds.backfill import backfill_historical_rates as _backfill

        return _backfill
    raise AttributeError(f"module 'fx_fallback' has no attribute {name}")
