"""SQLite repository, the default storage."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.sql.dml import Insert

from fx_fallback.db import DEFAULT_SQLITE_DB_PATH
from fx_fallback.db.base_backend import Row
from fx_fallback.db.relational_backend import RelationalRateRepository


def sqlite_url(db_path: str | Path) -> str:
    """Build an SQLAlchemy URL for a file path."""

    return f"sqlite:///{Path(db_path).as_posix()}"


class SQLiteRateRepository(RelationalRateRepository):
    """Repository that stores rates in a local SQLite file."""

    def __init__(self, db_path: str | Path = DEFAULT_SQLITE_DB_PATH) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(sqlite_url(self.db_path))
        # The schema is cheap to create and SQLite files start empty.
        self.ensure_schema()

    def _upsert_statement(
        self, table: Table, rows: Sequence[Row], key_columns: Sequence[str]
    ) -> Insert:
        statement = sqlite_insert(table).values(list(rows))
        return statement.on_conflict_do_update(
            index_elements=list(key_columns),
            set_={
                column: statement.excluded[column]
                for column in rows[0]
                if column not in key_columns
            },
        )


__all__ = ["SQLiteRateRepository", "sqlite_url"]
