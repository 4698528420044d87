"""PostgreSQL repository."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as postgres_insert
from sqlalchemy.sql.dml import Insert

from fx_fallback.db.base_backend import Row
from fx_fallback.db.relational_backend import RelationalRateRepository


class PostgresRateRepository(RelationalRateRepository):
    """Concrete relational repository for PostgreSQL engines."""

    def _upsert_statement(
        self, table: Table, rows: Sequence[Row], key_columns: Sequence[str]
    ) -> Insert:
        statement = postgres_insert(table).values(list(rows))
        return statement.on_conflict_do_update(
            index_elements=list(key_columns),
            set_={
                column: statement.excluded[column]
                for column in rows[0]
                if column not in key_columns
            },
        )


__all__ = ["PostgresRateRepository"]
