"""MySQL repository."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.sql.dml import Insert

from fx_fallback.db.base_backend import Row
from fx_fallback.db.relational_backend import RelationalRateRepository


class MySQLRateRepository(RelationalRateRepository):
    """Concrete relational repository for MySQL engines.

    MySQL resolves conflicts against any unique index, so the key columns
    are implied by the table's unique constraint.
    """

    def _upsert_statement(
        self, table: Table, rows: Sequence[Row], key_columns: Sequence[str]
    ) -> Insert:
        statement = mysql_insert(table).values(list(rows))
        return statement.on_duplicate_key_update(
            {
                column: statement.inserted[column]
                for column in rows[0]
                if column not in key_columns
            }
        )


__all__ = ["MySQLRateRepository"]
