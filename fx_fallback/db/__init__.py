"""Helpers for working with the default SQLite database."""

from __future__ import annotations

from pathlib import Path
from typing import Final

__all__ = ["DEFAULT_SQLITE_DB_PATH", "default_sqlite_path"]

# Resolved against this package so the location does not depend on the
# working directory; SQLite needs an absolute path once installed.
DEFAULT_SQLITE_DB_PATH: Final[Path] = Path(__file__).resolve().with_name("exchange_rates.db")


def default_sqlite_path() -> Path:
    """Return the absolute path to the default ``exchange_rates.db`` file."""

    return DEFAULT_SQLITE_DB_PATH
