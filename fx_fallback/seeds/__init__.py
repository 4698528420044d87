"""Seeding utilities for :mod:`fx_fallback`."""

from __future__ import annotations

from typing import Any

__all__ = ["backfill_historical_rates", "BackfillSummary"]


def __getattr__(name: str) -> Any:
    """Lazily expose the backfill helpers to avoid import-time side effects."""

    if name in {"backfill_historical_rates", "BackfillSummary"}:
        from fx_fallback.seeds.backfill import BackfillSummary as _summary
        from fx_fallback.seeds.backfill import backfill_historical_rates as _backfill

        return {"backfill_historical_rates": _backfill, "BackfillSummary": _summary}[name]
    raise AttributeError(f"module 'fx_fallback.seeds' has no attribute {name}")
