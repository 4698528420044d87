"""Named TTL caches backed by :mod:`cachetools`.

Entries expire on their own, so callers never have to garbage-collect stale
provider responses.
"""

from __future__ import annotations

from typing import Any

from cachetools import TTLCache

from fx_fallback.utils.logger import get_logger

LOGGER = get_logger(__name__)

_cache_registry: dict[str, TTLCache] = {}


def get_ttl_cache(name: str, maxsize: int = 64, ttl: int = 3600) -> TTLCache:
    """Get or create the TTL cache registered under ``name``.

    The first call fixes ``maxsize`` and ``ttl``; later calls return the same
    instance regardless of the arguments.
    """

    if name not in _cache_registry:
        LOGGER.info("Creating TTL cache %s (maxsize=%s, ttl=%ss)", name, maxsize, ttl)
        _cache_registry[name] = TTLCache(maxsize=maxsize, ttl=ttl)
    return _cache_registry[name]


def clear_cache(name: str) -> bool:
    """Clear a named cache. Returns False when no such cache exists."""

    if name in _cache_registry:
        _cache_registry[name].clear()
        LOGGER.info("Cache %s cleared", name)
        return True
    return False


def clear_all_caches() -> int:
    """Clear every registered cache and return how many there were."""

    count = len(_cache_registry)
    for cache in _cache_registry.values():
        cache.clear()
    LOGGER.info("Cleared %s caches", count)
    return count


def get_cache_stats(name: str) -> dict[str, Any] | None:
    """Return size/maxsize/ttl for a named cache, or None if not found."""

    if name not in _cache_registry:
        return None
    cache = _cache_registry[name]
    return {
        "name": name,
        "current_size": len(cache),
        "maxsize": cache.maxsize,
        "ttl": cache.ttl,
    }


__all__ = ["get_ttl_cache", "clear_cache", "clear_all_caches", "get_cache_stats"]
