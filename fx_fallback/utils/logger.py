"""Logging utilities for the fx_fallback package."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

_LOGGER: Optional[logging.Logger] = None


def get_logger(name: str = "fx_fallback") -> logging.Logger:
    """Return a module-level logger configured with a simple formatter."""
    global _LOGGER
    if _LOGGER is None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        _LOGGER = logging.getLogger(name)
    return logging.getLogger(name)


@contextmanager
def log_time(label: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """Log how long the wrapped block took at debug level."""

    target = logger or get_logger("fx_fallback")
    started = time.perf_counter()
    try:
        yield
    finally:
        target.debug("%s took %.3fs", label, time.perf_counter() - started)
