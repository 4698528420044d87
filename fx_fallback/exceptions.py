"""Error types raised by fx_fallback."""

from __future__ import annotations


class FxFallbackError(Exception):
    """Base class for every error raised by this package."""


class TransientProviderError(FxFallbackError):
    """A provider call failed (HTTP error, timeout, error payload, bad JSON)."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CapabilityMismatchError(FxFallbackError):
    """A provider was asked for an operation it does not support."""

    def __init__(self, provider: str, capability: str) -> None:
        super().__init__(f"Provider {provider} does not support {capability} operations")
        self.provider = provider
        self.capability = capability


class AllProvidersExhaustedError(FxFallbackError):
    """Every configured provider failed for ``operation``."""

    def __init__(self, operation: str, last_error: BaseException | None = None) -> None:
        reason = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(
            f"All exchange rate services failed for operation: {operation}. Last error: {reason}"
        )
        self.operation = operation
        self.last_error = last_error


class RateNotFoundError(FxFallbackError, LookupError):
    """A single-row repository lookup found nothing."""


class InvalidArgumentError(FxFallbackError, TypeError):
    """An argument has the wrong type, e.g. a bulk write element."""


__all__ = [
    "FxFallbackError",
    "TransientProviderError",
    "CapabilityMismatchError",
    "AllProvidersExhaustedError",
    "RateNotFoundError",
    "InvalidArgumentError",
]
