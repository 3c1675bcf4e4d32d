"""Provider error taxonomy.

Every provider maps its vendor's failures onto one of these classes before
the error leaves the provider.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all provider failures."""

    def __init__(
        self,
        message: str,
        original_error: BaseException | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.provider = provider

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ProviderAuthenticationError(ProviderError):
    """Credentials missing, invalid, or rejected."""


class ProviderRateLimitError(ProviderError):
    """The vendor throttled the request."""

    def __init__(
        self,
        message: str,
        retry_after_seconds: float | None = None,
        original_error: BaseException | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error, provider=provider)
        self.retry_after_seconds = retry_after_seconds


class ProviderModelNotFoundError(ProviderError):
    """The requested model id is unknown to the vendor."""

    def __init__(
        self,
        model_name: str,
        message: str,
        original_error: BaseException | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error, provider=provider)
        self.model_name = model_name


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds; dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


__all__ = [
    "ProviderError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderModelNotFoundError",
    "parse_retry_after",
]
