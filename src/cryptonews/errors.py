"""Exception hierarchy shared by the enrichment pipeline and the API layer."""

from __future__ import annotations

__all__ = [
    "CacheWriteError",
    "ConfigurationError",
    "CryptoNewsError",
    "InvalidSentimentFilterError",
    "RetryExhaustedError",
    "SentimentTierError",
    "UpstreamFetchError",
]


class CryptoNewsError(Exception):
    """Base error for every failure raised by :mod:`cryptonews`."""


class ConfigurationError(CryptoNewsError, ValueError):
    """Settings are missing or invalid."""


class InvalidSentimentFilterError(CryptoNewsError, ValueError):
    """The requested sentiment filter is not one of the supported values."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            "Invalid sentiment parameter. Must be: positive, negative, neutral, or all"
        )


class UpstreamFetchError(CryptoNewsError):
    """The news search provider could not deliver a result."""

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class RetryExhaustedError(UpstreamFetchError):
    """Every attempt allowed by a :class:`~cryptonews.services.retry.RetryPolicy` failed."""

    def __init__(self, source: str, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{source} error after {attempts} attempt(s): {last_error}",
            source=source,
        )


class SentimentTierError(CryptoNewsError):
    """A remote sentiment tier returned something that cannot be used."""

    def __init__(self, message: str, *, tier: str = "") -> None:
        self.tier = tier
        super().__init__(message)


class CacheWriteError(CryptoNewsError):
    """Persisting a cache entry failed."""

    def __init__(self, message: str, *, query_key: str = "") -> None:
        self.query_key = query_key
        super().__init__(message)
