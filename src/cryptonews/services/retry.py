"""Bounded exponential-backoff retry for asynchronous upstream calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import requests

from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import RetryExhaustedError

__all__ = ["RetryPolicy", "is_rate_limited", "is_retryable_error"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_LIMIT_MARKERS = ("429", "too many requests")
_RETRYABLE_MARKERS = ("econnrefused", "connection refused", "timeout", "timed out")
_TIMEOUT_STATUSES = (408, 504)


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code
    return None


def is_rate_limited(error: BaseException) -> bool:
    """Return ``True`` when ``error`` signals an upstream rate limit.

    HTTP errors are judged by status code alone; their messages embed the
    request URL, query string included.
    """

    status = _status_code(error)
    if status is not None:
        return status == 429

    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def is_retryable_error(error: BaseException) -> bool:
    """Return ``True`` for transient failures worth another attempt."""

    if is_rate_limited(error):
        return True

    status = _status_code(error)
    if status is not None:
        return status in _TIMEOUT_STATUSES
    if isinstance(error, (requests.Timeout, asyncio.TimeoutError, ConnectionRefusedError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


class RetryPolicy:
    """Run an async operation up to ``max_attempts`` times.

    The delay before attempt ``k`` (``k > 0``) is ``initial_delay * 2**k``
    seconds, with no jitter and no cap. Rate-limit errors are retried while
    attempts remain; other errors only when :func:`is_retryable_error` agrees.
    Non-retryable errors propagate unchanged. Running out of attempts raises
    :class:`~cryptonews.errors.RetryExhaustedError` chained from the last
    error.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        initial_delay: float = 1.0,
        *,
        source: str = "upstream",
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if initial_delay < 0:
            raise ValueError("initial_delay must not be negative")

        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.source = source
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Return the pause taken before ``attempt``."""

        if attempt <= 0:
            return 0.0
        return self.initial_delay * (2**attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        ctx: RequestContext | None = None,
    ) -> T:
        log = bind_logger(logger, ctx)
        attempt = 0

        while True:
            if attempt > 0:
                delay = self.delay_for(attempt)
                log.info(
                    "Retrying %s (attempt %d/%d) in %.2fs",
                    self.source,
                    attempt + 1,
                    self.max_attempts,
                    delay,
                )
                await self._sleep(delay)

            try:
                return await operation()
            except Exception as exc:
                if is_rate_limited(exc):
                    log.warning("%s rate limited on attempt %d: %s", self.source, attempt + 1, exc)
                elif is_retryable_error(exc):
                    log.warning("%s attempt %d failed: %s", self.source, attempt + 1, exc)
                else:
                    log.error("%s failed with non-retryable error: %s", self.source, exc)
                    raise

                attempt += 1
                if attempt >= self.max_attempts:
                    log.error("%s exhausted %d attempt(s)", self.source, self.max_attempts)
                    raise RetryExhaustedError(self.source, self.max_attempts, exc) from exc
