"""Cache-aside storage for enriched article batches."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Any, Callable, Protocol, Sequence

from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import CacheWriteError
from cryptonews.models import CacheEntry, EnrichedArticle

__all__ = ["CacheStore", "KeyValueBackend", "generate_query_key"]

logger = logging.getLogger(__name__)


def generate_query_key(query: str, language: str, category: str) -> str:
    """Return the SHA-256 hex fingerprint of a semantic query."""

    key = f"{query}|{language}|{category}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class KeyValueBackend(Protocol):
    """Persistent store holding JSON-serialisable records by key."""

    def get(self, key: str) -> dict[str, Any] | None:
        ...

    def put(self, key: str, record: dict[str, Any]) -> None:
        ...


class CacheStore:
    """Read and write :class:`CacheEntry` records with reader-enforced expiry.

    Reads fail open: a missing, expired, malformed or unreachable record is a
    miss. Writes do not: any failure raises :class:`CacheWriteError`.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        ttl_seconds: int,
        *,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def get(self, query_key: str, ctx: RequestContext | None = None) -> CacheEntry | None:
        log = bind_logger(logger, ctx)

        try:
            item = await asyncio.wait_for(
                asyncio.to_thread(self._backend.get, query_key), timeout=self._timeout
            )
            if item is None:
                log.debug("Cache miss: %s", query_key)
                return None
            entry = CacheEntry.model_validate(item)
        except Exception as exc:  # noqa: BLE001 - a broken cache only forces a recompute
            log.error("Error retrieving from cache for %s: %r", query_key, exc)
            return None

        now = self._now()
        if entry.is_expired(now):
            log.debug("Cache entry expired: %s (ttl=%d now=%d)", query_key, entry.ttl, now)
            return None

        log.info("Cache hit: %s (%d article(s))", query_key, len(entry.articles))
        return entry

    async def put(
        self,
        query_key: str,
        articles: Sequence[EnrichedArticle],
        ctx: RequestContext | None = None,
    ) -> CacheEntry:
        """Store ``articles`` under ``query_key`` and return the written entry.

        A timeout only stops the wait: the worker thread keeps running, so the
        entry may still land after :class:`CacheWriteError` is raised.
        """

        log = bind_logger(logger, ctx)
        now = self._now()

        entry = CacheEntry(
            query_key=query_key,
            articles=[article.model_copy(update={"cached_at": now}) for article in articles],
            cached_at=now,
            ttl=now + self.ttl_seconds,
        )
        record = entry.model_dump(mode="json", by_alias=True)

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._backend.put, query_key, record), timeout=self._timeout
            )
        except Exception as exc:
            log.error("Error writing to cache for %s: %r", query_key, exc)
            raise CacheWriteError(f"Failed to write cache entry: {exc!r}", query_key=query_key) from exc

        log.info(
            "Articles cached: %s (%d article(s), ttl=%ds)", query_key, len(entry.articles), self.ttl_seconds
        )
        return entry
