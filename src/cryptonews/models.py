"""Domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SentimentLabel = Literal["Positive", "Negative", "Neutral"]

SENTIMENT_LABELS: tuple[SentimentLabel, ...] = ("Positive", "Negative", "Neutral")


class NormalizedArticle(BaseModel):
    """Search result parsed into a strict shape with defaults applied."""

    title: str = ""
    url: str = ""
    source_id: str = "unknown"
    source_name: str = "unknown"
    pub_date: str
    description: str = ""
    image_url: Optional[str] = None
    tickers: List[str] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SentimentResult:
    """Outcome of classifying a single article."""

    sentiment: SentimentLabel
    score: float
    emoji: str


class EnrichedArticle(BaseModel):
    """Article as returned to clients and stored in the cache."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    source: str = "Unknown"
    pub_date: str = Field(alias="pubDate")
    tickers: List[str] = Field(default_factory=list)
    snippet: str = ""
    sentiment: SentimentLabel
    score: float = Field(ge=0.0, le=1.0)
    emoji: str
    trust: float = Field(default=0.5, ge=0.0, le=1.0)
    cached_at: Optional[int] = Field(default=None, alias="cachedAt")


class CacheEntry(BaseModel):
    """Cached result of one enrichment run for a query fingerprint."""

    model_config = ConfigDict(populate_by_name=True)

    query_key: str = Field(alias="queryKey")
    articles: List[EnrichedArticle] = Field(default_factory=list)
    cached_at: int = Field(alias="cachedAt")
    ttl: int

    def is_expired(self, now: float) -> bool:
        """Return ``True`` once ``now`` has moved past the entry's expiry."""

        return self.ttl < now


class NewsResponse(BaseModel):
    """Body returned by ``GET /api/news``."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    fetched_at: datetime = Field(alias="fetchedAt")
    cache_until: datetime = Field(alias="cacheUntil")
    articles: List[EnrichedArticle] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""

    error: str
