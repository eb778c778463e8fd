"""Enrichment pipeline: cache lookup, fetch, dedupe, classify, store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Protocol, Sequence

from fastapi.concurrency import run_in_threadpool

from cryptonews.blobstore import JsonBlobStore
from cryptonews.config import Settings
from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import InvalidSentimentFilterError
from cryptonews.models import CacheEntry, EnrichedArticle, NormalizedArticle, SentimentResult
from cryptonews.services.cache import CacheStore, generate_query_key
from cryptonews.services.deduplicator import deduplicate_articles, score_trust
from cryptonews.services.newsdata import SOURCE_NAME, NewsDataClient, normalize_article
from cryptonews.services.retry import RetryPolicy
from cryptonews.services.sentiment import SentimentCascade, build_cascade

__all__ = [
    "CATEGORY",
    "LANGUAGE",
    "QUERY",
    "SENTIMENT_FILTERS",
    "EnrichmentPipeline",
    "PipelineResult",
    "build_pipeline",
    "filter_by_sentiment",
    "parse_sentiment_filter",
]

logger = logging.getLogger(__name__)

QUERY = (
    "cryptocurrency AND (Regulation OR Investigation OR Investment OR Institutional OR Hack "
    'OR Exploit OR Vulnerability OR AI OR Partnership OR Crash OR Surge OR "All-Time High" '
    "OR Record OR Dip)"
)
LANGUAGE = "en"
CATEGORY = "business"

SENTIMENT_FILTERS = ("positive", "negative", "neutral", "all")


class SearchClient(Protocol):
    async def fetch(
        self,
        query: str,
        language: str,
        category: str,
        *,
        size: int | None = None,
        ctx: RequestContext | None = None,
    ) -> List[dict[str, Any]]:
        ...


@dataclass(slots=True)
class PipelineResult:
    """Cache entry served for a request and whether it came from the cache."""

    entry: CacheEntry
    cache_hit: bool


def parse_sentiment_filter(value: str | None) -> str:
    """Return the lower-cased filter, defaulting to ``all``."""

    normalised = (value or "all").strip().lower()
    if normalised not in SENTIMENT_FILTERS:
        raise InvalidSentimentFilterError(value or "")
    return normalised


def filter_by_sentiment(articles: Sequence[EnrichedArticle], sentiment: str) -> List[EnrichedArticle]:
    if sentiment == "all":
        return list(articles)

    label = sentiment.capitalize()
    return [article for article in articles if article.sentiment == label]


class EnrichmentPipeline:
    """Compose the search client, sentiment cascade and cache store."""

    def __init__(
        self,
        search_client: SearchClient,
        classifier: SentimentCascade,
        cache: CacheStore,
        *,
        query: str = QUERY,
        language: str = LANGUAGE,
        category: str = CATEGORY,
    ) -> None:
        self._search_client = search_client
        self._classifier = classifier
        self._cache = cache
        self.query = query
        self.language = language
        self.category = category

    @property
    def query_key(self) -> str:
        return generate_query_key(self.query, self.language, self.category)

    async def run(self, ctx: RequestContext) -> PipelineResult:
        """Serve the cached entry or build, store and return a fresh one.

        A failure to store the fresh entry propagates even though the
        articles were computed successfully.
        """

        log = bind_logger(logger, ctx)
        query_key = self.query_key

        cached = await self._cache.get(query_key, ctx=ctx)
        if cached is not None:
            return PipelineResult(entry=cached, cache_hit=True)

        raw_articles = await self._search_client.fetch(
            self.query, self.language, self.category, ctx=ctx
        )
        enriched = await self.enrich(raw_articles, ctx)
        entry = await self._cache.put(query_key, enriched, ctx=ctx)

        log.info("Enrichment complete: %d article(s) cached", len(entry.articles))
        return PipelineResult(entry=entry, cache_hit=False)

    async def enrich(
        self, raw_articles: Sequence[Mapping[str, Any]], ctx: RequestContext
    ) -> List[EnrichedArticle]:
        """Normalise, deduplicate and classify ``raw_articles`` preserving order."""

        normalized = [normalize_article(raw) for raw in raw_articles if isinstance(raw, Mapping)]
        deduplicated = deduplicate_articles(normalized, ctx=ctx)

        results = await asyncio.gather(
            *(
                run_in_threadpool(self._classifier.classify, article.title, article.description, ctx)
                for article in deduplicated
            )
        )

        return [
            _to_enriched(article, result)
            for article, result in zip(deduplicated, results)
        ]


def _to_enriched(article: NormalizedArticle, result: SentimentResult) -> EnrichedArticle:
    return EnrichedArticle(
        title=article.title,
        url=article.url,
        source=article.source_name or "Unknown",
        pub_date=article.pub_date,
        tickers=list(article.tickers),
        snippet=article.description,
        sentiment=result.sentiment,
        score=result.score,
        emoji=result.emoji,
        trust=score_trust(article.source_name, article.url),
    )


def build_pipeline(settings: Settings) -> EnrichmentPipeline:
    """Wire the production collaborators described by ``settings``."""

    retry_policy = RetryPolicy(
        settings.max_retries,
        settings.initial_backoff_seconds,
        source=SOURCE_NAME,
    )
    search_client = NewsDataClient(
        settings.newsdata_api_key,
        retry_policy,
        timeout=settings.search_timeout,
        page_size=settings.page_size,
    )
    cache = CacheStore(
        JsonBlobStore(settings.cache_table, settings.cache_dir),
        settings.cache_ttl,
        timeout=settings.cache_timeout,
    )
    return EnrichmentPipeline(search_client, build_cascade(settings), cache)
