"""Service layer entry points for the crypto news enricher."""

from __future__ import annotations

from .cache import CacheStore, generate_query_key  # noqa: F401
from .deduplicator import deduplicate_articles  # noqa: F401
from .pipeline import EnrichmentPipeline, build_pipeline  # noqa: F401
from .retry import RetryPolicy  # noqa: F401
from .sentiment import SentimentCascade  # noqa: F401

__all__ = [
    "CacheStore",
    "EnrichmentPipeline",
    "RetryPolicy",
    "SentimentCascade",
    "build_pipeline",
    "deduplicate_articles",
    "generate_query_key",
]
