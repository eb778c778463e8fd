"""Duplicate removal and source trust scoring for normalised articles."""

from __future__ import annotations

import logging
from typing import List, Sequence
from urllib.parse import urlparse

from cryptonews.context import RequestContext, bind_logger
from cryptonews.models import NormalizedArticle

__all__ = ["TRUSTED_DOMAINS", "deduplicate_articles", "score_trust"]

logger = logging.getLogger(__name__)

TRUSTED_DOMAINS = (
    "coindesk.com",
    "cointelegraph.com",
    "decrypt.co",
    "theblock.co",
    "bloomberg.com",
    "reuters.com",
    "cnbc.com",
    "businessinsider.com",
    "techcrunch.com",
)


def deduplicate_articles(
    articles: Sequence[NormalizedArticle], ctx: RequestContext | None = None
) -> List[NormalizedArticle]:
    """Return ``articles`` without duplicates, keeping first occurrences in order.

    Articles without a URL are dropped. The URL is the primary key; an
    article whose title matches (case-insensitively) the title of an already
    accepted article is also dropped.
    """

    log = bind_logger(logger, ctx)
    seen: set[str] = set()
    deduplicated: List[NormalizedArticle] = []

    for article in articles:
        url = (article.url or "").strip()
        title = (article.title or "").strip()

        if not url:
            log.debug("Skipping article with no URL: %r", title)
            continue

        if url in seen:
            log.debug("Duplicate URL found: %s", url)
            continue

        title_key = title.lower()
        if any((accepted.title or "").strip().lower() == title_key for accepted in deduplicated):
            log.debug("Duplicate title found: %r", title)
            continue

        seen.add(url)
        deduplicated.append(article)

    log.info(
        "Deduplication complete: before=%d after=%d removed=%d",
        len(articles),
        len(deduplicated),
        len(articles) - len(deduplicated),
    )
    return deduplicated


def _extract_domain(url_or_source: str) -> str:
    if url_or_source.startswith("http"):
        host = urlparse(url_or_source).hostname
        return (host or "").lower()
    return url_or_source.lower()


def score_trust(source: str | None, url: str | None) -> float:
    """Return a trust weight for an article based on where it was published."""

    if not source and not url:
        return 0.5

    domain = _extract_domain(url or source or "")
    if any(trusted in domain for trusted in TRUSTED_DOMAINS):
        return 1.0
    return 0.8
