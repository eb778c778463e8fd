"""NewsData.io search client and raw article normalisation."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any, List, Mapping
from urllib.parse import urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup
from fastapi.concurrency import run_in_threadpool

from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import UpstreamFetchError
from cryptonews.models import NormalizedArticle
from cryptonews.services.retry import RetryPolicy

__all__ = [
    "NEWSDATA_URL",
    "NewsDataClient",
    "canonicalize_url",
    "normalize_article",
    "parse_tickers",
    "redact_secrets",
    "strip_html",
]

logger = logging.getLogger(__name__)

NEWSDATA_URL = "https://newsdata.io/api/1/news"
SOURCE_NAME = "NewsData API"

DEFAULT_HEADERS = {
    "User-Agent": "crypto-news-enricher/1.0",
    "Accept": "application/json",
}

TICKER_RE = re.compile(
    r"\b(BTC|ETH|SOL|DOGE|XRP|ADA|USDT|USDC|BNB|XLM|LINK|SHIB|AVAX|MATIC)\b",
    re.IGNORECASE,
)
SECRET_PARAM_RE = re.compile(r"(?i)\b(apikey|api_key|token|key)=[^&\s'\"]+")


class NewsDataClient:
    """Fetch articles from the NewsData.io ``/news`` endpoint."""

    def __init__(
        self,
        api_key: str,
        retry_policy: RetryPolicy,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        page_size: int = 10,
        base_url: str = NEWSDATA_URL,
    ) -> None:
        self._api_key = api_key
        self._retry_policy = retry_policy
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)
        self._timeout = timeout
        self._page_size = page_size
        self._base_url = base_url

    async def fetch(
        self,
        query: str,
        language: str,
        category: str,
        *,
        size: int | None = None,
        ctx: RequestContext | None = None,
    ) -> List[dict[str, Any]]:
        """Return raw article records for the query, retrying transient failures."""

        log = bind_logger(logger, ctx)
        params = {
            "apikey": self._api_key,
            "q": query,
            "language": language,
            "category": category,
            "size": size or self._page_size,
        }

        async def _attempt() -> List[dict[str, Any]]:
            return await run_in_threadpool(self._fetch_once, params)

        try:
            articles = await self._retry_policy.run(_attempt, ctx=ctx)
        except UpstreamFetchError:
            raise
        except (requests.RequestException, ValueError) as exc:
            log.error("Failed to fetch crypto news: %s", exc)
            raise UpstreamFetchError(f"{SOURCE_NAME} error: {exc}", source=SOURCE_NAME) from exc

        log.info("Fetched crypto news: %d article(s)", len(articles))
        return articles

    def _fetch_once(self, params: Mapping[str, Any]) -> List[dict[str, Any]]:
        try:
            response = self._session.get(self._base_url, params=dict(params), timeout=self._timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise _sanitized_http_error(exc) from None
        except requests.RequestException as exc:
            raise type(exc)(redact_secrets(str(exc))) from None

        payload = response.json()

        if not isinstance(payload, dict):
            return []

        if payload.get("status") == "error":
            results = payload.get("results")
            message = results.get("message") if isinstance(results, dict) else None
            raise UpstreamFetchError(
                f"{SOURCE_NAME} error: {message or 'unknown'}", source=SOURCE_NAME
            )

        results = payload.get("results")
        if not isinstance(results, list):
            return []
        return [item for item in results if isinstance(item, dict)]


def redact_secrets(text: str) -> str:
    """Mask credential query parameters (``apikey=...``) embedded in ``text``."""

    return SECRET_PARAM_RE.sub(r"\1=REDACTED", text)


def _sanitized_http_error(error: requests.HTTPError) -> requests.HTTPError:
    # requests puts the full request URL, API key included, in the message.
    response = error.response
    if response is None:
        return requests.HTTPError(redact_secrets(str(error)))

    kind = "Client" if response.status_code < 500 else "Server"
    message = f"{response.status_code} {kind} Error"
    if response.reason:
        message = f"{message}: {response.reason}"
    return requests.HTTPError(message, response=response)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def strip_html(text: str) -> str:
    """Return ``text`` with markup removed and whitespace collapsed."""

    if not text:
        return ""
    if "<" not in text:
        return " ".join(text.split())
    soup = BeautifulSoup(text, "lxml")
    return soup.get_text(" ", strip=True)


def canonicalize_url(url: str) -> str:
    """Trim ``url``, lowercase scheme and host, and drop any fragment."""

    cleaned = url.strip()
    if not cleaned:
        return ""

    parts = urlsplit(cleaned)
    if not parts.scheme or not parts.netloc:
        return cleaned

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def parse_tickers(article: Mapping[str, Any]) -> List[str]:
    """Collect declared tickers plus well-known symbols mentioned in the text."""

    tickers: dict[str, None] = {}

    declared = article.get("tickers")
    if isinstance(declared, str):
        declared = declared.split(",")
    if isinstance(declared, (list, tuple)):
        for ticker in declared:
            symbol = _text(ticker).strip().upper()
            if symbol:
                tickers[symbol] = None

    haystack = f"{_text(article.get('title'))} {_text(article.get('description'))}"
    for match in TICKER_RE.findall(haystack):
        tickers[match.upper()] = None

    return list(tickers)


def normalize_article(article: Mapping[str, Any]) -> NormalizedArticle:
    """Parse an untrusted search record into a :class:`NormalizedArticle`."""

    source_id = _text(article.get("source_id")).strip() or "unknown"
    pub_date = _text(article.get("pubDate") or article.get("pubdate")).strip()
    image_url = _text(article.get("image_url") or article.get("image")).strip()

    return NormalizedArticle(
        title=_text(article.get("title")),
        url=canonicalize_url(_text(article.get("link") or article.get("url"))),
        source_id=source_id,
        source_name=_text(article.get("source_name")).strip() or source_id,
        pub_date=pub_date or datetime.now(UTC).isoformat(),
        description=strip_html(_text(article.get("description") or article.get("content"))),
        image_url=image_url or None,
        tickers=parse_tickers(article),
    )
