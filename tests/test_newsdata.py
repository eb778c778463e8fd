"""Tests for the NewsData client and article normalisation."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import pytest
import requests

from cryptonews.errors import RetryExhaustedError, UpstreamFetchError
from cryptonews.services.newsdata import (
    NewsDataClient,
    canonicalize_url,
    normalize_article,
    parse_tickers,
    redact_secrets,
    strip_html,
)
from cryptonews.services.retry import RetryPolicy


def test_normalize_article_applies_defaults() -> None:
    """An empty record still yields a complete article."""

    article = normalize_article({})

    assert article.title == ""
    assert article.url == ""
    assert article.source_id == "unknown"
    assert article.source_name == "unknown"
    assert article.description == ""
    assert article.image_url is None
    assert article.tickers == []
    assert datetime.fromisoformat(article.pub_date).tzinfo is not None


def test_normalize_article_maps_newsdata_fields() -> None:
    """NewsData fields are cleaned and mapped onto the article."""

    raw = {
        "title": "Solana partnership lifts SOL",
        "link": " https://Decrypt.co/news/solana#comments ",
        "source_id": "decrypt",
        "pubDate": "2024-05-01 09:30:00",
        "description": "<p>The deal boosts <b>SOL</b> and eth.</p>",
        "image_url": "https://decrypt.co/image.png",
        "tickers": ["sol"],
    }

    article = normalize_article(raw)

    assert article.url == "https://decrypt.co/news/solana"
    assert article.source_name == "decrypt"
    assert article.pub_date == "2024-05-01 09:30:00"
    assert article.description == "The deal boosts SOL and eth."
    assert article.image_url == "https://decrypt.co/image.png"
    assert article.tickers == ["SOL", "ETH"]


def test_normalize_article_falls_back_to_alternate_keys() -> None:
    """Alternate field names from other feeds are understood."""

    article = normalize_article(
        {"url": "https://example.com/a", "content": "Body", "pubdate": "2024-01-01", "source_name": "Example"}
    )

    assert article.url == "https://example.com/a"
    assert article.description == "Body"
    assert article.pub_date == "2024-01-01"
    assert article.source_name == "Example"


def test_parse_tickers_matches_whole_words_only() -> None:
    """Declared tickers come first and symbols inside longer words are ignored."""

    raw = {
        "title": "BTC and doge rally while Solana and Chainlink lag",
        "description": "LINK holders watch ETH; btc dominance grows",
        "tickers": "xrp, ",
    }

    assert parse_tickers(raw) == ["XRP", "BTC", "DOGE", "LINK", "ETH"]


def test_canonicalize_url_leaves_relative_values_alone() -> None:
    """Only absolute URLs have their scheme and host normalised."""

    assert canonicalize_url("   ") == ""
    assert canonicalize_url(" /relative/Path ") == "/relative/Path"
    assert canonicalize_url("HTTP://Example.COM/A?b=1") == "http://example.com/A?b=1"


def test_strip_html() -> None:
    """Markup is removed and whitespace collapsed."""

    assert strip_html("") == ""
    assert strip_html("plain   text\nhere") == "plain text here"
    assert strip_html("<div>Bitcoin <em>rallies</em></div>") == "Bitcoin rallies"


class FakeResponse:
    def __init__(self, payload: object, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            response = requests.Response()
            response.status_code = self.status_code
            raise requests.HTTPError(f"{self.status_code} Client Error", response=response)

    def json(self) -> object:
        return self.payload


class FakeSession:
    def __init__(self, outcomes: list[object]) -> None:
        self.headers: dict[str, str] = {}
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    def get(self, url: str, params: dict, timeout: float) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(outcomes: list[object], max_attempts: int = 3) -> tuple[NewsDataClient, FakeSession]:
    async def no_sleep(delay: float) -> None:
        return None

    session = FakeSession(outcomes)
    policy = RetryPolicy(max_attempts, 0.01, source="NewsData API", sleep=no_sleep)
    return NewsDataClient("api-key", policy, session=session, timeout=4.0, page_size=7), session


def test_fetch_returns_results_and_sends_query() -> None:
    """The client sends the query parameters and returns only record dicts."""

    client, session = _client([FakeResponse({"status": "success", "results": [{"title": "A"}, "junk"]})])

    articles = asyncio.run(client.fetch("cryptocurrency", "en", "business"))

    assert articles == [{"title": "A"}]
    assert session.calls[0]["params"] == {
        "apikey": "api-key",
        "q": "cryptocurrency",
        "language": "en",
        "category": "business",
        "size": 7,
    }
    assert session.calls[0]["timeout"] == 4.0
    assert session.headers["User-Agent"] == "crypto-news-enricher/1.0"


def test_fetch_treats_missing_results_as_empty() -> None:
    """A payload without results yields an empty list."""

    client, _ = _client([FakeResponse({"status": "success"})])

    assert asyncio.run(client.fetch("q", "en", "business")) == []


def test_fetch_retries_transient_failures() -> None:
    """Timeouts and rate limits are retried until the call succeeds."""

    client, session = _client(
        [
            requests.Timeout("Read timed out"),
            FakeResponse({}, status_code=429),
            FakeResponse({"results": [{"title": "A"}]}),
        ]
    )

    assert asyncio.run(client.fetch("q", "en", "business")) == [{"title": "A"}]
    assert len(session.calls) == 3


def test_fetch_raises_when_retries_are_exhausted() -> None:
    """Persistent transient failures end in :class:`RetryExhaustedError`."""

    client, _ = _client([requests.Timeout("timed out")] * 3)

    with pytest.raises(RetryExhaustedError):
        asyncio.run(client.fetch("q", "en", "business"))


def test_fetch_wraps_non_retryable_http_errors() -> None:
    """Client errors fail at once and are wrapped as upstream errors."""

    client, session = _client([FakeResponse({}, status_code=401)])

    with pytest.raises(UpstreamFetchError) as excinfo:
        asyncio.run(client.fetch("q", "en", "business"))

    assert len(session.calls) == 1
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)
    assert "NewsData API" in str(excinfo.value)


def test_fetch_surfaces_provider_error_payloads() -> None:
    """Error payloads from the provider are raised with their message."""

    client, _ = _client([FakeResponse({"status": "error", "results": {"message": "Invalid query"}})])

    with pytest.raises(UpstreamFetchError, match="Invalid query"):
        asyncio.run(client.fetch("q", "en", "business"))


SECRET_KEY = "pub_SECRET4291timeout"


def _http_response(status_code: int, reason: str) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    response.url = f"https://newsdata.io/api/1/news?apikey={SECRET_KEY}&q=cryptocurrency&language=en"
    return response


def _keyed_client(outcomes: list[object]) -> tuple[NewsDataClient, FakeSession]:
    async def no_sleep(delay: float) -> None:
        return None

    session = FakeSession(outcomes)
    policy = RetryPolicy(5, 0.01, source="NewsData API", sleep=no_sleep)
    return NewsDataClient(SECRET_KEY, policy, session=session), session


def test_client_error_is_judged_by_status_not_url(caplog) -> None:
    """A 401 fails after one call even when the URL contains rate-limit or timeout text."""

    client, session = _keyed_client([_http_response(401, "Unauthorized")] * 5)

    with caplog.at_level(logging.DEBUG):
        with pytest.raises(UpstreamFetchError) as excinfo:
            asyncio.run(client.fetch("q", "en", "business"))

    assert len(session.calls) == 1
    assert not isinstance(excinfo.value, RetryExhaustedError)
    assert "401 Client Error: Unauthorized" in str(excinfo.value)
    assert SECRET_KEY not in str(excinfo.value)
    assert SECRET_KEY not in str(excinfo.value.__cause__)
    assert SECRET_KEY not in caplog.text


def test_real_rate_limit_response_is_retried(caplog) -> None:
    """A genuine 429 is retried and its URL never reaches the logs."""

    client, session = _keyed_client(
        [_http_response(429, "Too Many Requests"), FakeResponse({"results": [{"title": "A"}]})]
    )

    with caplog.at_level(logging.DEBUG):
        assert asyncio.run(client.fetch("q", "en", "business")) == [{"title": "A"}]

    assert len(session.calls) == 2
    assert "429 Client Error: Too Many Requests" in caplog.text
    assert SECRET_KEY not in caplog.text


def test_transport_errors_are_redacted(caplog) -> None:
    """Connection-level errors quoting the request URL lose the API key."""

    error = requests.ConnectTimeout(
        f"HTTPSConnectionPool(host='newsdata.io'): Max retries exceeded with url: "
        f"/api/1/news?apikey={SECRET_KEY}&q=crypto (connect timeout=10)"
    )
    client, session = _keyed_client([error] * 5)

    with caplog.at_level(logging.DEBUG):
        with pytest.raises(RetryExhaustedError) as excinfo:
            asyncio.run(client.fetch("q", "en", "business"))

    assert len(session.calls) == 5
    assert isinstance(excinfo.value.last_error, requests.ConnectTimeout)
    assert "apikey=REDACTED" in str(excinfo.value)
    assert SECRET_KEY not in str(excinfo.value)
    assert SECRET_KEY not in caplog.text


def test_redact_secrets() -> None:
    """Credential query parameters are masked and the rest of the text kept."""

    text = "for url: https://newsdata.io/api/1/news?apikey=abc123&q=btc&token=xyz"

    assert redact_secrets(text) == "for url: https://newsdata.io/api/1/news?apikey=REDACTED&q=btc&token=REDACTED"
    assert redact_secrets("no secrets here") == "no secrets here"
