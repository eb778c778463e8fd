"""Tiered sentiment classification for crypto news articles.

Classification runs through an ordered list of strategies. Remote tiers may
fail for any reason (transport errors, timeouts, unparseable replies); the
cascade then moves on to the next tier. The final tier is the local keyword
scorer, which cannot fail, so :meth:`SentimentCascade.classify` always
returns a :class:`~cryptonews.models.SentimentResult`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, Sequence

import requests
from openai import OpenAI

from cryptonews.config import Settings
from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import SentimentTierError
from cryptonews.models import SENTIMENT_LABELS, SentimentLabel, SentimentResult

__all__ = [
    "EMOJI_BY_SENTIMENT",
    "InferenceEndpointClassifier",
    "KeywordSentimentClassifier",
    "LLMSentimentClassifier",
    "NEGATIVE_TOKENS",
    "POSITIVE_TOKENS",
    "SentimentCascade",
    "SentimentStrategy",
    "build_cascade",
    "clamp_score",
    "finalize_sentiment",
    "label_from_score",
]

logger = logging.getLogger(__name__)

NEGATIVE_TOKENS = (
    "hack",
    "exploit",
    "lawsuit",
    "ban",
    "investigation",
    "vulnerability",
    "dip",
    "crash",
    "fall",
    "decline",
    "loss",
)
POSITIVE_TOKENS = (
    "approval",
    "investment",
    "surge",
    "record",
    "all-time high",
    "partnership",
    "funding",
    "gain",
    "rise",
    "moon",
    "bull",
)

POSITIVE_THRESHOLD = 0.65
NEGATIVE_THRESHOLD = 0.35
KEYWORD_STEP = 0.05

EMOJI_BY_SENTIMENT: dict[SentimentLabel, str] = {
    "Positive": "\U0001F402",
    "Negative": "\U0001F43B",
    "Neutral": "⚪",
}

SYSTEM_PROMPT = """You are a sentiment classifier for cryptocurrency news. Analyze the provided article title and snippet, then respond with ONLY a JSON object (no markdown, no extra text) with these fields:
{
  "sentiment": "Positive" or "Negative" or "Neutral",
  "score": a number between 0.0 and 1.0
}

Guidelines:
- Positive: news about adoption, records, partnerships, institutional interest, price surges, regulatory approval
- Negative: news about hacks, crashes, investigations, bans, vulnerabilities, lawsuits
- Neutral: factual news without clear sentiment"""


def clamp_score(score: float) -> float:
    return min(1.0, max(0.0, float(score)))


def label_from_score(score: float) -> SentimentLabel:
    """Derive a label from a score using the fixed thresholds."""

    if score >= POSITIVE_THRESHOLD:
        return "Positive"
    if score <= NEGATIVE_THRESHOLD:
        return "Negative"
    return "Neutral"


def _coerce_label(label: Any) -> SentimentLabel | None:
    if not isinstance(label, str):
        return None
    candidate = label.strip().capitalize()
    for known in SENTIMENT_LABELS:
        if candidate == known:
            return known
    return None


def finalize_sentiment(label: Any, score: float) -> SentimentResult:
    """Clamp ``score`` and settle on a label and emoji.

    An explicit, recognised ``label`` is kept as is. Without one the label is
    derived from the clamped score.
    """

    final_score = clamp_score(score)
    sentiment = _coerce_label(label) or label_from_score(final_score)
    return SentimentResult(sentiment=sentiment, score=final_score, emoji=EMOJI_BY_SENTIMENT[sentiment])


class SentimentStrategy(Protocol):
    """A single tier of the cascade. ``classify`` raises on failure."""

    name: str

    def classify(self, title: str, snippet: str) -> SentimentResult:
        ...


def _strip_fenced_block(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _parse_score(value: Any, *, tier: str) -> float:
    if isinstance(value, bool):
        raise SentimentTierError(f"Score is not numeric: {value!r}", tier=tier)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise SentimentTierError(f"Score is not numeric: {value!r}", tier=tier) from exc


class LLMSentimentClassifier:
    """Primary tier: ask a chat completion model for ``{sentiment, score}``."""

    name = "llm"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        client: OpenAI | None = None,
        api_key: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.model = model
        self._client = client
        self._api_key = api_key
        self._timeout = timeout

    def _get_client(self) -> OpenAI:
        if self._client is None:
            # Without an explicit key the client falls back to OPENAI_API_KEY.
            self._client = OpenAI(api_key=self._api_key) if self._api_key else OpenAI()
        return self._client

    def build_messages(self, title: str, snippet: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Title: {title}\nDescription: {snippet}"},
        ]

    def parse_reply(self, content: str) -> SentimentResult:
        """Turn the model's reply into a result, raising on anything unusable."""

        try:
            payload = json.loads(_strip_fenced_block(content or ""))
        except json.JSONDecodeError as exc:
            raise SentimentTierError(f"Model reply is not JSON: {content!r}", tier=self.name) from exc

        if not isinstance(payload, dict) or "score" not in payload:
            raise SentimentTierError(f"Model reply has no score: {content!r}", tier=self.name)

        return finalize_sentiment(payload.get("sentiment"), _parse_score(payload["score"], tier=self.name))

    def classify(self, title: str, snippet: str) -> SentimentResult:
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=self.build_messages(title, snippet),
            temperature=0,
            max_tokens=100,
            timeout=self._timeout,
        )
        if not response.choices:
            raise SentimentTierError("Model returned no choices", tier=self.name)
        return self.parse_reply(response.choices[0].message.content or "")


class InferenceEndpointClassifier:
    """Secondary tier: a hosted binary classifier returning ``[{label, score}]``."""

    name = "endpoint"

    def __init__(
        self,
        endpoint_url: str,
        *,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint_url = endpoint_url
        self._session = session or requests.Session()
        self._timeout = timeout
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def classify(self, title: str, snippet: str) -> SentimentResult:
        response = self._session.post(
            self.endpoint_url,
            json={"inputs": [f"{title} {snippet}"]},
            timeout=self._timeout,
        )
        response.raise_for_status()
        body = response.json()

        first: Any = body[0] if isinstance(body, list) and body else {}
        # Pipelines fed a list of inputs answer with one list per input.
        if isinstance(first, list):
            first = first[0] if first else {}
        if not isinstance(first, dict):
            raise SentimentTierError(f"Unexpected endpoint response: {body!r}", tier=self.name)

        raw_label = str(first.get("label") or "NEUTRAL").upper()
        raw_score = first.get("score")
        score = _parse_score(0.5 if raw_score is None else raw_score, tier=self.name)

        if raw_label == "POSITIVE":
            label: SentimentLabel = "Positive"
        elif raw_label == "NEGATIVE":
            label = "Negative"
        else:
            label = "Neutral"
        return finalize_sentiment(label, score)


class KeywordSentimentClassifier:
    """Fallback tier: deterministic keyword counting. Never raises."""

    name = "keyword"

    def __init__(
        self,
        positive_tokens: Sequence[str] = POSITIVE_TOKENS,
        negative_tokens: Sequence[str] = NEGATIVE_TOKENS,
    ) -> None:
        self.positive_tokens = tuple(token.lower() for token in positive_tokens)
        self.negative_tokens = tuple(token.lower() for token in negative_tokens)

    def classify(self, title: str, snippet: str) -> SentimentResult:
        text = f"{title or ''} {snippet or ''}".lower()
        negative_count = sum(1 for token in self.negative_tokens if token in text)
        positive_count = sum(1 for token in self.positive_tokens if token in text)

        if positive_count > negative_count:
            return finalize_sentiment("Positive", POSITIVE_THRESHOLD + KEYWORD_STEP * positive_count)
        if negative_count > positive_count:
            return finalize_sentiment("Negative", NEGATIVE_THRESHOLD - KEYWORD_STEP * negative_count)
        return finalize_sentiment("Neutral", 0.5)


class SentimentCascade:
    """Try each remote tier in order, ending with the keyword fallback."""

    def __init__(
        self,
        tiers: Sequence[SentimentStrategy] = (),
        fallback: KeywordSentimentClassifier | None = None,
    ) -> None:
        self._tiers = tuple(tiers)
        self._fallback = fallback or KeywordSentimentClassifier()

    @property
    def strategies(self) -> tuple[SentimentStrategy, ...]:
        return (*self._tiers, self._fallback)

    def classify(self, title: str, snippet: str, ctx: RequestContext | None = None) -> SentimentResult:
        log = bind_logger(logger, ctx)

        for tier in self._tiers:
            try:
                return tier.classify(title, snippet)
            except Exception as exc:  # noqa: BLE001 - any tier failure falls through
                log.warning("%s sentiment analysis failed, trying next tier: %s", tier.name, exc)

        return self._fallback.classify(title, snippet)


def build_cascade(settings: Settings) -> SentimentCascade:
    """Assemble the cascade described by ``settings``."""

    tiers: list[SentimentStrategy] = [
        LLMSentimentClassifier(
            settings.sentiment_model,
            api_key=settings.openai_api_key,
            timeout=settings.classifier_timeout,
        )
    ]
    if settings.sentiment_endpoint_url:
        tiers.append(
            InferenceEndpointClassifier(
                settings.sentiment_endpoint_url,
                token=settings.sentiment_endpoint_token,
                timeout=settings.classifier_timeout,
            )
        )
    return SentimentCascade(tiers, KeywordSentimentClassifier())
