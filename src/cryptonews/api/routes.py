"""API routes exposing the enriched crypto news feed."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, Response

from cryptonews.config import Settings
from cryptonews.context import RequestContext, bind_logger
from cryptonews.errors import InvalidSentimentFilterError, UpstreamFetchError
from cryptonews.models import ErrorResponse, NewsResponse
from cryptonews.services.pipeline import (
    EnrichmentPipeline,
    build_pipeline,
    filter_by_sentiment,
    parse_sentiment_filter,
)

logger = logging.getLogger(__name__)

router = APIRouter()

REQUEST_ID_HEADER = "X-Request-ID"


def get_pipeline(app: FastAPI) -> EnrichmentPipeline:
    """Return the application's pipeline, building it from the environment once."""

    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is None:
        pipeline = build_pipeline(Settings.from_env())
        app.state.pipeline = pipeline
    return pipeline


@router.get(
    "/news",
    response_model=NewsResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def get_crypto_news(
    request: Request,
    response: Response,
    sentiment: str = Query(default="all", description="positive, negative, neutral or all"),
) -> NewsResponse:
    """Return enriched crypto news, optionally filtered by sentiment."""

    ctx = RequestContext.new(request.headers.get(REQUEST_ID_HEADER))
    log = bind_logger(logger, ctx)
    headers = {REQUEST_ID_HEADER: ctx.request_id}

    try:
        sentiment_filter = parse_sentiment_filter(sentiment)
    except InvalidSentimentFilterError as exc:
        raise HTTPException(status_code=400, detail=str(exc), headers=headers) from exc

    log.info("Crypto news request received (sentiment=%s)", sentiment_filter)

    try:
        pipeline = get_pipeline(request.app)
        result = await pipeline.run(ctx)
    except UpstreamFetchError as exc:
        log.exception("News provider unavailable")
        raise HTTPException(status_code=503, detail="News provider unavailable", headers=headers) from exc
    except Exception as exc:  # noqa: BLE001 - never leak internals to clients
        log.exception("Handler error")
        raise HTTPException(status_code=500, detail="Internal server error", headers=headers) from exc

    entry = result.entry
    articles = filter_by_sentiment(entry.articles, sentiment_filter)

    log.info(
        "Response prepared (articles=%d sentiment=%s cache_hit=%s)",
        len(articles),
        sentiment_filter,
        result.cache_hit,
    )

    response.headers.update(headers)
    response.headers["Cache-Control"] = "no-cache"
    return NewsResponse(
        query=pipeline.query,
        fetched_at=datetime.now(UTC),
        cache_until=datetime.fromtimestamp(entry.ttl, UTC),
        articles=articles,
    )
