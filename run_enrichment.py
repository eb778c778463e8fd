"""Convenience script for running the enrichment pipeline once, locally."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the cryptonews package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cryptonews.config import Settings  # noqa: E402  (import after path setup)
from cryptonews.context import RequestContext, configure_logging  # noqa: E402
from cryptonews.errors import ConfigurationError, InvalidSentimentFilterError, UpstreamFetchError  # noqa: E402
from cryptonews.services.pipeline import (  # noqa: E402
    build_pipeline,
    filter_by_sentiment,
    parse_sentiment_filter,
)


def main(argv: list[str] | None = None) -> int:
    """Run the pipeline and print the (filtered) articles as JSON."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sentiment", default="all", help="positive, negative, neutral or all")
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        sentiment = parse_sentiment_filter(args.sentiment)
    except (ConfigurationError, InvalidSentimentFilterError) as exc:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
        logging.error("%s", exc)
        return 1

    configure_logging(debug=settings.debug)

    pipeline = build_pipeline(settings)
    ctx = RequestContext.new()

    try:
        result = asyncio.run(pipeline.run(ctx))
    except UpstreamFetchError as exc:
        logging.error("Could not fetch news: %s", exc)
        return 1

    articles = filter_by_sentiment(result.entry.articles, sentiment)
    payload = [article.model_dump(mode="json", by_alias=True) for article in articles]
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    logging.info(
        "Served %d article(s) (%s)", len(articles), "cache hit" if result.cache_hit else "fresh"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
