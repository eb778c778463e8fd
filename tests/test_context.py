"""Tests for request-scoped logging in :mod:`cryptonews.context`."""

from __future__ import annotations

import logging

from cryptonews.context import RequestContext, bind_logger


def test_new_context_keeps_supplied_id() -> None:
    """A supplied request id is kept after trimming."""

    assert RequestContext.new(" abc ").request_id == "abc"


def test_new_context_generates_id_when_blank() -> None:
    """A fresh id is generated when none is supplied."""

    first = RequestContext.new("")
    second = RequestContext.new(None)

    assert first.request_id
    assert first.request_id != second.request_id


def test_bound_logger_prefixes_request_id(caplog) -> None:
    """Bound loggers prefix messages and attach the request id."""

    logger = logging.getLogger("cryptonews.tests")

    with caplog.at_level(logging.INFO, logger="cryptonews.tests"):
        bind_logger(logger, RequestContext.new("req-42")).info("Fetched %d article(s)", 3)
        bind_logger(logger, None).info("No context")

    assert caplog.records[0].getMessage() == "[req-42] Fetched 3 article(s)"
    assert caplog.records[0].request_id == "req-42"
    assert caplog.records[1].getMessage() == "[unknown] No context"
