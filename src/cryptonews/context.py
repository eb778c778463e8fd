"""Per-request logging context passed explicitly through the pipeline."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, MutableMapping

__all__ = ["RequestContext", "RequestLoggerAdapter", "bind_logger", "configure_logging"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Identifies a single invocation of the enrichment pipeline."""

    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def new(cls, request_id: str | None = None) -> "RequestContext":
        """Return a context using ``request_id`` or a freshly generated one."""

        cleaned = (request_id or "").strip()
        return cls(request_id=cleaned) if cleaned else cls()


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefix log messages with the request id and attach it as ``extra``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        request_id = self.extra.get("request_id", "unknown") if self.extra else "unknown"
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("request_id", request_id)
        kwargs["extra"] = extra
        return f"[{request_id}] {msg}", kwargs


def bind_logger(logger: logging.Logger, ctx: RequestContext | None) -> logging.LoggerAdapter:
    """Return ``logger`` wrapped so every record carries ``ctx``'s request id."""

    request_id = ctx.request_id if ctx is not None else "unknown"
    return RequestLoggerAdapter(logger, {"request_id": request_id})


def configure_logging(debug: bool = False) -> None:
    """Configure root logging for scripts and the ASGI entrypoint."""

    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)
