"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cryptonews.api.routes import router
from cryptonews.services.pipeline import EnrichmentPipeline


async def _error_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def create_app(pipeline: EnrichmentPipeline | None = None) -> FastAPI:
    """Build the application; ``pipeline`` overrides the environment-built one."""

    app = FastAPI(title="Crypto News Enricher", description="Sentiment-enriched crypto news API")
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(StarletteHTTPException, _error_response)
    app.include_router(router, prefix="/api")

    return app


app = create_app()
