"""Runtime settings for the crypto news enrichment service."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field, ValidationError

from cryptonews.blobstore import DEFAULT_BLOB_ROOT
from cryptonews.errors import ConfigurationError

__all__ = ["DEFAULT_CACHE_TABLE", "DEFAULT_SENTIMENT_MODEL", "ENV_FIELDS", "Settings"]

DEFAULT_CACHE_TABLE = "crypto-news-cache"
DEFAULT_SENTIMENT_MODEL = "gpt-4o-mini"

#: Mapping of environment variable names to :class:`Settings` field names.
ENV_FIELDS: dict[str, str] = {
    "NEWSDATA_API_KEY": "newsdata_api_key",
    "CACHE_TABLE": "cache_table",
    "CACHE_DIR": "cache_dir",
    "CACHE_TTL": "cache_ttl",
    "MAX_RETRIES": "max_retries",
    "INITIAL_BACKOFF_MS": "initial_backoff_ms",
    "SENTIMENT_MODEL_ID": "sentiment_model",
    "OPENAI_API_KEY": "openai_api_key",
    "SENTIMENT_ENDPOINT_URL": "sentiment_endpoint_url",
    "SENTIMENT_ENDPOINT_TOKEN": "sentiment_endpoint_token",
    "NEWSDATA_PAGE_SIZE": "page_size",
    "SEARCH_TIMEOUT_S": "search_timeout",
    "CLASSIFIER_TIMEOUT_S": "classifier_timeout",
    "CACHE_TIMEOUT_S": "cache_timeout",
    "DEBUG": "debug",
}

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Validated configuration handed to the pipeline factory."""

    newsdata_api_key: str = Field(..., min_length=1, repr=False, description="NewsData.io API key")
    cache_table: str = Field(
        default=DEFAULT_CACHE_TABLE,
        min_length=1,
        description="Name of the key-value table holding cache entries",
    )
    cache_dir: Path = Field(
        default=DEFAULT_BLOB_ROOT,
        description="Directory under which the JSON blob store keeps its tables",
    )
    cache_ttl: int = Field(default=900, ge=1, description="Cache entry lifetime in seconds")
    max_retries: int = Field(default=5, ge=1, description="Maximum attempts for the search call")
    initial_backoff_ms: int = Field(
        default=1000, ge=0, description="Base delay for exponential backoff in milliseconds"
    )
    sentiment_model: str = Field(
        default=DEFAULT_SENTIMENT_MODEL, min_length=1, description="Model used by the LLM tier"
    )
    openai_api_key: str | None = Field(default=None, repr=False)
    sentiment_endpoint_url: str | None = Field(
        default=None,
        description=(
            "Optional inference endpoint returning ``[{label, score}]``. "
            "The secondary sentiment tier is skipped when omitted."
        ),
    )
    sentiment_endpoint_token: str | None = Field(default=None, repr=False)
    page_size: int = Field(default=10, ge=1, le=50, description="Result size hint for the search API")
    search_timeout: float = Field(default=10.0, gt=0)
    classifier_timeout: float = Field(default=10.0, gt=0)
    cache_timeout: float = Field(default=5.0, gt=0)
    debug: bool = False

    @property
    def initial_backoff_seconds(self) -> float:
        """Return the configured initial backoff expressed in seconds."""

        return self.initial_backoff_ms / 1000.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Blank values are treated as unset so that defaults apply. ``DEBUG`` is
        considered enabled for any of ``1``, ``true``, ``yes`` or ``on``.
        """

        env = os.environ if environ is None else environ

        if not (env.get("NEWSDATA_API_KEY") or "").strip():
            raise ConfigurationError("NEWSDATA_API_KEY not set")

        values: dict[str, object] = {}
        for variable, field_name in ENV_FIELDS.items():
            raw = env.get(variable)
            if raw is None or not raw.strip():
                continue
            values[field_name] = raw.strip()

        if "debug" in values:
            values["debug"] = str(values["debug"]).lower() in _TRUTHY

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Configuration is invalid:\n{exc}") from exc
