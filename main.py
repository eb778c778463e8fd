"""ASGI entrypoint for running the crypto news API with Uvicorn."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the cryptonews package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cryptonews.api.app import app  # noqa: E402  (import after path setup)
from cryptonews.context import configure_logging  # noqa: E402

configure_logging(debug=bool(os.environ.get("DEBUG")))

__all__ = ("app",)
