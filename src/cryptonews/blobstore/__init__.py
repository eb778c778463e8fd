"""Local JSON blob store used as the cache's key-value backend."""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Union

# ``cryptonews/blobstore`` is part of the package so the default storage lives
# alongside the code when no ``CACHE_DIR`` is configured.
_PACKAGE_DIR = Path(__file__).resolve().parent

#: Name of the directory under :mod:`cryptonews.blobstore` that contains the data.
DEFAULT_BLOB_SUBDIR = "data"

#: Default location where tables are stored.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / DEFAULT_BLOB_SUBDIR

_Pathish = Union[str, Path]

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    When ``None`` is provided, :data:`DEFAULT_BLOB_ROOT` is returned. The path
    is not created on disk; use :func:`ensure_blob_root` for that.
    """

    if blob_root is None:
        return DEFAULT_BLOB_ROOT
    if isinstance(blob_root, Path):
        return blob_root
    return Path(blob_root)


def ensure_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Ensure the blob root exists and return it as a :class:`Path`."""

    root = resolve_blob_root(blob_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


def _safe_name(value: str) -> str:
    cleaned = _SAFE_NAME_RE.sub("-", value.strip()).strip("-.")
    if not cleaned:
        raise ValueError(f"Invalid blob store name: {value!r}")
    return cleaned


class JsonBlobStore:
    """Key-value table persisted as one JSON document per key.

    Records live under ``<blob_root>/<table>/<key>.json``. Writes replace the
    previous document for the key. There is no native expiry; readers decide
    whether a record is still valid.
    """

    def __init__(self, table: str, blob_root: _Pathish | None = None) -> None:
        self.table = _safe_name(table)
        self._root = resolve_blob_root(blob_root)

    @property
    def table_path(self) -> Path:
        return self._root / self.table

    def path_for(self, key: str) -> Path:
        """Return the file that holds ``key``."""

        return self.table_path / f"{_safe_name(key)}.json"

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the record stored for ``key`` or ``None`` when absent.

        Unreadable or malformed documents raise; callers decide how to treat
        them.
        """

        path = self.path_for(key)
        if not path.exists():
            return None

        with path.open("r", encoding="utf-8") as file:
            payload = json.load(file)

        if not isinstance(payload, dict):
            raise ValueError(f"Blob {path} does not contain a JSON object")
        return payload

    def put(self, key: str, record: dict[str, Any]) -> None:
        """Persist ``record`` under ``key``, overwriting any previous value.

        Each writer stages its document in its own temporary file and swaps it
        into place, so concurrent writers for one key never collide and the
        last replace wins.
        """

        table_path = ensure_blob_root(self.table_path)
        path = self.path_for(key)

        fd, tmp_path = tempfile.mkstemp(dir=table_path, prefix=f"{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(record, file, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


__all__ = [
    "DEFAULT_BLOB_ROOT",
    "DEFAULT_BLOB_SUBDIR",
    "JsonBlobStore",
    "ensure_blob_root",
    "resolve_blob_root",
]
