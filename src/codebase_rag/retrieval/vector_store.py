"""codebase_rag.retrieval.vector_store

Persisted vector index for the retrieval layer.

The index is a single versioned JSON document holding every
:class:`~codebase_rag.common.schemas.IndexedChunk` of one build. It is written
wholesale by the index pipeline and read wholesale by the query pipeline.

Classes
-------
JsonIndexStore
    Path-bound wrapper exposing :func:`save_store` and :func:`load_store`.

Functions
---------
save_store
    Write indexed chunks to disk as a new store.
load_store
    Read a store from disk, returning ``None`` when it is unusable.

Attributes
----------
STORE_VERSION : str
    Format version written to, and required from, every store file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from codebase_rag.common import IndexedChunk, VectorStore

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"
DEFAULT_STORE_PATH = "data/vectors.json"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def save_store(chunks: Sequence[IndexedChunk], path: str | Path) -> VectorStore:
    """Write ``chunks`` to ``path`` as a new store.

    Parent directories are created as needed. The document is written to a
    temporary sibling file and moved into place, so readers never observe a
    partially written store.

    Parameters
    ----------
    chunks : Sequence[IndexedChunk]
        Indexed chunks, in build order.
    path : str or Path
        Destination file.

    Returns
    -------
    VectorStore
        The store that was written.

    Raises
    ------
    ValueError
        If the chunks do not all share one embedding dimensionality.
    OSError
        If the file cannot be written.
    """
    chunks = tuple(chunks)
    dimensions = {len(c.embedding) for c in chunks}
    if len(dimensions) > 1:
        raise ValueError(
            f"Cannot save store with mixed embedding dimensions: {sorted(dimensions)}"
        )

    store = VectorStore(version=STORE_VERSION, created_at=_utc_now_iso(), chunks=chunks)
    payload = {
        "version": store.version,
        "createdAt": store.created_at,
        "chunks": [c.to_dict() for c in store.chunks],
    }

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Saved %d chunk(s) to %s", len(chunks), path)
    return store


def load_store(path: str | Path) -> Optional[VectorStore]:
    """Read the store at ``path``.

    Parameters
    ----------
    path : str or Path
        Store file.

    Returns
    -------
    VectorStore or None
        The loaded store, or ``None`` when the file is missing or unreadable,
        is not valid JSON, carries a different version, or does not have the
        expected structure.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No vector store at %s", path)
        return None

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read vector store %s: %s", path, e)
        return None
    except json.JSONDecodeError as e:
        logger.warning("Vector store %s is not valid JSON: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Vector store %s is not a JSON object", path)
        return None

    version = data.get("version")
    if version != STORE_VERSION:
        logger.warning(
            "Vector store %s has version %r, expected %r; rebuild the index",
            path, version, STORE_VERSION,
        )
        return None

    try:
        created_at = data["createdAt"]
        if not isinstance(created_at, str):
            raise TypeError("'createdAt' must be a string")
        records = data["chunks"]
        if not isinstance(records, list):
            raise TypeError("'chunks' must be a list")
        chunks = tuple(IndexedChunk.from_dict(record) for record in records)
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        logger.warning("Vector store %s is malformed: %s", path, e)
        return None

    dimensions = {len(c.embedding) for c in chunks}
    if len(dimensions) > 1:
        logger.warning("Vector store %s mixes embedding dimensions %s", path, sorted(dimensions))
        return None

    logger.info("Loaded %d chunk(s) from %s", len(chunks), path)
    return VectorStore(version=version, created_at=created_at, chunks=chunks)


class JsonIndexStore:
    """JSON vector store bound to one file path.

    Parameters
    ----------
    path : str or Path, optional
        Store file. Defaults to ``data/vectors.json``.
    """

    def __init__(self, path: str | Path = DEFAULT_STORE_PATH):
        self.path = Path(path)

    def save(self, chunks: Sequence[IndexedChunk]) -> VectorStore:
        """Write ``chunks`` as a new store, replacing any existing one."""
        return save_store(chunks, self.path)

    def load(self) -> Optional[VectorStore]:
        """Read the store, or return ``None`` if it is unusable."""
        return load_store(self.path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={str(self.path)!r})"


__all__ = [
    "DEFAULT_STORE_PATH",
    "JsonIndexStore",
    "STORE_VERSION",
    "load_store",
    "save_store",
]
