"""codebase_rag.retrieval.retriever

Coarse vector recall over the persisted index.

This module scores every indexed chunk against a query vector with cosine
similarity and keeps the best candidates for reranking. Scoring is a brute
force matrix product; the index is small enough to hold in memory.

Classes
-------
VectorIndexRetriever
    Embeds a query and retrieves the top candidates from a loaded store.

Functions
---------
cosine_similarity
    Cosine similarity between two vectors.
retrieve
    Rank indexed chunks by similarity to a query vector.

Exceptions
----------
DimensionMismatchError
    Raised when a chunk's vector length differs from the query's.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from codebase_rag.common import IndexedChunk, RetrievalResult, VectorStore
from codebase_rag.retrieval.embedder import BaseEmbedder, embed_query

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 20


class DimensionMismatchError(ValueError):
    """Raised when vectors of different lengths are compared."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of ``a`` and ``b``.

    Returns ``0.0`` when either vector has zero norm.

    Raises
    ------
    DimensionMismatchError
        If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(
            f"Cannot compare vectors of dimension {va.shape[0]} and {vb.shape[0]}"
        )

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def retrieve(
        query_vector: Sequence[float],
        chunks: Sequence[IndexedChunk],
        top_n: int = DEFAULT_TOP_N,
    ) -> list[RetrievalResult]:
    """Rank ``chunks`` by cosine similarity to ``query_vector``.

    Parameters
    ----------
    query_vector : Sequence[float]
        Query embedding.
    chunks : Sequence[IndexedChunk]
        Candidate chunks.
    top_n : int, optional
        Number of results to keep. Defaults to ``20``.

    Returns
    -------
    list[RetrievalResult]
        At most ``top_n`` results, highest score first. Equal scores keep
        their input order.

    Raises
    ------
    DimensionMismatchError
        If any chunk's embedding length differs from the query's.
    """
    query = np.asarray(query_vector, dtype=np.float64)
    dimension = query.shape[0]

    for chunk in chunks:
        if len(chunk.embedding) != dimension:
            raise DimensionMismatchError(
                f"Chunk {chunk.id} ({chunk.location}) has embedding dimension "
                f"{len(chunk.embedding)}, query has {dimension}"
            )

    if top_n <= 0 or not chunks:
        return []

    matrix = np.asarray([chunk.embedding for chunk in chunks], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms == 0.0, 0.0, dots / np.where(norms == 0.0, 1.0, norms))

    order = np.argsort(-scores, kind="stable")[:top_n]
    return [RetrievalResult(chunk=chunks[i], score=float(scores[i])) for i in order]


class VectorIndexRetriever:
    """Vector retriever over a loaded :class:`VectorStore`.

    Parameters
    ----------
    store : VectorStore
        Loaded index.
    embedder : BaseEmbedder
        Embedder used for the query. Must match the one used at build time.
    top_n : int, optional
        Number of candidates returned. Defaults to ``20``.
    """

    def __init__(
            self,
            *,
            store: VectorStore,
            embedder: BaseEmbedder,
            top_n: int = DEFAULT_TOP_N,
        ):
        self.store = store
        self.embedder = embedder
        self.top_n = int(top_n)

    def retrieve(self, query: str) -> list[RetrievalResult]:
        """Embed ``query`` and return the top candidates."""
        query_vector = embed_query(query, self.embedder)
        results = retrieve(query_vector, self.store.chunks, self.top_n)
        logger.debug("Retrieved %d candidate(s) for query", len(results))
        return results


__all__ = [
    "DEFAULT_TOP_N",
    "DimensionMismatchError",
    "VectorIndexRetriever",
    "cosine_similarity",
    "retrieve",
]
