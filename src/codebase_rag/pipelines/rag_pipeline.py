"""codebase_rag.pipelines.rag_pipeline

End-to-end Retrieval-Augmented Generation (RAG) pipeline orchestration.

This module defines the :class:`RAGPipeline`, which answers a question
against a built index: load the store, embed the question, recall the
nearest chunks, rerank them with the scoring LLM and generate a grounded
answer.

Classes
-------
RAGPipeline
    Orchestrates store load -> recall -> rerank -> generation.

Functions
---------
format_citation
    Render a reranked chunk as a one-line citation.

Exceptions
----------
IndexNotFoundError
    Raised when no usable index exists at query time.
"""

from __future__ import annotations

from typing import Any

from codebase_rag.common import RerankResult, VectorStore
from codebase_rag.generation.generator import AnswerGenerator
from codebase_rag.retrieval.embedder import BaseEmbedder
from codebase_rag.retrieval.reranker import DEFAULT_TOP_K, BaseReranker
from codebase_rag.retrieval.retriever import DEFAULT_TOP_N, VectorIndexRetriever
from codebase_rag.retrieval.vector_store import JsonIndexStore


class IndexNotFoundError(FileNotFoundError):
    """Raised when the index file is missing, outdated or malformed."""


def format_citation(result: RerankResult) -> str:
    """Render ``result`` as ``path:start-end label (score n/10)``.

    Examples
    --------
    >>> format_citation(result)  # doctest: +SKIP
    'src/auth.py:10-42 login (score 9.0/10)'
    """
    chunk = result.chunk
    return f"{chunk.location} {chunk.label} (score {result.relevance_score:g}/10)"


class RAGPipeline:
    """Question answering over a codebase index.

    The pipeline holds no per-query state and is safe to reuse across
    requests. The store is read on every query so a rebuilt index is picked
    up without a restart.

    Parameters
    ----------
    store : JsonIndexStore
        Index location.
    embedder : BaseEmbedder
        Query embedder. Must match the one used to build the index.
    reranker : BaseReranker
        Second-stage reranker.
    generator : AnswerGenerator
        Answer synthesiser.
    top_n : int, optional
        Candidates kept by vector recall. Defaults to ``20``.
    top_k : int, optional
        Chunks kept after reranking. Defaults to ``5``.
    """

    def __init__(
            self,
            store: JsonIndexStore,
            embedder: BaseEmbedder,
            reranker: BaseReranker,
            generator: AnswerGenerator,
            *,
            top_n: int = DEFAULT_TOP_N,
            top_k: int = DEFAULT_TOP_K,
        ):
        self.store = store
        self.embedder = embedder
        self.reranker = reranker
        self.generator = generator
        self.top_n = int(top_n)
        self.top_k = int(top_k)

    def load_index(self) -> VectorStore:
        """Load the index.

        Raises
        ------
        IndexNotFoundError
            If the store is missing, has another version, or is malformed.
        """
        store = self.store.load()
        if store is None:
            raise IndexNotFoundError(
                f"No usable index at {self.store.path}. "
                "Run scripts/build_index.py to build or rebuild it."
            )
        return store

    def run(self, query: str) -> dict[str, Any]:
        """Answer ``query``.

        Parameters
        ----------
        query : str
            User's natural language question.

        Returns
        -------
        dict
            Dictionary containing:
            - ``"response"``: the generated answer
            - ``"source_nodes"``: the reranked chunks used as context
            - ``"candidates"``: the vector recall candidates

        Raises
        ------
        IndexNotFoundError
            If no usable index exists.
        """
        index = self.load_index()

        retriever = VectorIndexRetriever(store=index, embedder=self.embedder, top_n=self.top_n)
        candidates = retriever.retrieve(query)

        reranked = self.reranker.rerank(query, candidates, self.top_k)
        answer = self.generator.generate(query, reranked)

        return {"response": answer, "source_nodes": reranked, "candidates": candidates}

    def __call__(self, query: str) -> dict[str, Any]:
        return self.run(query)


__all__ = ["IndexNotFoundError", "RAGPipeline", "format_citation"]
