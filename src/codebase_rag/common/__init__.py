"""
Common building blocks shared across the codebase RAG stack.

This package provides the small record types (loaded files, chunks, stores
and results) imported by every layer of the system.

Classes
-------
LoadedFile
    Source file read from disk.
CodeChunk
    Atomic retrievable unit of source text.
IndexedChunk
    Chunk with its embedding vector.
VectorStore
    Versioned collection of indexed chunks.
RetrievalResult
    Coarse-recall candidate with a similarity score.
RerankResult
    Reranked candidate with an LLM relevance score.

Attributes
----------
ChunkId : TypeAlias
    Type alias for chunk identifiers.

See Also
--------
codebase_rag.common.schemas
    Defines the record types.
"""
from __future__ import annotations
from typing import TypeAlias

from .schemas import (
    CHUNK_KINDS,
    ChunkKind,
    CodeChunk,
    IndexedChunk,
    LoadedFile,
    RerankResult,
    RetrievalResult,
    VectorStore,
)

ChunkId: TypeAlias = str

__all__ = [
    "CHUNK_KINDS",
    "ChunkKind",
    "ChunkId",
    "CodeChunk",
    "IndexedChunk",
    "LoadedFile",
    "RerankResult",
    "RetrievalResult",
    "VectorStore",
]
