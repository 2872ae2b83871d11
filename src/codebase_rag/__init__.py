"""codebase_rag

Retrieval-augmented question answering over a source code repository.

This package indexes a source tree into embedded code chunks and answers
natural-language questions about it with two-stage retrieval (vector recall
followed by LLM reranking) and grounded answer generation.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container, composition root and HTTP API.
pipelines
    Index build and query pipelines.
retrieval
    File loading, chunking, embedding, storage, recall and reranking.
generation
    LLM interfaces, prompt templates and answer generation.
common
    Shared record types (files, chunks, stores and results).

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
CodebaseRAGContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~codebase_rag.app.container.CodebaseRAGContainer`.
IndexPipeline
    Index build pipeline.
RAGPipeline
    Question answering pipeline.
CodeChunk
    Chunk schema produced by the splitter.
IndexedChunk
    Chunk with its embedding vector.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("codebase-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import CodebaseRAGContainer, build_container
from .pipelines import IndexPipeline, RAGPipeline
from .common import CodeChunk, IndexedChunk

__all__ = [
    "__version__",
    "GlobalConfig",
    "CodebaseRAGContainer",
    "build_container",
    "IndexPipeline",
    "RAGPipeline",
    "CodeChunk",
    "IndexedChunk",
]
