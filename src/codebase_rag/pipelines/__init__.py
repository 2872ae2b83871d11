"""codebase_rag.pipelines

Pipeline orchestration components for the codebase RAG system.

Pipelines coordinate the retrieval and generation components. They hold no
state beyond their configured components and are safe to reuse across
requests and execution contexts.

Modules
-------
index_pipeline
    Load, split, embed and persist a source tree.
rag_pipeline
    End-to-end question answering over a built index.
"""
from .index_pipeline import IndexPipeline
from .rag_pipeline import IndexNotFoundError, RAGPipeline, format_citation

__all__ = ["IndexNotFoundError", "IndexPipeline", "RAGPipeline", "format_citation"]
