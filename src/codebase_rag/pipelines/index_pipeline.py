"""codebase_rag.pipelines.index_pipeline

Index build orchestration.

This module defines the :class:`IndexPipeline`, which turns a source tree
into a persisted vector store: load files, split them into chunks, embed
each chunk, then write the store in one step.

Classes
-------
IndexPipeline
    Orchestrates loading, splitting, embedding and saving.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from codebase_rag.common import VectorStore
from codebase_rag.retrieval.document_loader import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, MAX_FILE_BYTES, load_files
from codebase_rag.retrieval.embedder import MAX_EMBED_CHARS, BaseEmbedder, embed_chunks
from codebase_rag.retrieval.text_splitter import CodeSplitter
from codebase_rag.retrieval.vector_store import JsonIndexStore

logger = logging.getLogger(__name__)


class IndexPipeline:
    """Build the vector index for a source tree.

    Parameters
    ----------
    embedder : BaseEmbedder
        Embedding backend.
    store : JsonIndexStore
        Destination store.
    splitter : CodeSplitter or None, optional
        Chunker. Defaults to a :class:`CodeSplitter` with default sizes.
    include_patterns : Sequence[str], optional
        Loader include globs.
    exclude_patterns : Sequence[str], optional
        Loader exclude globs.
    max_file_bytes : int, optional
        Loader file size ceiling.
    max_embed_chars : int, optional
        Prepared chunk text is truncated to this many characters.
    """

    def __init__(
            self,
            embedder: BaseEmbedder,
            store: JsonIndexStore,
            *,
            splitter: Optional[CodeSplitter] = None,
            include_patterns: Sequence[str] = DEFAULT_INCLUDE,
            exclude_patterns: Sequence[str] = DEFAULT_EXCLUDE,
            max_file_bytes: int = MAX_FILE_BYTES,
            max_embed_chars: int = MAX_EMBED_CHARS,
        ):
        self.embedder = embedder
        self.store = store
        self.splitter = splitter or CodeSplitter()
        self.include_patterns = tuple(include_patterns)
        self.exclude_patterns = tuple(exclude_patterns)
        self.max_file_bytes = int(max_file_bytes)
        self.max_embed_chars = int(max_embed_chars)

    def run(self, root_dir: str | Path) -> Optional[VectorStore]:
        """Index ``root_dir`` and persist the result.

        Parameters
        ----------
        root_dir : str or Path
            Directory to index.

        Returns
        -------
        VectorStore or None
            The written store, or ``None`` when there was nothing to index
            (no eligible files, or no chunk above the minimum size). In that
            case any existing store is left untouched.

        Raises
        ------
        FileNotFoundError, NotADirectoryError, PermissionError
            If ``root_dir`` cannot be read.
        EmbeddingError
            If any chunk fails to embed. No store is written.
        """
        files = load_files(
            root_dir,
            self.include_patterns,
            self.exclude_patterns,
            max_file_bytes=self.max_file_bytes,
        )
        if not files:
            logger.warning("No source files found under %s; index not written", root_dir)
            return None

        chunks = self.splitter.split_files(files)
        if not chunks:
            logger.warning("No chunks produced from %d file(s); index not written", len(files))
            return None

        indexed = embed_chunks(chunks, self.embedder, max_chars=self.max_embed_chars)
        return self.store.save(indexed)

    def __call__(self, root_dir: str | Path) -> Optional[VectorStore]:
        return self.run(root_dir)


__all__ = ["IndexPipeline"]
