"""codebase_rag.common.schemas

Core data schemas shared across the codebase RAG pipeline.

These frozen dataclasses describe the canonical shapes passed between the
loader, splitter, embedder, store, retriever, reranker and generator. Once
produced they are treated as immutable values.

Classes
-------
LoadedFile
    A source file read from disk, prior to chunking.
CodeChunk
    The atomic retrievable unit produced by the splitter.
IndexedChunk
    A :class:`CodeChunk` together with its embedding vector.
VectorStore
    The versioned, persisted collection of indexed chunks.
RetrievalResult
    A coarse-recall candidate with its cosine similarity.
RerankResult
    A reranked candidate with its LLM relevance score.

Notes
-----
``name`` and ``reason`` are optional; consumers must check for ``None``
before using them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

ChunkKind = Literal["function", "class", "other"]
CHUNK_KINDS = ("function", "class", "other")

_FENCE_LANGUAGES = {
    "py": "python",
    "ts": "typescript",
    "tsx": "tsx",
    "js": "javascript",
    "jsx": "jsx",
}


@dataclass(frozen=True)
class LoadedFile:
    """A source file loaded from the indexed tree.

    Attributes
    ----------
    file_path : str
        Path relative to the indexed root, using ``/`` separators.
    content : str
        Raw text content of the file.
    """

    file_path: str
    content: str


@dataclass(frozen=True)
class CodeChunk:
    """A contiguous region of a source file.

    Attributes
    ----------
    id : str
        Stable identifier derived from ``(file_path, start index)``.
    file_path : str
        Relative path of the originating file.
    content : str
        Chunk text, trimmed of leading/trailing whitespace.
    start_line : int
        1-based first line of the chunk (inclusive).
    end_line : int
        1-based last line of the chunk (inclusive).
    kind : str
        One of ``"function"``, ``"class"`` or ``"other"``.
    name : str or None
        Identifier for function/class chunks. Sub-split chunks carry a
        ``"(part n)"`` suffix.
    """

    id: str
    file_path: str
    content: str
    start_line: int
    end_line: int
    kind: ChunkKind = "other"
    name: Optional[str] = None

    @property
    def label(self) -> str:
        """Return ``name`` when present, otherwise ``kind``."""
        return self.name if self.name is not None else self.kind

    @property
    def location(self) -> str:
        """Return ``path:start-end`` for display."""
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    @property
    def language(self) -> str:
        """Code fence language inferred from the file extension, or ``""``."""
        suffix = self.file_path.rsplit(".", 1)[-1].lower() if "." in self.file_path else ""
        return _FENCE_LANGUAGES.get(suffix, "")


@dataclass(frozen=True)
class IndexedChunk(CodeChunk):
    """A :class:`CodeChunk` with its dense embedding vector.

    Attributes
    ----------
    embedding : tuple[float, ...]
        Embedding vector. All chunks of one store share its length.
    """

    embedding: tuple[float, ...] = ()

    @classmethod
    def from_chunk(cls, chunk: CodeChunk, embedding) -> "IndexedChunk":
        """Attach ``embedding`` to ``chunk``."""
        return cls(
            id=chunk.id,
            file_path=chunk.file_path,
            content=chunk.content,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            kind=chunk.kind,
            name=chunk.name,
            embedding=tuple(float(x) for x in embedding),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the on-disk JSON shape (camelCase keys)."""
        data: dict[str, Any] = {
            "id": self.id,
            "filePath": self.file_path,
            "content": self.content,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "kind": self.kind,
        }
        if self.name is not None:
            data["name"] = self.name
        data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexedChunk":
        """Parse one chunk record from the on-disk JSON shape.

        Raises
        ------
        KeyError
            If a required key is missing.
        TypeError
            If a field has the wrong type or ``kind`` is unknown.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Chunk record must be an object, got {type(data).__name__}")

        for key in ("id", "filePath", "content", "kind"):
            if not isinstance(data[key], str):
                raise TypeError(f"Chunk field {key!r} must be a string")
        for key in ("startLine", "endLine"):
            if not isinstance(data[key], int) or isinstance(data[key], bool):
                raise TypeError(f"Chunk field {key!r} must be an integer")
        if data["kind"] not in CHUNK_KINDS:
            raise TypeError(f"Unknown chunk kind: {data['kind']!r}")

        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise TypeError("Chunk field 'name' must be a string when present")

        embedding = data["embedding"]
        if not isinstance(embedding, list) or not all(
            isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding
        ):
            raise TypeError("Chunk field 'embedding' must be a list of numbers")

        return cls(
            id=data["id"],
            file_path=data["filePath"],
            content=data["content"],
            start_line=data["startLine"],
            end_line=data["endLine"],
            kind=data["kind"],
            name=name,
            embedding=tuple(float(x) for x in embedding),
        )


@dataclass(frozen=True)
class VectorStore:
    """Versioned collection of indexed chunks, persisted as one file.

    Attributes
    ----------
    version : str
        Store format version. Must match exactly to be loaded.
    created_at : str
        ISO-8601 creation timestamp.
    chunks : tuple[IndexedChunk, ...]
        All indexed chunks, in build order.
    """

    version: str
    created_at: str
    chunks: tuple[IndexedChunk, ...] = field(default_factory=tuple)

    @property
    def dimension(self) -> Optional[int]:
        """Embedding dimensionality, or ``None`` for an empty store."""
        if not self.chunks:
            return None
        return len(self.chunks[0].embedding)


@dataclass(frozen=True)
class RetrievalResult:
    """Coarse-recall candidate."""

    chunk: IndexedChunk
    score: float


@dataclass(frozen=True)
class RerankResult:
    """Reranked candidate with an LLM relevance score in ``[0, 10]``."""

    chunk: IndexedChunk
    relevance_score: float
    reason: Optional[str] = None

    def to_citation(self) -> dict[str, Any]:
        """Return the display fields of this result (no content or vector)."""
        chunk = self.chunk
        return {
            "file_path": chunk.file_path,
            "start_line": chunk.start_line,
            "end_line": chunk.end_line,
            "kind": chunk.kind,
            "name": chunk.name,
            "relevance_score": self.relevance_score,
            "reason": self.reason,
        }
