"""codebase_rag.retrieval.text_splitter

Heuristic code chunking for the retrieval layer.

This module converts :class:`~codebase_rag.common.schemas.LoadedFile`
objects into :class:`~codebase_rag.common.schemas.CodeChunk` objects. Chunk
boundaries come from line-level pattern matching (no parser): named
function declarations, assigned arrow/lambda functions and class
declarations each open a new chunk. Oversized chunks are cut into
overlapping line windows.

Classes
-------
BlockMarker
    A detected chunk boundary.
CodeSplitter
    Splits files into chunks using marker detection and line windows.

Functions
---------
detect_marker
    Detect a chunk boundary on a single line.
generate_chunk_id
    Derive a stable chunk id from a file path and a 0-based line index.
split_files
    Split a list of loaded files into chunks.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Optional

from codebase_rag.common import ChunkKind, CodeChunk, LoadedFile

logger = logging.getLogger(__name__)

MAX_CHUNK_SIZE = 2000
MIN_CHUNK_SIZE = 100
DEFAULT_WINDOW_LINES = 50
DEFAULT_WINDOW_OVERLAP = 5

FUNCTION_PATTERNS = (
    re.compile(r"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+(?P<name>\w+)"),
    re.compile(r"^(?:async\s+)?def\s+(?P<name>\w+)"),
)
ARROW_PATTERNS = (
    re.compile(r"^(?:export\s+)?(?:const|let)\s+(?P<name>\w+)\s*=\s*(?:async\s*)?\("),
    re.compile(r"^(?P<name>\w+)\s*=\s*lambda\b"),
)
CLASS_PATTERNS = (
    re.compile(r"^(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+(?P<name>\w+)"),
)

_MARKER_CLASSES: tuple[tuple[ChunkKind, tuple[re.Pattern, ...]], ...] = (
    ("function", FUNCTION_PATTERNS),
    ("function", ARROW_PATTERNS),
    ("class", CLASS_PATTERNS),
)


@dataclass(frozen=True)
class BlockMarker:
    """A chunk boundary found in a file.

    Attributes
    ----------
    line_index : int
        0-based index of the line opening the block.
    kind : str
        ``"function"`` or ``"class"``.
    name : str
        Declared identifier.
    """

    line_index: int
    kind: ChunkKind
    name: str


def detect_marker(line: str, line_index: int = 0) -> Optional[BlockMarker]:
    """Detect a chunk boundary on a single line.

    The three pattern classes are tried in order against the stripped line:
    named function declarations, assigned arrow/lambda functions, then class
    declarations. The first match wins.

    Parameters
    ----------
    line : str
        Raw line text.
    line_index : int, optional
        0-based index recorded on the returned marker.

    Returns
    -------
    BlockMarker or None
        The detected marker, or ``None`` if the line opens no block.
    """
    stripped = line.strip()
    if not stripped:
        return None

    for kind, patterns in _MARKER_CLASSES:
        for pattern in patterns:
            match = pattern.match(stripped)
            if match:
                return BlockMarker(line_index=line_index, kind=kind, name=match.group("name"))
    return None


def generate_chunk_id(file_path: str, line_index: int) -> str:
    """Return the first 8 hex digits of ``md5("{file_path}:{line_index}")``."""
    digest = hashlib.md5(f"{file_path}:{line_index}".encode("utf-8")).hexdigest()
    return digest[:8]


class CodeSplitter:
    """Split source files into chunks along detected block boundaries.

    Parameters
    ----------
    min_chunk_size : int, optional
        Chunks with fewer characters (after trimming) are dropped.
        Defaults to ``100``.
    max_chunk_size : int, optional
        Chunks with more characters are cut into line windows. Defaults to
        ``2000``.
    window_lines : int, optional
        Lines per window when subdividing. Defaults to ``50``.
    window_overlap : int, optional
        Lines shared by consecutive windows. Defaults to ``5``.
    """

    def __init__(
            self,
            *,
            min_chunk_size: int = MIN_CHUNK_SIZE,
            max_chunk_size: int = MAX_CHUNK_SIZE,
            window_lines: int = DEFAULT_WINDOW_LINES,
            window_overlap: int = DEFAULT_WINDOW_OVERLAP,
        ) -> None:
        if window_lines <= 0:
            raise ValueError("window_lines must be a positive integer.")
        if not 0 <= window_overlap < window_lines:
            raise ValueError("window_overlap must be >= 0 and smaller than window_lines.")
        if min_chunk_size > max_chunk_size:
            raise ValueError("min_chunk_size cannot exceed max_chunk_size.")

        self.min_chunk_size = int(min_chunk_size)
        self.max_chunk_size = int(max_chunk_size)
        self.window_lines = int(window_lines)
        self.window_overlap = int(window_overlap)

    def detect_markers(self, lines: list[str]) -> list[BlockMarker]:
        """Return the block markers of a file, in line order."""
        markers = []
        for i, line in enumerate(lines):
            marker = detect_marker(line, i)
            if marker is not None:
                markers.append(marker)
        return markers

    def split_file(self, file: LoadedFile) -> list[CodeChunk]:
        """Split one file into chunks.

        Parameters
        ----------
        file : LoadedFile
            File to split.

        Returns
        -------
        list[CodeChunk]
            Chunks in file order. Empty when the file holds nothing above the
            minimum size.
        """
        lines = file.content.split("\n")
        markers = self.detect_markers(lines)

        if not markers:
            return self._emit(file.file_path, lines, 0, len(lines), "other", None)

        chunks: list[CodeChunk] = []

        first = markers[0].line_index
        if first > 0:
            chunks.extend(self._emit(file.file_path, lines, 0, first, "other", None))

        for i, marker in enumerate(markers):
            end = markers[i + 1].line_index if i + 1 < len(markers) else len(lines)
            chunks.extend(
                self._emit(file.file_path, lines, marker.line_index, end, marker.kind, marker.name)
            )

        return chunks

    def split_files(self, files: list[LoadedFile]) -> list[CodeChunk]:
        """Split several files, concatenating their chunks in input order."""
        all_chunks: list[CodeChunk] = []
        for file in files:
            all_chunks.extend(self.split_file(file))

        logger.info("Split %d file(s) into %d chunk(s)", len(files), len(all_chunks))
        return all_chunks

    def _emit(
            self,
            file_path: str,
            lines: list[str],
            start: int,
            end: int,
            kind: ChunkKind,
            name: Optional[str],
        ) -> list[CodeChunk]:
        """Build the chunk(s) for ``lines[start:end]``."""
        content = "\n".join(lines[start:end]).strip()
        if len(content) < self.min_chunk_size:
            return []

        if len(content) > self.max_chunk_size:
            return self._split_large_block(file_path, lines, start, end, kind, name)

        return [
            CodeChunk(
                id=generate_chunk_id(file_path, start),
                file_path=file_path,
                content=content,
                start_line=start + 1,
                end_line=end,
                kind=kind,
                name=name,
            )
        ]

    def _split_large_block(
            self,
            file_path: str,
            lines: list[str],
            start: int,
            end: int,
            kind: ChunkKind,
            name: Optional[str],
        ) -> list[CodeChunk]:
        """Cut ``lines[start:end]`` into overlapping fixed-size line windows."""
        # Trailing blank lines are not part of any window.
        while end > start and not lines[end - 1].strip():
            end -= 1

        step = self.window_lines - self.window_overlap
        chunks: list[CodeChunk] = []

        for part, offset in enumerate(range(start, end, step), start=1):
            window_end = min(offset + self.window_lines, end)
            content = "\n".join(lines[offset:window_end]).strip()

            if len(content) >= self.min_chunk_size:
                chunks.append(
                    CodeChunk(
                        id=generate_chunk_id(file_path, offset),
                        file_path=file_path,
                        content=content,
                        start_line=offset + 1,
                        end_line=window_end,
                        kind=kind,
                        name=f"{name} (part {part})" if name is not None else None,
                    )
                )

            if window_end >= end:
                break

        return chunks


def split_files(
        files: list[LoadedFile],
        *,
        min_chunk_size: int = MIN_CHUNK_SIZE,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        window_lines: int = DEFAULT_WINDOW_LINES,
        window_overlap: int = DEFAULT_WINDOW_OVERLAP,
    ) -> list[CodeChunk]:
    """Split loaded files into code chunks.

    Parameters
    ----------
    files : list[LoadedFile]
        Files to split.
    min_chunk_size : int, optional
        Minimum chunk size in characters. Defaults to ``100``.
    max_chunk_size : int, optional
        Maximum chunk size in characters before line-window subdivision.
        Defaults to ``2000``.
    window_lines : int, optional
        Lines per subdivision window. Defaults to ``50``.
    window_overlap : int, optional
        Overlap between consecutive windows, in lines. Defaults to ``5``.

    Returns
    -------
    list[CodeChunk]
        All chunks across all files, in input order.
    """
    splitter = CodeSplitter(
        min_chunk_size=min_chunk_size,
        max_chunk_size=max_chunk_size,
        window_lines=window_lines,
        window_overlap=window_overlap,
    )
    return splitter.split_files(files)


__all__ = [
    "BlockMarker",
    "CodeSplitter",
    "MAX_CHUNK_SIZE",
    "MIN_CHUNK_SIZE",
    "detect_marker",
    "generate_chunk_id",
    "split_files",
]
