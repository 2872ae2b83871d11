"""codebase_rag.retrieval.document_loader

Source file loading for the index build.

This module walks a directory tree and returns the eligible source files as
:class:`~codebase_rag.common.schemas.LoadedFile` objects with paths relative
to the indexed root, so an index is portable across machines.

Functions
---------
matches_any
    Check whether a relative path matches any of a set of glob patterns.
load_files
    Load every eligible source file under a root directory.

Attributes
----------
DEFAULT_INCLUDE : tuple[str, ...]
    Glob patterns selecting source files.
DEFAULT_EXCLUDE : tuple[str, ...]
    Glob patterns for dependency directories, build output, test files and
    hidden directories.
MAX_FILE_BYTES : int
    Files larger than this are skipped.
"""

from __future__ import annotations

import logging
import os
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Sequence

from codebase_rag.common import LoadedFile

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = (
    "**/*.py",
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
)

DEFAULT_EXCLUDE = (
    "**/node_modules/**",
    "**/site-packages/**",
    "**/venv/**",
    "**/dist/**",
    "**/build/**",
    "**/__pycache__/**",
    "**/*.test.ts",
    "**/*.spec.ts",
    "**/*.test.js",
    "**/*.spec.js",
    "**/test_*.py",
    "**/*_test.py",
    "**/.*/**",
)

MAX_FILE_BYTES = 100 * 1024
DEFAULT_ENCODING = "utf-8"


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Check whether a relative POSIX path matches any glob pattern.

    ``*`` matches across ``/``. A leading ``**/`` also matches at the root,
    so ``**/dist/**`` excludes both ``dist/x.js`` and ``pkg/dist/x.js``.

    Parameters
    ----------
    relative_path : str
        Path relative to the indexed root, using ``/`` separators.
    patterns : Iterable[str]
        Glob patterns.

    Returns
    -------
    bool
        ``True`` if any pattern matches.
    """
    for pattern in patterns:
        if fnmatchcase(relative_path, pattern):
            return True
        if pattern.startswith("**/") and fnmatchcase(relative_path, pattern[3:]):
            return True
    return False


def load_files(
        root_dir: str | Path,
        include_patterns: Sequence[str] = DEFAULT_INCLUDE,
        exclude_patterns: Sequence[str] = DEFAULT_EXCLUDE,
        *,
        max_file_bytes: int = MAX_FILE_BYTES,
        encoding: str = DEFAULT_ENCODING,
    ) -> list[LoadedFile]:
    """Load eligible source files under ``root_dir``.

    The tree is walked once. Directories hitting an exclude pattern are pruned
    without being entered, and every remaining file is matched against the
    include patterns with :func:`matches_any`. Excluded files, files larger
    than ``max_file_bytes`` and files that cannot be read or decoded are
    skipped. A file matched by several include patterns is returned once.

    Parameters
    ----------
    root_dir : str or Path
        Directory to index.
    include_patterns : Sequence[str], optional
        Glob patterns selecting files. Defaults to :data:`DEFAULT_INCLUDE`.
    exclude_patterns : Sequence[str], optional
        Glob patterns rejecting files. Defaults to :data:`DEFAULT_EXCLUDE`.
    max_file_bytes : int, optional
        Size ceiling in bytes. Defaults to 100 KiB.
    encoding : str, optional
        Text encoding used to decode files. Defaults to ``"utf-8"``.

    Returns
    -------
    list[LoadedFile]
        Loaded files sorted by relative path.

    Raises
    ------
    FileNotFoundError
        If ``root_dir`` does not exist.
    NotADirectoryError
        If ``root_dir`` is not a directory.
    PermissionError
        If ``root_dir`` cannot be listed.
    """
    root = Path(root_dir).expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Root directory does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Root path is not a directory: {root}")
    # Listing the root surfaces permission problems before the walk.
    next(root.iterdir(), None)

    files: list[LoadedFile] = []

    for dirpath, dirs, filenames in os.walk(root):
        current = Path(dirpath)
        prefix = current.relative_to(root).as_posix()
        prefix = "" if prefix == "." else f"{prefix}/"

        # Excluded directories are never descended into.
        dirs[:] = sorted(d for d in dirs if not matches_any(f"{prefix}{d}/", exclude_patterns))

        for name in sorted(filenames):
            relative_path = f"{prefix}{name}"
            if not matches_any(relative_path, include_patterns):
                continue
            if matches_any(relative_path, exclude_patterns):
                continue

            path = current / name
            try:
                if not path.is_file():
                    continue
                size = path.stat().st_size
            except OSError as e:
                logger.warning("Skipping %s: %s", relative_path, e)
                continue

            if size > max_file_bytes:
                logger.info("Skipping large file %s (%d bytes)", relative_path, size)
                continue

            try:
                content = path.read_text(encoding=encoding)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable file %s: %s", relative_path, e)
                continue

            files.append(LoadedFile(file_path=relative_path, content=content))

    files.sort(key=lambda f: f.file_path)
    logger.info("Loaded %d file(s) from %s", len(files), root)
    return files


__all__ = [
    "DEFAULT_EXCLUDE",
    "DEFAULT_INCLUDE",
    "MAX_FILE_BYTES",
    "load_files",
    "matches_any",
]
