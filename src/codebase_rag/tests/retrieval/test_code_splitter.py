import pytest

from codebase_rag.common import LoadedFile
from codebase_rag.retrieval.text_splitter import (
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    CodeSplitter,
    detect_marker,
    generate_chunk_id,
    split_files,
)


def _long_function_file(path: str = "pkg/a.py", body_lines: int = 120) -> LoadedFile:
    """A file holding one function ``foo`` whose body is far above the size limit."""
    lines = ["def foo():"]
    lines += [f"    value_{i} = compute({i})" for i in range(body_lines)]
    return LoadedFile(file_path=path, content="\n".join(lines))


def _no_marker_file(path: str = "pkg/b.py", n_lines: int = 80) -> LoadedFile:
    """A file with plain assignments only, so no block markers are detected."""
    return LoadedFile(file_path=path, content="\n".join(f"x_{i} = {i}" for i in range(n_lines)))


@pytest.mark.parametrize(
    "line, kind, name",
    [
        ("function parseArgs(argv) {", "function", "parseArgs"),
        ("export async function loadConfig() {", "function", "loadConfig"),
        ("export default function App() {", "function", "App"),
        ("def build_index(root):", "function", "build_index"),
        ("    async def fetch(self, url):", "function", "fetch"),
        ("const handler = (req, res) => {", "function", "handler"),
        ("export const retry = async (fn) => {", "function", "retry"),
        ("normalise = lambda s: s.strip()", "function", "normalise"),
        ("class Store:", "class", "Store"),
        ("export abstract class BaseRepo<T> {", "class", "BaseRepo"),
        ("export default class Widget extends Base {", "class", "Widget"),
    ],
)
def test_detect_marker_recognises_declarations(line, kind, name):
    """Each supported declaration form yields a marker with its kind and identifier."""
    marker = detect_marker(line, 7)

    assert marker is not None
    assert marker.kind == kind
    assert marker.name == name
    assert marker.line_index == 7


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        "let count = 5;",
        "x = compute(1)",
        "# def commented_out():",
        "return functionCall()",
    ],
)
def test_detect_marker_ignores_other_lines(line):
    """Ordinary statements, blanks and comments are not block boundaries."""
    assert detect_marker(line) is None


def test_generate_chunk_id_is_stable_and_short():
    """Ids are 8 hex characters, identical for equal inputs and distinct across start lines."""
    first = generate_chunk_id("src/app.ts", 0)

    assert first == generate_chunk_id("src/app.ts", 0)
    assert first != generate_chunk_id("src/app.ts", 1)
    assert len(first) == 8
    int(first, 16)


def test_two_file_scenario():
    """
    A file with one long function and a file with no markers produce:
    - one ``other`` chunk covering the whole marker-free file
    - several ``function`` chunks for ``foo``, sub-split into line windows
    """
    files = [_long_function_file(), _no_marker_file()]

    chunks = split_files(files)

    function_chunks = [c for c in chunks if c.kind == "function"]
    other_chunks = [c for c in chunks if c.kind == "other"]

    assert len(chunks) >= 2
    assert [c.name for c in function_chunks] == ["foo (part 1)", "foo (part 2)", "foo (part 3)"]
    assert all(c.file_path == "pkg/a.py" for c in function_chunks)

    assert len(other_chunks) == 1
    whole = other_chunks[0]
    assert whole.file_path == "pkg/b.py"
    assert whole.name is None
    assert (whole.start_line, whole.end_line) == (1, 80)
    assert whole.id == generate_chunk_id("pkg/b.py", 0)


def test_oversized_block_is_windowed_with_overlap():
    """Windows are 50 lines long, start every 45 lines and stop at the region's last line."""
    chunks = split_files([_long_function_file()])

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 50), (46, 95), (91, 121)]
    assert [c.id for c in chunks] == [
        generate_chunk_id("pkg/a.py", 0),
        generate_chunk_id("pkg/a.py", 45),
        generate_chunk_id("pkg/a.py", 90),
    ]


def test_chunk_size_bounds_hold():
    """Every emitted chunk is within the configured size bounds."""
    files = [_long_function_file(), _no_marker_file(), _long_function_file("pkg/c.py", 300)]

    for chunk in split_files(files):
        assert MIN_CHUNK_SIZE <= len(chunk.content) <= MAX_CHUNK_SIZE
        assert chunk.content == chunk.content.strip()


def test_header_and_marker_regions():
    """Text before the first marker becomes an ``other`` chunk; each marker opens its own chunk."""
    header = [
        "import os",
        "import sys",
        "import logging",
        "from pathlib import Path",
        "",
        "DEFAULT_ROOT = Path(os.environ.get('APP_ROOT', '/srv/app'))",
        "",
    ]
    klass = [
        "class Repository:",
        "    def __init__(self, root):",
        "        self.root = root",
        "        self.cache = {}",
        "",
    ]
    func = [
        "def open_repository(root=DEFAULT_ROOT):",
        "    repo = Repository(root)",
        "    repo.cache['opened'] = True",
        "    return repo",
    ]
    content = "\n".join(header + klass + func)

    chunks = split_files([LoadedFile(file_path="repo.py", content=content)])

    kinds = [(c.kind, c.name) for c in chunks]
    assert kinds[0] == ("other", None)
    assert ("function", "open_repository") in kinds
    assert chunks[0].start_line == 1
    assert chunks[0].id == generate_chunk_id("repo.py", 0)
    assert "DEFAULT_ROOT" in chunks[0].content


def test_small_regions_are_dropped():
    """Regions below the minimum size emit nothing; an empty file emits nothing."""
    tiny = LoadedFile(file_path="tiny.py", content="def a():\n    return 1\n")
    empty = LoadedFile(file_path="empty.py", content="")

    assert split_files([tiny, empty]) == []


def test_split_is_deterministic():
    """Splitting the same input twice yields equal chunk lists."""
    files = [_long_function_file(), _no_marker_file()]

    assert split_files(files) == split_files(files)


def test_marker_count_determines_chunk_count():
    """N sufficiently large marker regions yield N chunks, plus one for a large header."""
    body = "\n".join(f"    total += item_{i} * weight_{i}" for i in range(5))
    functions = [f"def handler_{n}(item):\n{body}\n    return total" for n in range(3)]
    header = "\n".join(f"# module notes line {i}: describes the handlers below" for i in range(3))

    without_header = split_files([LoadedFile("h.py", "\n".join(functions))])
    with_header = split_files([LoadedFile("h.py", header + "\n" + "\n".join(functions))])

    assert len(without_header) == 3
    assert len(with_header) == 4


def test_splitter_rejects_invalid_window_settings():
    """The overlap must be smaller than the window."""
    with pytest.raises(ValueError):
        CodeSplitter(window_lines=10, window_overlap=10)
    with pytest.raises(ValueError):
        CodeSplitter(window_lines=0)
