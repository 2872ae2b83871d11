import json

import pytest

from codebase_rag.common import IndexedChunk
from codebase_rag.retrieval.vector_store import STORE_VERSION, JsonIndexStore, load_store, save_store


def _indexed(chunk_id: str, embedding=(0.1, 0.2, 0.3), name: str | None = "handler") -> IndexedChunk:
    return IndexedChunk(
        id=chunk_id,
        file_path="src/api/routes.ts",
        content="export const handler = async (req) => {\n  return ok(req);\n}",
        start_line=10,
        end_line=12,
        kind="function" if name else "other",
        name=name,
        embedding=tuple(embedding),
    )


def test_save_then_load_round_trips(tmp_path):
    """Loading a saved store yields the same chunks, in order, with the current version."""
    path = tmp_path / "nested" / "dir" / "vectors.json"
    chunks = [_indexed("a1b2c3d4"), _indexed("e5f6a7b8", (0.4, 0.5, 0.6), name=None)]

    written = save_store(chunks, path)
    loaded = load_store(path)

    assert loaded is not None
    assert loaded.version == STORE_VERSION
    assert loaded.created_at == written.created_at
    assert list(loaded.chunks) == chunks
    assert loaded.dimension == 3


def test_saved_file_uses_camel_case_keys(tmp_path):
    """The on-disk document uses the documented keys and omits an absent name."""
    path = tmp_path / "vectors.json"
    save_store([_indexed("a", name=None)], path)

    data = json.loads(path.read_text(encoding="utf-8"))

    assert set(data) == {"version", "createdAt", "chunks"}
    record = data["chunks"][0]
    assert set(record) == {"id", "filePath", "content", "startLine", "endLine", "kind", "embedding"}
    assert record["filePath"] == "src/api/routes.ts"
    assert list(tmp_path.iterdir()) == [path]


def test_load_returns_none_for_missing_file(tmp_path):
    assert load_store(tmp_path / "absent.json") is None


def test_load_returns_none_on_version_mismatch(tmp_path):
    """A store written by another format version is rejected as a whole."""
    path = tmp_path / "vectors.json"
    save_store([_indexed("a")], path)

    data = json.loads(path.read_text(encoding="utf-8"))
    data["version"] = "0.9"
    path.write_text(json.dumps(data), encoding="utf-8")

    assert load_store(path) is None


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        json.dumps(["a", "list"]),
        json.dumps({"version": STORE_VERSION, "createdAt": "2024-01-01T00:00:00Z"}),
        json.dumps({"version": STORE_VERSION, "createdAt": "2024-01-01T00:00:00Z", "chunks": [{"id": "x"}]}),
        json.dumps({
            "version": STORE_VERSION,
            "createdAt": "2024-01-01T00:00:00Z",
            "chunks": [
                {"id": "a", "filePath": "a.py", "content": "c", "startLine": 1, "endLine": 2, "kind": "other", "embedding": [1.0, 2.0]},
                {"id": "b", "filePath": "b.py", "content": "c", "startLine": 1, "endLine": 2, "kind": "other", "embedding": [1.0]},
            ],
        }),
        json.dumps({
            "version": STORE_VERSION,
            "createdAt": "2024-01-01T00:00:00Z",
            "chunks": [
                {"id": "a", "filePath": "a.py", "content": "c", "startLine": 1, "endLine": 2, "kind": "module", "embedding": [1.0]},
            ],
        }),
        json.dumps({
            "version": STORE_VERSION,
            "createdAt": "2024-01-01T00:00:00Z",
            "chunks": [
                {"id": "a", "filePath": "a.py", "content": "c", "startLine": 1, "endLine": 2, "kind": "other", "embedding": [10**400]},
            ],
        }),
    ],
    ids=["invalid-json", "not-object", "missing-chunks", "missing-fields", "mixed-dimensions", "unknown-kind", "embedding-overflow"],
)
def test_load_returns_none_for_malformed_store(tmp_path, payload):
    """Any structural problem makes the store unusable instead of raising."""
    path = tmp_path / "vectors.json"
    path.write_text(payload, encoding="utf-8")

    assert load_store(path) is None


def test_save_rejects_mixed_dimensions(tmp_path):
    """A build whose vectors differ in length is not persisted."""
    path = tmp_path / "vectors.json"

    with pytest.raises(ValueError):
        save_store([_indexed("a", (1.0, 2.0)), _indexed("b", (1.0, 2.0, 3.0))], path)

    assert not path.exists()


def test_save_replaces_existing_store(tmp_path):
    """Each build overwrites the previous store wholesale."""
    store = JsonIndexStore(tmp_path / "vectors.json")
    store.save([_indexed("old")])
    store.save([_indexed("new1"), _indexed("new2")])

    loaded = store.load()

    assert [c.id for c in loaded.chunks] == ["new1", "new2"]
