import textwrap
from types import SimpleNamespace

import pytest

from codebase_rag.generation.generator import INSUFFICIENT_CONTEXT_MESSAGE, AnswerGenerator
from codebase_rag.generation.prompt_builder import PromptBuilder
from codebase_rag.pipelines import IndexNotFoundError, IndexPipeline, RAGPipeline, format_citation
from codebase_rag.retrieval.embedder import BaseEmbedder
from codebase_rag.retrieval.reranker import LLMReranker
from codebase_rag.retrieval.vector_store import JsonIndexStore

KEYWORDS = ("token", "refresh", "database", "user")


class KeywordEmbedder(BaseEmbedder):
    """Embeds text as keyword counts, so similarity follows shared vocabulary."""

    def _build_backend(self):
        return SimpleNamespace(get_text_embedding=self._embed, get_query_embedding=self._embed)

    @staticmethod
    def _embed(text):
        lowered = text.lower()
        return [float(lowered.count(k)) for k in KEYWORDS]

    @classmethod
    def from_config_dict(cls, config, callback_manager=None):
        return cls()


class ScoringLLM:
    async def acomplete(self, prompt, **kwargs):
        if "refresh_token" in prompt:
            return '{"score": 9, "reason": "refreshes the token"}'
        return '{"score": 2, "reason": "unrelated"}'


class AnsweringLLM:
    def __init__(self):
        self.calls = []

    def complete(self, system_prompt, user_prompt, **kwargs):
        self.calls.append((system_prompt, user_prompt))
        return "The token is refreshed by refresh_token in auth.py."


AUTH_PY = textwrap.dedent('''
    import time


    def refresh_token(session):
        """Refresh the session token when it is about to expire."""
        if session.expires_at - time.time() < 60:
            session.token = session.client.post("/auth/refresh", token=session.token)
        return session.token
''')

DB_PY = textwrap.dedent('''
    def connect_database(url):
        """Open a connection to the user database and return it."""
        connection = create_pool(url, min_size=1, max_size=10)
        connection.execute("SELECT 1 FROM users")
        return connection
''')


def _write_repo(root):
    (root / "src").mkdir(parents=True)
    (root / "src" / "auth.py").write_text(AUTH_PY, encoding="utf-8")
    (root / "src" / "db.py").write_text(DB_PY, encoding="utf-8")
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / "node_modules" / "lib" / "index.js").write_text("function refresh_token() { return 'token'; }\n" * 5)


def _query_pipeline(store, embedder, answering_llm):
    builder = PromptBuilder.with_defaults()
    return RAGPipeline(
        store,
        embedder,
        LLMReranker(ScoringLLM(), builder),
        AnswerGenerator(answering_llm, builder),
        top_n=20,
        top_k=5,
    )


def test_build_then_query(tmp_path):
    """Indexing a small repo and asking about it yields a grounded, cited answer."""
    repo = tmp_path / "repo"
    _write_repo(repo)
    store = JsonIndexStore(tmp_path / "index" / "vectors.json")
    embedder = KeywordEmbedder()

    built = IndexPipeline(embedder, store).run(repo)

    assert built is not None
    assert sorted(c.file_path for c in built.chunks) == ["src/auth.py", "src/db.py"]
    assert built.dimension == len(KEYWORDS)
    assert store.path.exists()

    llm = AnsweringLLM()
    result = _query_pipeline(store, embedder, llm).run("How is the session token refreshed?")

    assert result["response"] == "The token is refreshed by refresh_token in auth.py."
    top = result["source_nodes"][0]
    assert top.chunk.name == "refresh_token"
    assert top.relevance_score == 9.0
    assert format_citation(top) == f"src/auth.py:{top.chunk.start_line}-{top.chunk.end_line} refresh_token (score 9/10)"
    assert result["candidates"][0].chunk.name == "refresh_token"

    system_prompt, user_prompt = llm.calls[0]
    assert user_prompt == "How is the session token refreshed?"
    assert "File: src/auth.py" in system_prompt


def test_query_without_index_raises(tmp_path):
    store = JsonIndexStore(tmp_path / "missing.json")
    pipeline = _query_pipeline(store, KeywordEmbedder(), AnsweringLLM())

    with pytest.raises(IndexNotFoundError, match="build_index"):
        pipeline.run("anything?")


def test_empty_index_answers_with_insufficient_context(tmp_path):
    """A store with no chunks produces the fixed message without calling the LLM."""
    store = JsonIndexStore(tmp_path / "vectors.json")
    store.save([])
    llm = AnsweringLLM()

    result = _query_pipeline(store, KeywordEmbedder(), llm).run("anything?")

    assert result["response"] == INSUFFICIENT_CONTEXT_MESSAGE
    assert result["source_nodes"] == []
    assert llm.calls == []


def test_build_with_no_source_files_writes_nothing(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "README.md").write_text("# docs only\n", encoding="utf-8")
    store = JsonIndexStore(tmp_path / "vectors.json")

    assert IndexPipeline(KeywordEmbedder(), store).run(repo) is None
    assert not store.path.exists()


def test_rebuild_replaces_previous_index(tmp_path):
    repo = tmp_path / "repo"
    _write_repo(repo)
    store = JsonIndexStore(tmp_path / "vectors.json")
    pipeline = IndexPipeline(KeywordEmbedder(), store)

    pipeline.run(repo)
    (repo / "src" / "db.py").unlink()
    rebuilt = pipeline.run(repo)

    assert [c.file_path for c in store.load().chunks] == ["src/auth.py"]
    assert len(rebuilt.chunks) == 1


def test_missing_root_dir_raises(tmp_path):
    store = JsonIndexStore(tmp_path / "vectors.json")

    with pytest.raises(FileNotFoundError):
        IndexPipeline(KeywordEmbedder(), store).run(tmp_path / "nope")
