import asyncio
import re

import pytest

from codebase_rag.common import IndexedChunk, RetrievalResult
from codebase_rag.generation.prompt_builder import PromptBuilder
from codebase_rag.retrieval.reranker import (
    PARSE_FAILED_REASON,
    SCORING_ERROR_REASON,
    LLMReranker,
    create_reranker,
    parse_score_response,
)


class ScriptedLLM:
    """Async LLM stub replying from a ``{chunk name: reply}`` table.

    A reply that is an exception instance is raised instead of returned. The
    stub also records how many calls are in flight at once.
    """

    def __init__(self, replies):
        self.replies = replies
        self.prompts = []
        self.kwargs = []
        self.in_flight = 0
        self.peak = 0

    async def acomplete(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.kwargs.append(kwargs)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            name = re.search(r"Kind: function \((\w+)\)", prompt).group(1)
            reply = self.replies[name]
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


def _candidate(name: str, score: float = 0.5) -> RetrievalResult:
    chunk = IndexedChunk(
        id=f"id_{name}",
        file_path=f"src/{name}.py",
        content=f"def {name}():\n    return None",
        start_line=1,
        end_line=2,
        kind="function",
        name=name,
        embedding=(1.0, 0.0),
    )
    return RetrievalResult(chunk=chunk, score=score)


@pytest.fixture
def prompt_builder():
    return PromptBuilder.with_defaults()


def test_rerank_orders_by_llm_score(prompt_builder):
    """Results follow the LLM scores, not the recall scores."""
    llm = ScriptedLLM({
        "alpha": '{"score": 3, "reason": "helper"}',
        "beta": '{"score": 9, "reason": "defines the handler"}',
        "gamma": '{"score": 6, "reason": "calls it"}',
    })
    reranker = LLMReranker(llm, prompt_builder)

    results = reranker.rerank("where is the handler?", [_candidate(n) for n in ("alpha", "beta", "gamma")], 3)

    assert [r.chunk.name for r in results] == ["beta", "gamma", "alpha"]
    assert [r.relevance_score for r in results] == [9.0, 6.0, 3.0]
    assert results[0].reason == "defines the handler"


def test_rerank_returns_at_most_top_k(prompt_builder):
    names = [f"fn{i}" for i in range(7)]
    llm = ScriptedLLM({n: f'{{"score": {i}, "reason": "r"}}' for i, n in enumerate(names)})

    results = LLMReranker(llm, prompt_builder).rerank("q", [_candidate(n) for n in names], 5)

    assert len(results) == 5
    assert [r.chunk.name for r in results] == ["fn6", "fn5", "fn4", "fn3", "fn2"]


def test_rerank_with_fewer_candidates_than_top_k(prompt_builder):
    llm = ScriptedLLM({"a": '{"score": 1, "reason": "r"}', "b": '{"score": 2, "reason": "r"}'})

    results = LLMReranker(llm, prompt_builder).rerank("q", [_candidate("a"), _candidate("b")], 5)

    assert len(results) == 2


def test_rerank_empty_candidates_makes_no_calls(prompt_builder):
    llm = ScriptedLLM({})

    assert LLMReranker(llm, prompt_builder).rerank("q", [], 5) == []
    assert llm.prompts == []


def test_malformed_reply_scores_zero_with_reason(prompt_builder):
    """A reply with no JSON and no digits is kept with score 0 and a reason."""
    llm = ScriptedLLM({"good": '{"score": 4, "reason": "ok"}', "bad": "not relevant at all"})

    results = LLMReranker(llm, prompt_builder).rerank("q", [_candidate("bad"), _candidate("good")], 5)

    bad = next(r for r in results if r.chunk.name == "bad")
    assert bad.relevance_score == 0
    assert bad.reason
    assert [r.chunk.name for r in results] == ["good", "bad"]


def test_failed_call_scores_zero_and_does_not_fail_query(prompt_builder):
    llm = ScriptedLLM({"ok": '{"score": 8, "reason": "r"}', "boom": ConnectionError("endpoint down")})

    results = LLMReranker(llm, prompt_builder).rerank("q", [_candidate("boom"), _candidate("ok")], 5)

    assert [(r.chunk.name, r.relevance_score, r.reason) for r in results] == [
        ("ok", 8.0, "r"),
        ("boom", 0.0, SCORING_ERROR_REASON),
    ]


def test_equal_scores_keep_candidate_order(prompt_builder):
    llm = ScriptedLLM({n: '{"score": 5, "reason": "r"}' for n in ("first", "second", "third")})

    results = LLMReranker(llm, prompt_builder).rerank(
        "q", [_candidate("first"), _candidate("second"), _candidate("third")], 3
    )

    assert [r.chunk.name for r in results] == ["first", "second", "third"]


def test_scoring_calls_are_bounded_by_batch_size(prompt_builder):
    """No more than ``batch_size`` scoring calls are ever in flight."""
    names = [f"fn{i}" for i in range(12)]
    llm = ScriptedLLM({n: '{"score": 1, "reason": "r"}' for n in names})

    LLMReranker(llm, prompt_builder, batch_size=5).rerank("q", [_candidate(n) for n in names], 5)

    assert len(llm.prompts) == 12
    assert 1 < llm.peak <= 5


def test_scoring_prompt_and_call_options(prompt_builder):
    """The scoring prompt carries the question and the chunk; calls are deterministic and short."""
    llm = ScriptedLLM({"login": '{"score": 7, "reason": "r"}'})

    LLMReranker(llm, prompt_builder).rerank("How does login work?", [_candidate("login")], 1)

    prompt = llm.prompts[0]
    assert "How does login work?" in prompt
    assert "File: src/login.py" in prompt
    assert "```python\ndef login():" in prompt
    assert llm.kwargs[0] == {"temperature": 0, "max_tokens": 100}


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"score": 8, "reason": "direct match"}', (8.0, "direct match")),
        ('{"score": 7.5}', (7.5, "")),
        ('{"score": 42, "reason": "r"}', (10.0, "r")),
        ('{"score": -3, "reason": "r"}', (0.0, "r")),
        ('{"score": "high", "reason": "r"}', (0.0, "r")),
        ("Score: 7 out of 10", (7.0, PARSE_FAILED_REASON)),
        ("7", (7.0, PARSE_FAILED_REASON)),
        ("no digits here", (0.0, PARSE_FAILED_REASON)),
        ("", (0.0, PARSE_FAILED_REASON)),
    ],
)
def test_parse_score_response(text, expected):
    assert parse_score_response(text) == expected


def test_rerank_inside_running_loop_raises(prompt_builder):
    reranker = LLMReranker(ScriptedLLM({}), prompt_builder)

    async def call_sync():
        reranker.rerank("q", [], 5)

    with pytest.raises(RuntimeError):
        asyncio.run(call_sync())


class LoopRecordingLLM:
    """Async LLM stub remembering the event loop of every call."""

    def __init__(self):
        self.loops = []

    async def acomplete(self, prompt, **kwargs):
        self.loops.append(asyncio.get_running_loop())
        return '{"score": 4, "reason": "r"}'


def test_rerank_reuses_one_event_loop_across_calls(prompt_builder):
    llm = LoopRecordingLLM()
    reranker = LLMReranker(llm, prompt_builder)

    try:
        first = reranker.rerank("q", [_candidate("a"), _candidate("b")], 5)
        second = reranker.rerank("q", [_candidate("c")], 5)
    finally:
        reranker.close()

    assert [r.relevance_score for r in first + second] == [4.0, 4.0, 4.0]
    assert len(llm.loops) == 3
    assert len(set(map(id, llm.loops))) == 1
    assert llm.loops[0].is_closed()


def test_rerank_starts_a_fresh_loop_after_close(prompt_builder):
    llm = LoopRecordingLLM()
    reranker = LLMReranker(llm, prompt_builder)

    reranker.rerank("q", [_candidate("a")], 1)
    reranker.close()
    reranker.close()
    reranker.rerank("q", [_candidate("b")], 1)
    reranker.close()

    assert llm.loops[0] is not llm.loops[1]


def test_create_reranker_from_config(prompt_builder):
    reranker = create_reranker(
        llm=ScriptedLLM({}),
        prompt_builder=prompt_builder,
        config={"type": "LLM", "batch_size": 3, "llm_kwargs": {"temperature": 0}},
    )

    assert isinstance(reranker, LLMReranker)
    assert reranker.batch_size == 3
    assert reranker.llm_kwargs == {"temperature": 0}


def test_create_reranker_rejects_unknown_type(prompt_builder):
    with pytest.raises(ValueError):
        create_reranker(llm=ScriptedLLM({}), prompt_builder=prompt_builder, config={"type": "cross_encoder"})
