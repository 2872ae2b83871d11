"""codebase_rag.retrieval.reranker

LLM relevance reranking of coarse retrieval candidates.

Each candidate is scored 0-10 by an LLM against the query. Candidates are
scored in fixed-size batches: the calls of one batch run concurrently, and
batches run one after another to bound load on the LLM endpoint. A
candidate whose scoring call fails or returns unparseable output is kept
with a score instead of failing the whole query.

Classes
-------
BaseReranker
    Abstract reranker interface.
LLMReranker
    Reranker scoring candidates with an LLM.

Functions
---------
parse_score_response
    Parse an LLM scoring reply into ``(score, reason)``.
create_reranker
    Create a reranker from configuration.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

from codebase_rag.common import RerankResult, RetrievalResult
from codebase_rag.generation.llm_interface import BaseLLM
from codebase_rag.generation.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_TOP_K = 5
MIN_SCORE = 0.0
MAX_SCORE = 10.0
PARSE_FAILED_REASON = "parse failed"
SCORING_ERROR_REASON = "scoring error"

_INTEGER_RE = re.compile(r"(\d+)")


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return MIN_SCORE
    if math.isnan(score):
        return MIN_SCORE
    return min(MAX_SCORE, max(MIN_SCORE, score))


def parse_score_response(text: str) -> tuple[float, Optional[str]]:
    """Parse an LLM scoring reply.

    The reply is expected to be a JSON object ``{"score": n, "reason": s}``.
    A non-numeric score counts as ``0``; any score is clamped to
    ``[0, 10]``. When the reply is not a JSON object, the first run of
    digits is taken as the score (``0`` when there is none) and the reason is
    ``"parse failed"``.

    Parameters
    ----------
    text : str
        Raw model output.

    Returns
    -------
    tuple[float, str or None]
        The score and the reason.
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        parsed = None

    if isinstance(parsed, dict):
        reason = parsed.get("reason")
        return _clamp_score(parsed.get("score")), str(reason) if reason else ""

    match = _INTEGER_RE.search(text or "")
    score = _clamp_score(match.group(1)) if match else MIN_SCORE
    return score, PARSE_FAILED_REASON


class BaseReranker(ABC):
    """Abstract interface for reranking retrieval candidates.

    Synchronous callers go through :meth:`rerank`, which runs every call on
    one event loop owned by the reranker. Async HTTP clients keep their
    connections bound to the loop that opened them.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._loop_lock = threading.Lock()

    @abstractmethod
    async def arerank(
            self,
            query: str,
            candidates: Sequence[RetrievalResult],
            top_k: int,
        ) -> list[RerankResult]:
        """Return the ``top_k`` most relevant candidates, best first."""
        raise NotImplementedError

    def _sync_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=loop.run_forever, name=f"{type(self).__name__}-loop", daemon=True)
                thread.start()
                self._loop, self._loop_thread = loop, thread
            return self._loop

    def rerank(
            self,
            query: str,
            candidates: Sequence[RetrievalResult],
            top_k: int = DEFAULT_TOP_K,
        ) -> list[RerankResult]:
        """Synchronous wrapper around :meth:`arerank`.

        Safe to call from several threads at once; all calls share the
        reranker's event loop.

        Raises
        ------
        RuntimeError
            If called from inside a running event loop; await
            :meth:`arerank` instead.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            future = asyncio.run_coroutine_threadsafe(self.arerank(query, candidates, top_k), self._sync_loop())
            return future.result()
        raise RuntimeError("rerank() cannot be called from a running event loop; use 'await arerank()'.")

    def close(self) -> None:
        """Stop the event loop used by :meth:`rerank`, if one was started."""
        with self._loop_lock:
            loop, thread = self._loop, self._loop_thread
            self._loop = self._loop_thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()


class LLMReranker(BaseReranker):
    """Reranker that asks an LLM to score each candidate 0-10.

    Parameters
    ----------
    llm : BaseLLM
        Scoring model. Only :meth:`BaseLLM.acomplete` is used.
    prompt_builder : PromptBuilder
        Registry holding the scoring template.
    batch_size : int, optional
        Number of candidates scored concurrently. Defaults to ``5``.
    prompt_name : str, optional
        Scoring template name. Defaults to ``"rerank_score"``.
    llm_kwargs : Mapping[str, Any] or None, optional
        Extra keyword arguments for each scoring call. Defaults to
        ``temperature=0`` and ``max_tokens=100``.
    """

    def __init__(
            self,
            llm: BaseLLM,
            prompt_builder: PromptBuilder,
            *,
            batch_size: int = DEFAULT_BATCH_SIZE,
            prompt_name: str = "rerank_score",
            llm_kwargs: Optional[Mapping[str, Any]] = None,
        ):
        if int(batch_size) <= 0:
            raise ValueError("'reranker.batch_size' must be a positive integer.")

        super().__init__()

        self.llm = llm
        self.prompt_builder = prompt_builder
        self.batch_size = int(batch_size)
        self.prompt_name = prompt_name
        self.llm_kwargs = dict(llm_kwargs) if llm_kwargs is not None else {"temperature": 0, "max_tokens": 100}

    async def _score(self, query: str, candidate: RetrievalResult) -> RerankResult:
        chunk = candidate.chunk
        try:
            prompt = self.prompt_builder.build(self.prompt_name, query=query, chunk=chunk)
            text = await self.llm.acomplete(prompt, **self.llm_kwargs)
        except Exception as e:
            logger.warning("Scoring failed for %s: %s", chunk.location, e)
            return RerankResult(chunk=chunk, relevance_score=MIN_SCORE, reason=SCORING_ERROR_REASON)

        score, reason = parse_score_response(text)
        if reason == PARSE_FAILED_REASON:
            logger.warning("Malformed score response for %s: %r", chunk.location, text)
        return RerankResult(chunk=chunk, relevance_score=score, reason=reason)

    async def arerank(
            self,
            query: str,
            candidates: Sequence[RetrievalResult],
            top_k: int = DEFAULT_TOP_K,
        ) -> list[RerankResult]:
        """Score every candidate and return the ``top_k`` best.

        Parameters
        ----------
        query : str
            User question.
        candidates : Sequence[RetrievalResult]
            Coarse retrieval candidates.
        top_k : int, optional
            Number of results returned. Defaults to ``5``.

        Returns
        -------
        list[RerankResult]
            At most ``top_k`` results sorted by relevance, highest first.
            Equal scores keep candidate order. Never raises for individual
            scoring failures.
        """
        logger.info("Reranking %d candidate(s)", len(candidates))

        results: list[RerankResult] = []
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            results.extend(await asyncio.gather(*(self._score(query, c) for c in batch)))

        ranked = sorted(results, key=lambda r: r.relevance_score, reverse=True)
        return ranked[:max(0, top_k)]


def create_reranker(
        *,
        llm: BaseLLM,
        prompt_builder: PromptBuilder,
        config: Mapping[str, Any] | None = None,
    ) -> BaseReranker:
    """Create a reranker from the ``reranker`` config section."""
    cfg = dict(config or {})
    kind = str(cfg.get("type", "llm")).lower().strip()

    if kind == "llm":
        return LLMReranker(
            llm,
            prompt_builder,
            batch_size=int(cfg.get("batch_size", DEFAULT_BATCH_SIZE)),
            prompt_name=str(cfg.get("prompt_name", "rerank_score")),
            llm_kwargs=cfg.get("llm_kwargs"),
        )

    raise ValueError(f"Unsupported reranker type {kind!r}. Supported rerankers: ['llm'].")


__all__ = [
    "BaseReranker",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_TOP_K",
    "LLMReranker",
    "create_reranker",
    "parse_score_response",
]
