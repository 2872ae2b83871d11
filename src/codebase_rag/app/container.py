"""codebase_rag.app.container

Composition root for the codebase RAG system.

This module is the single place where concrete implementations are wired
together from configuration (LLM clients, embedder, store, reranker,
generator and the two pipelines). Components are constructed lazily and
cached on first access to avoid repeated expensive initialisation.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

Examples
--------
>>> from codebase_rag.config import GlobalConfig
>>> from codebase_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config/config.yaml")
>>> c = build_container(cfg)
>>> c.index_pipeline.run("path/to/repo")
>>> answer = c.pipeline.run("Where is the session token refreshed?")
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class CodebaseRAGContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`codebase_rag.config.GlobalConfig`).
    """

    config: Any

    @cached_property
    def generator_llm(self) -> Any:
        """Return the LLM used to generate final answers."""
        from codebase_rag.generation.llm_interface import create_llm

        return create_llm(dict(_as_mapping(self.config.generator_llm)))

    @cached_property
    def scoring_llm(self) -> Any:
        """Return the LLM used for relevance scoring.

        Shares the generator client when both sections are the same.
        """
        section = _as_mapping(self.config.scoring_llm)
        if section is _as_mapping(self.config.generator_llm):
            return self.generator_llm

        from codebase_rag.generation.llm_interface import create_llm

        return create_llm(dict(section))

    @cached_property
    def prompt_builder(self) -> Any:
        """Return the prompt builder.

        The built-in templates are always registered; sources listed in
        ``config.prompts`` are registered after them and may override them.
        Relative sources are resolved against the config file directory.
        """
        from codebase_rag.generation.prompt_builder import PromptBuilder

        builder = PromptBuilder.with_defaults()

        extra = getattr(self.config, "prompts", None) or []
        if isinstance(extra, str):
            extra = [extra]
        if not isinstance(extra, (list, tuple)):
            raise TypeError(f"config.prompts must be a str or list[str], got {type(extra)!r}")

        base_dir = getattr(self.config, "base_dir", None)
        for source in extra:
            builder.register_from_source(str(source), base_dir=base_dir)
        return builder

    @cached_property
    def embedder(self) -> Any:
        """Return the process-wide embedder for the configured backend."""
        from codebase_rag.retrieval.embedder import get_shared_embedder

        return get_shared_embedder(_as_mapping(self.config.embedder))

    @cached_property
    def store_path(self) -> Path:
        """Return the resolved index file path."""
        return Path(self.config.store_path)

    @cached_property
    def store(self) -> Any:
        """Return the JSON index store bound to :attr:`store_path`."""
        from codebase_rag.retrieval.vector_store import JsonIndexStore

        return JsonIndexStore(self.store_path)

    @cached_property
    def splitter(self) -> Any:
        """Return the code splitter configured from ``config.splitter``."""
        from codebase_rag.retrieval.text_splitter import CodeSplitter

        section = _as_mapping(self.config.splitter)
        return CodeSplitter(**{
            key: int(section[key])
            for key in ("min_chunk_size", "max_chunk_size", "window_lines", "window_overlap")
            if key in section
        })

    @cached_property
    def reranker(self) -> Any:
        """Return the LLM reranker."""
        from codebase_rag.retrieval.reranker import create_reranker

        return create_reranker(
            llm=self.scoring_llm,
            prompt_builder=self.prompt_builder,
            config=_as_mapping(self.config.reranker),
        )

    @cached_property
    def generator(self) -> Any:
        """Return the answer generator."""
        from codebase_rag.generation.generator import AnswerGenerator

        section = _as_mapping(self.config.generator_llm)
        return AnswerGenerator(
            self.generator_llm,
            self.prompt_builder,
            prompt_name=str(section.get("prompt_name", "answer_codebase_question")),
            llm_kwargs=section.get("call_kwargs"),
        )

    @cached_property
    def index_pipeline(self) -> Any:
        """Return the index build pipeline."""
        from codebase_rag.pipelines.index_pipeline import IndexPipeline
        from codebase_rag.retrieval.document_loader import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, MAX_FILE_BYTES

        loader = _as_mapping(self.config.loader)
        return IndexPipeline(
            self.embedder,
            self.store,
            splitter=self.splitter,
            include_patterns=loader.get("include") or DEFAULT_INCLUDE,
            exclude_patterns=loader.get("exclude") or DEFAULT_EXCLUDE,
            max_file_bytes=int(loader.get("max_file_bytes", MAX_FILE_BYTES)),
        )

    @cached_property
    def pipeline(self) -> Any:
        """Return the fully wired query pipeline."""
        from codebase_rag.pipelines.rag_pipeline import RAGPipeline
        from codebase_rag.retrieval.reranker import DEFAULT_TOP_K
        from codebase_rag.retrieval.retriever import DEFAULT_TOP_N

        return RAGPipeline(
            self.store,
            self.embedder,
            self.reranker,
            self.generator,
            top_n=int(_as_mapping(self.config.retriever).get("top_n", DEFAULT_TOP_N)),
            top_k=int(_as_mapping(self.config.reranker).get("top_k", DEFAULT_TOP_K)),
        )


def build_container(config: Any) -> CodebaseRAGContainer:
    """Create a :class:`CodebaseRAGContainer`.

    Single entry point for the FastAPI startup hook, the CLI scripts and
    tests.
    """
    return CodebaseRAGContainer(config=config)


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce ``obj`` into a mapping (mappings pass through, objects use ``vars``).

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return obj
    if hasattr(obj, "__dict__"):
        return dict(vars(obj))
    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["CodebaseRAGContainer", "build_container"]
