"""codebase_rag.generation.generator

Grounded answer synthesis from reranked code chunks.

Classes
-------
AnswerGenerator
    Builds the grounded prompt from reranked chunks and calls the LLM.

Attributes
----------
INSUFFICIENT_CONTEXT_MESSAGE : str
    Returned without calling the LLM when no chunks were retrieved.
GENERATION_FAILED_MESSAGE : str
    Returned when the LLM produces an empty completion.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from codebase_rag.common import RerankResult
from codebase_rag.generation.llm_interface import BaseLLM
from codebase_rag.generation.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

INSUFFICIENT_CONTEXT_MESSAGE = (
    "No relevant code was found in the index, so this question cannot be answered."
)
GENERATION_FAILED_MESSAGE = "Failed to generate an answer."


class AnswerGenerator:
    """Answer a question from reranked code chunks.

    Parameters
    ----------
    llm : BaseLLM
        Generation model. Only :meth:`BaseLLM.complete` is used.
    prompt_builder : PromptBuilder
        Registry holding the answer template.
    prompt_name : str, optional
        Answer template name. Defaults to ``"answer_codebase_question"``.
    llm_kwargs : Mapping[str, Any] or None, optional
        Extra keyword arguments for the completion call. Defaults to
        ``temperature=0.3``.
    """

    def __init__(
            self,
            llm: BaseLLM,
            prompt_builder: PromptBuilder,
            *,
            prompt_name: str = "answer_codebase_question",
            llm_kwargs: Optional[Mapping[str, Any]] = None,
        ):
        self.llm = llm
        self.prompt_builder = prompt_builder
        self.prompt_name = prompt_name
        self.llm_kwargs = dict(llm_kwargs) if llm_kwargs is not None else {"temperature": 0.3}

    def build_prompt(self, query: str, results: Sequence[RerankResult]) -> tuple[str, str]:
        """Render the ``(system, user)`` prompt pair for ``query``."""
        return self.prompt_builder.build_parts(self.prompt_name, query=query, results=list(results))

    def generate(self, query: str, results: Sequence[RerankResult]) -> str:
        """Generate an answer grounded in ``results``.

        Parameters
        ----------
        query : str
            User question.
        results : Sequence[RerankResult]
            Reranked chunks, most relevant first.

        Returns
        -------
        str
            The model's answer, :data:`INSUFFICIENT_CONTEXT_MESSAGE` when
            ``results`` is empty, or :data:`GENERATION_FAILED_MESSAGE` when
            the model returns nothing.
        """
        if not results:
            return INSUFFICIENT_CONTEXT_MESSAGE

        system_prompt, user_prompt = self.build_prompt(query, results)
        logger.info("Generating answer from %d chunk(s)", len(results))

        answer = self.llm.complete(system_prompt, user_prompt, **self.llm_kwargs)
        if not answer or not answer.strip():
            logger.warning("LLM returned an empty answer")
            return GENERATION_FAILED_MESSAGE
        return answer


__all__ = [
    "AnswerGenerator",
    "GENERATION_FAILED_MESSAGE",
    "INSUFFICIENT_CONTEXT_MESSAGE",
]
