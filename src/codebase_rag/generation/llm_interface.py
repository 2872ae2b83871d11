"""codebase_rag.generation.llm_interface

Unified interface and factory for large language model (LLM) backends.

The reranker scores chunks through :meth:`BaseLLM.acomplete` and the answer
generator calls :meth:`BaseLLM.complete` with a system/user prompt pair.
Both backends talk to an OpenAI-compatible HTTP endpoint through LangChain,
so hosted models and local servers (vLLM, llama.cpp, Ollama) are configured
the same way.

Classes
-------
BaseLLM
    Abstract interface used by the reranker and the answer generator.
OpenAILikeLLM
    Text completions over an OpenAI-compatible API via LangChain.
OpenAIChatLikeLLM
    Chat completions over an OpenAI-compatible API via LangChain.

Functions
---------
create_llm
    Construct an LLM implementation from a configuration mapping.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from langchain_core.callbacks import BaseCallbackHandler
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI, OpenAI

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_COMPLETION_STOP = ["User:"]


def _coerce_top_p(value: Any) -> Optional[float]:
    """Return ``value`` as a float in ``(0, 1)``, or ``None``."""
    if value is None:
        return None
    try:
        top_p = float(value)
    except (TypeError, ValueError):
        return None
    return top_p if 0.0 < top_p < 1.0 else None


def _response_text(response: Any) -> str:
    """Extract text from a LangChain chat message or completion string."""
    content = response.content if hasattr(response, "content") else response
    return content if isinstance(content, str) else str(content)


def _join_prompt(system_prompt: str, user_prompt: str) -> str:
    return f"{system_prompt}\n\nUser: {user_prompt}\nAssistant:"


class BaseLLM(ABC):
    """Abstract interface for LLM text generation.

    Implementations are safe to share between the reranker and the answer
    generator; per-call options are passed as keyword arguments.
    """

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "BaseLLM":
        """Create an LLM instance from a configuration mapping.

        Parameters
        ----------
        config : Mapping[str, Any]
            LLM config section. ``model_name`` and ``api_base`` are required.
        callback_manager : BaseCallbackHandler, optional
            Optional callback handler for logging/telemetry/streaming.

        Raises
        ------
        ValueError
            If ``model_name`` or ``api_base`` is missing.
        """
        pass

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, **kwargs) -> str:
        """Generate a reply to ``user_prompt`` under ``system_prompt``.

        Parameters
        ----------
        system_prompt : str
            Instructions and context.
        user_prompt : str
            The user's message.
        **kwargs
            Per-call options such as ``temperature`` or ``max_tokens``.

        Returns
        -------
        str
            Generated text.
        """
        pass

    @abstractmethod
    async def acomplete(self, prompt: str, **kwargs) -> str:
        """Asynchronously generate a reply to a single prompt."""
        pass


class OpenAILikeLLM(BaseLLM):
    """Completion-style LLM over an OpenAI-compatible API.

    Wraps :class:`langchain_openai.OpenAI`. The system and user prompts are
    joined into one completion prompt and generation stops at the next
    ``"User:"`` turn unless other stop sequences are configured.

    Parameters
    ----------
    model_name : str
        Model identifier served by the endpoint.
    api_base : str
        Base URL of the endpoint, e.g. ``http://localhost:8000/v1``.
    api_key : str, optional
        API key. Local servers that skip authentication accept the default
        ``"fake"``.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Client retries on transient failures.
    **model_kwargs : Any
        Forwarded to the LangChain wrapper. ``stop_list`` sets the default
        stop sequences.
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        **model_kwargs: Any,
    ):
        model_kwargs = dict(model_kwargs)
        self.stop = model_kwargs.pop("stop_list", None) or DEFAULT_COMPLETION_STOP
        top_p = _coerce_top_p(model_kwargs.pop("top_p", None))

        self.llm = OpenAI(
            model_name=model_name,
            openai_api_base=api_base,
            openai_api_key=api_key or "fake",
            top_p=top_p or 1,
            timeout=timeout,
            max_retries=max_retries,
            callbacks=[callback_manager] if callback_manager is not None else None,
            **model_kwargs,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "OpenAILikeLLM":
        return cls(**_init_kwargs_from_config(config), callback_manager=callback_manager)

    def complete(self, system_prompt: str, user_prompt: str, **kwargs) -> str:
        stop = kwargs.pop("stop", None) or self.stop
        response = self.llm.generate([_join_prompt(system_prompt, user_prompt)], stop=stop, **kwargs)
        return response.generations[0][0].text

    async def acomplete(self, prompt: str, **kwargs) -> str:
        stop = kwargs.pop("stop", None) or self.stop
        response = await self.llm.agenerate([prompt], stop=stop, **kwargs)
        return response.generations[0][0].text


class OpenAIChatLikeLLM(BaseLLM):
    """Chat LLM over an OpenAI-compatible Chat Completions API.

    Wraps :class:`langchain_openai.ChatOpenAI`. :meth:`complete` sends the
    system prompt and the user prompt as two separate messages.

    Parameters
    ----------
    model_name : str
        Model identifier (e.g., ``"gpt-4o-mini"``).
    api_base : str
        Base URL of the endpoint.
    api_key : str, optional
        API key. Defaults to ``"fake"``.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Client retries on transient failures.
    **model_kwargs : Any
        Forwarded to ``ChatOpenAI`` (e.g., ``temperature``, ``max_tokens``).
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        **model_kwargs: Any,
    ):
        model_kwargs = dict(model_kwargs)
        top_p = _coerce_top_p(model_kwargs.pop("top_p", None))
        if top_p is not None:
            model_kwargs["top_p"] = top_p

        self.llm = ChatOpenAI(
            model=model_name,
            base_url=api_base,
            api_key=api_key or "fake",
            timeout=timeout,
            max_retries=max_retries,
            callbacks=[callback_manager] if callback_manager is not None else None,
            **model_kwargs,
        )

    @classmethod
    def from_config_dict(
        cls,
        config: Mapping[str, Any],
        callback_manager: BaseCallbackHandler = None,
    ) -> "OpenAIChatLikeLLM":
        return cls(**_init_kwargs_from_config(config), callback_manager=callback_manager)

    def complete(self, system_prompt: str, user_prompt: str, **kwargs) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        return _response_text(self.llm.invoke(messages, **kwargs))

    async def acomplete(self, prompt: str, **kwargs) -> str:
        return _response_text(await self.llm.ainvoke(prompt, **kwargs))


def _init_kwargs_from_config(config: Mapping[str, Any]) -> dict[str, Any]:
    """Map an LLM config section to constructor keyword arguments."""
    model_name = config.get("model_name")
    api_base = config.get("api_base")
    if not model_name or not api_base:
        raise ValueError("LLM config requires 'model_name' and 'api_base'.")

    return {
        "model_name": model_name,
        "api_base": api_base,
        "api_key": config.get("api_key"),
        "timeout": float(config.get("timeout", DEFAULT_TIMEOUT)),
        "max_retries": int(config.get("max_retries", DEFAULT_MAX_RETRIES)),
        **dict(config.get("model_kwargs") or {}),
    }


# ----------------- Factory helpers -----------------

_KIND_ALIASES = {
    "openailike": "openai_like",
    "openai": "openai_like",
    "completion": "openai_like",
    "openaichatlike": "openai_chat",
    "openaichat": "openai_chat",
    "chatopenai": "openai_chat",
    "chat": "openai_chat",
}

_REGISTRY: dict[str, type[BaseLLM]] = {
    "openai_like": OpenAILikeLLM,
    "openai_chat": OpenAIChatLikeLLM,
}


def _get_llm_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty ``kind``/``type``/``provider`` value, or ``""``."""
    for key in ("kind", "type", "provider"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_llm_kind(kind: str) -> str:
    """Map a kind string to a registry key.

    Case, hyphens, underscores and spaces are ignored, so ``"OpenAIChatLike"``,
    ``"openai-chat"`` and ``"chat"`` all select ``"openai_chat"``.
    """
    compact = re.sub(r"[^a-z0-9]", "", kind.lower())
    return _KIND_ALIASES.get(compact, compact)


def create_llm(config: Mapping[str, Any], callback_manager: Optional[BaseCallbackHandler] = None) -> BaseLLM:
    """Create an LLM implementation from a configuration mapping.

    The implementation is selected by the first of ``kind``, ``type`` or
    ``provider`` present in ``config``.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If no discriminator is given, it names an unsupported backend, or
        ``model_name``/``api_base`` is missing.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_llm expected a mapping/dict, got {type(config)}")

    kind_raw = _get_llm_kind(config)
    kind = _normalize_llm_kind(kind_raw)

    if not kind:
        raise ValueError(
            "LLM config is missing a discriminator field (type/kind/provider). "
            "Add e.g. type: OpenAIChatLike or type: OpenAILike."
        )

    cls = _REGISTRY.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown LLM kind '{kind_raw}' (normalized to '{kind}'). Supported kinds: {sorted(_KIND_ALIASES)}."
        )

    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


__all__ = [
    "BaseLLM",
    "OpenAIChatLikeLLM",
    "OpenAILikeLLM",
    "create_llm",
]
