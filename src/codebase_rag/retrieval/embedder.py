"""codebase_rag.retrieval.embedder

Embedding interfaces, factories and chunk embedding for the retrieval layer.

This module defines a small provider-agnostic interface for producing vector
embeddings from text, along with concrete implementations backed by
LlamaIndex embedding wrappers. The underlying LlamaIndex model is
constructed lazily on first use and at most once per embedder instance; a
process-wide cache hands out one embedder per configuration.

Classes
-------
BaseEmbedder
    Abstract interface specifying the API used by the retrieval pipeline.
HuggingFaceEmbedder
    Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.
OpenAILikeEmbedder
    Embedder backed by an OpenAI-compatible HTTP API via LlamaIndex.

Functions
---------
create_embedder
    Create an embedder implementation from a configuration mapping.
get_shared_embedder
    Return the process-wide embedder for a configuration mapping.
prepare_text
    Build the text embedded for a chunk.
embed_chunks
    Embed chunks sequentially, attaching their vectors.
embed_query
    Embed a query string.

Exceptions
----------
EmbeddingError
    Raised when the backend cannot be acquired or an embedding call fails.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from langchain_core.callbacks import BaseCallbackHandler
from llama_index.core.base.embeddings.base import BaseEmbedding as LlamaIndexBaseEmbedding

from codebase_rag.common import CodeChunk, IndexedChunk

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
MAX_EMBED_CHARS = 2000
PROGRESS_EVERY = 10


class EmbeddingError(RuntimeError):
    """Raised when an embedding cannot be produced."""


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return bool(value)


class BaseEmbedder(ABC):
    """Abstract interface for text embedding.

    Concrete implementations describe how to build a provider-specific
    LlamaIndex embedding in :meth:`_build_backend`. The backend is built on
    the first call to :meth:`get_embedder` under a lock, so concurrent first
    calls share one instance. A failed build is remembered and re-raised
    without retrying.
    """

    def __init__(self) -> None:
        self._backend: Optional[LlamaIndexBaseEmbedding] = None
        self._backend_error: Optional[EmbeddingError] = None
        self._lock = threading.Lock()

    @abstractmethod
    def _build_backend(self) -> LlamaIndexBaseEmbedding:
        """Construct the underlying LlamaIndex embedding."""
        pass

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "BaseEmbedder":
        """Create an embedder from a configuration mapping.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration mapping.
        callback_manager : BaseCallbackHandler, optional
            Optional callback handler for logging/telemetry/streaming.

        Returns
        -------
        BaseEmbedder
            An embedder implementation. The backend is not built yet.
        """
        pass

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        """Return the LlamaIndex embedding instance, building it on first use.

        Returns
        -------
        LlamaIndexBaseEmbedding
            The underlying LlamaIndex embedding.

        Raises
        ------
        EmbeddingError
            If the backend cannot be constructed.
        """
        if self._backend is not None:
            return self._backend

        with self._lock:
            if self._backend is None:
                if self._backend_error is not None:
                    raise self._backend_error
                try:
                    self._backend = self._build_backend()
                except Exception as e:
                    self._backend_error = EmbeddingError(
                        f"Failed to initialise embedding backend {type(self).__name__}: {e}"
                    )
                    raise self._backend_error from e
                logger.info("Initialised embedding backend %s", type(self).__name__)

        return self._backend

    def embed_text(self, text: str) -> list[float]:
        """Embed a single text.

        Parameters
        ----------
        text : str
            Text to embed.

        Returns
        -------
        list[float]
            Embedding vector.
        """
        return list(self.get_embedder().get_text_embedding(text))

    def embed_query(self, query: str) -> list[float]:
        """Embed a query string using the backend's query embedding."""
        return list(self.get_embedder().get_query_embedding(query))


class HuggingFaceEmbedder(BaseEmbedder):
    """Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.huggingface.HuggingFaceEmbedding`.

    Parameters
    ----------
    model_name : str, optional
        Name or path of the embedding model. Defaults to
        ``sentence-transformers/all-MiniLM-L6-v2``.
    device : str or None, optional
        Device identifier (e.g., ``"cuda"``, ``"cpu"``, ``"mps"``). ``None``
        lets the backend choose.
    normalize : bool, optional
        Whether output vectors are L2-normalised. Defaults to ``True``.
    trust_remote_code : bool, optional
        Whether to allow custom model code from the Hugging Face Hub.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    """

    def __init__(
            self,
            model_name: str = DEFAULT_MODEL_NAME,
            *,
            device: Optional[str] = None,
            normalize: bool = True,
            trust_remote_code: bool = False,
            callback_manager: BaseCallbackHandler = None,
            model_kwargs: dict[str, Any] = None,
        ):
        super().__init__()
        self.model_name = model_name
        self.device = device
        self.normalize = normalize
        self.trust_remote_code = trust_remote_code
        self.callback_manager = callback_manager
        self.model_kwargs = model_kwargs or {}

    def _build_backend(self) -> LlamaIndexBaseEmbedding:
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        return HuggingFaceEmbedding(
            model_name=self.model_name,
            device=self.device,
            normalize=self.normalize,
            trust_remote_code=self.trust_remote_code,
            callback_manager=self.callback_manager,
            model_kwargs=self.model_kwargs,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "HuggingFaceEmbedder":
        """Create a Hugging Face embedder from a configuration mapping.

        Recognised keys are ``model_name``, ``device``, ``normalize``,
        ``trust_remote_code`` and ``model_kwargs``; all are optional.
        """
        return cls(
            model_name=config.get("model_name") or DEFAULT_MODEL_NAME,
            device=config.get("device"),
            normalize=_as_bool(config.get("normalize"), True),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            callback_manager=callback_manager,
            model_kwargs=config.get("model_kwargs", {}),
        )


class OpenAILikeEmbedder(BaseEmbedder):
    """Embedder backed by an OpenAI-compatible embedding API via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.openai_like.OpenAILikeEmbedding`.

    Parameters
    ----------
    model_name : str
        Model identifier for the embedding endpoint.
    api_base : str
        Base URL for the OpenAI-compatible embedding API endpoint.
    api_key : str or None, optional
        API key sent to the endpoint.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Retries performed by the HTTP client.
    """

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: str = None,
            callback_manager: BaseCallbackHandler = None,
            model_kwargs: dict[str, Any] = None,
            timeout: float = 60.0,
            max_retries: int = 3,
        ):
        super().__init__()
        self.model_name = model_name
        self.api_base = api_base
        self.api_key = api_key
        self.callback_manager = callback_manager
        self.model_kwargs = model_kwargs or {}
        self.timeout = timeout
        self.max_retries = max_retries

    def _build_backend(self) -> LlamaIndexBaseEmbedding:
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        return OpenAILikeEmbedding(
            model_name=self.model_name,
            api_base=self.api_base,
            api_key=self.api_key,
            callback_manager=self.callback_manager,
            additional_kwargs=self.model_kwargs,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
            callback_manager: BaseCallbackHandler = None
        ) -> "OpenAILikeEmbedder":
        """Create an OpenAI-compatible embedder from a configuration mapping.

        Raises
        ------
        KeyError
            If ``model_name`` or ``api_base`` is missing.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            callback_manager=callback_manager,
            model_kwargs=config.get("model_kwargs", {}),
            timeout=float(config.get("timeout", 60.0)),
            max_retries=int(config.get("max_retries", 3)),
        )


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty ``kind``/``type``/``provider`` value, or ``""``."""
    for key in ("kind", "type", "provider"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Reduce a kind string to lowercase alphanumerics (``"OpenAI-Like"`` -> ``"openailike"``)."""
    return re.sub(r"[^a-z0-9]", "", kind.lower())


_REGISTRY: dict[str, type[BaseEmbedder]] = {
    "huggingface": HuggingFaceEmbedder,
    "hf": HuggingFaceEmbedder,
    "sentencetransformers": HuggingFaceEmbedder,
    "openailike": OpenAILikeEmbedder,
    "openai": OpenAILikeEmbedder,
}


def create_embedder(
    config: Mapping[str, Any],
    callback_manager: Optional[BaseCallbackHandler] = None,
) -> BaseEmbedder:
    """Create an embedder implementation from a configuration mapping.

    The concrete implementation is selected by a discriminator field in the
    configuration (one of ``kind``, ``type`` or ``provider``). Without one,
    :class:`HuggingFaceEmbedder` is used.

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the embedder.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry/streaming.

    Returns
    -------
    BaseEmbedder
        An embedder implementation. The backend is built on first use.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedder expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw)

    cls = _REGISTRY.get(kind) if kind else HuggingFaceEmbedder
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(_REGISTRY.keys())}."
        )

    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


_shared_embedders: dict[str, BaseEmbedder] = {}
_shared_lock = threading.Lock()


def get_shared_embedder(config: Mapping[str, Any]) -> BaseEmbedder:
    """Return the process-wide embedder for ``config``.

    Equal configurations share one embedder instance, and therefore one
    loaded model.

    Parameters
    ----------
    config : Mapping[str, Any]
        Embedder configuration, as accepted by :func:`create_embedder`.

    Returns
    -------
    BaseEmbedder
        Cached embedder instance.
    """
    key = json.dumps(dict(config), sort_keys=True, default=str)
    with _shared_lock:
        embedder = _shared_embedders.get(key)
        if embedder is None:
            embedder = create_embedder(config)
            _shared_embedders[key] = embedder
    return embedder


# ----------------- Chunk embedding -----------------

def prepare_text(chunk: CodeChunk, max_chars: int = MAX_EMBED_CHARS) -> str:
    """Build the text embedded for ``chunk``.

    The text is the file path, the ``kind: name`` line when the chunk has a
    name, then the content, joined by newlines and truncated to
    ``max_chars`` characters.
    """
    parts = [f"File: {chunk.file_path}"]
    if chunk.name is not None:
        parts.append(f"{chunk.kind}: {chunk.name}")
    parts.append(chunk.content)
    return "\n".join(parts)[:max_chars]


def embed_chunks(
        chunks: Sequence[CodeChunk],
        embedder: BaseEmbedder,
        *,
        max_chars: int = MAX_EMBED_CHARS,
        progress_every: int = PROGRESS_EVERY,
    ) -> list[IndexedChunk]:
    """Embed chunks one at a time, in order.

    Parameters
    ----------
    chunks : Sequence[CodeChunk]
        Chunks to embed.
    embedder : BaseEmbedder
        Embedding backend.
    max_chars : int, optional
        Prepared text is truncated to this many characters.
    progress_every : int, optional
        Progress is logged after every ``progress_every`` chunks.

    Returns
    -------
    list[IndexedChunk]
        Chunks with embeddings attached, in input order.

    Raises
    ------
    EmbeddingError
        If any chunk fails to embed, or the backend returns vectors of
        differing lengths. No partial result is returned.
    """
    total = len(chunks)
    indexed: list[IndexedChunk] = []
    dimension: Optional[int] = None

    for i, chunk in enumerate(chunks, start=1):
        try:
            vector = embedder.embed_text(prepare_text(chunk, max_chars))
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(
                f"Failed to embed chunk {chunk.id} ({chunk.location}): {e}"
            ) from e

        if dimension is None:
            dimension = len(vector)
        elif len(vector) != dimension:
            raise EmbeddingError(
                f"Embedding for chunk {chunk.id} ({chunk.location}) has dimension "
                f"{len(vector)}, expected {dimension}"
            )

        indexed.append(IndexedChunk.from_chunk(chunk, vector))

        if i % progress_every == 0 or i == total:
            logger.info("Embedded %d/%d chunks", i, total)

    return indexed


def embed_query(
        text: str,
        embedder: BaseEmbedder,
        *,
        max_chars: int = MAX_EMBED_CHARS,
    ) -> list[float]:
    """Embed a query string, truncated to ``max_chars`` characters.

    Raises
    ------
    EmbeddingError
        If the backend call fails.
    """
    try:
        return embedder.embed_query(text[:max_chars])
    except EmbeddingError:
        raise
    except Exception as e:
        raise EmbeddingError(f"Failed to embed query: {e}") from e


__all__ = [
    "BaseEmbedder",
    "EmbeddingError",
    "HuggingFaceEmbedder",
    "OpenAILikeEmbedder",
    "create_embedder",
    "embed_chunks",
    "embed_query",
    "get_shared_embedder",
    "prepare_text",
]
