"""codebase_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration
sections used across the indexing and query pipelines.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.

Functions
---------
configure_logging
    Configure root logging from the ``logging`` section.
"""

from __future__ import annotations

import logging
import os
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

DEFAULT_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _expand_env(obj):
    """Recursively expand ``${VAR}`` environment variables in nested dicts, lists and strings."""
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the loaded file. Relative paths in the configuration
        are resolved against its directory.
    """

    def __init__(
            self,
            raw: dict,
            config_path: Path | None = None,
        ):
        if not isinstance(raw, dict):
            raise TypeError(f"Configuration root must be a mapping, got {type(raw).__name__}.")
        self.raw = raw
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.

        Raises
        ------
        FileNotFoundError
            If ``path`` does not exist.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f) or {}
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    @property
    def base_dir(self) -> Path:
        """Directory relative paths are resolved against."""
        if self.config_path is not None:
            return Path(self.config_path).parent
        return Path.cwd()

    def resolve_path(self, value: str | Path) -> Path:
        """Resolve ``value`` against the config file's directory when relative."""
        p = Path(value).expanduser()
        if not p.is_absolute():
            p = self.base_dir / p
        return p.resolve()

    def _section(self, name: str, *, required: bool = False) -> dict:
        """Return section ``name`` as a dict, validating its type."""
        section = self.raw.get(name)
        if section is None:
            if required:
                raise KeyError(f"Missing '{name}' in configuration.")
            return {}
        if not isinstance(section, dict):
            raise TypeError(f"'{name}' must be a mapping, got {type(section).__name__}.")
        return section

    @cached_property
    def generator_llm(self) -> dict:
        """Return the ``generator_llm`` section.

        Raises
        ------
        KeyError
            If the section is missing.
        """
        return self._section("generator_llm", required=True)

    @cached_property
    def scoring_llm(self) -> dict:
        """Return the ``scoring_llm`` section, falling back to ``generator_llm``."""
        section = self._section("scoring_llm")
        return section or self.generator_llm

    @cached_property
    def embedder(self) -> dict:
        """Return the ``embedder`` section.

        Raises
        ------
        KeyError
            If the section is missing.
        """
        return self._section("embedder", required=True)

    @cached_property
    def loader(self) -> dict:
        """Return the ``loader`` section.

        Recognised keys are ``include``, ``exclude`` (lists of glob patterns)
        and ``max_file_bytes``.

        Raises
        ------
        TypeError
            If ``include`` or ``exclude`` is not a list of strings.
        """
        section = self._section("loader")
        for key in ("include", "exclude"):
            patterns = section.get(key)
            if patterns is None:
                continue
            if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
                raise TypeError(f"'loader.{key}' must be a list of glob strings.")
        return section

    @cached_property
    def splitter(self) -> dict:
        """Return the ``splitter`` section (chunk size and window settings)."""
        return self._section("splitter")

    @cached_property
    def store(self) -> dict:
        """Return the ``store`` section."""
        return self._section("store")

    @cached_property
    def store_path(self) -> Path:
        """Return the resolved index file path (``store.path``, default ``data/vectors.json``)."""
        return self.resolve_path(self.store.get("path", "data/vectors.json"))

    @cached_property
    def retriever(self) -> dict:
        """Return the ``retriever`` section."""
        return self._section("retriever")

    @cached_property
    def reranker(self) -> dict:
        """Return the ``reranker`` section."""
        return self._section("reranker")

    @cached_property
    def prompts(self):
        """Return the ``prompts`` entry.

        Returns
        -------
        str or list[str] or None
            A single prompt source, a list of sources, or ``None`` when only
            the built-in templates are used.
        """
        return self.raw.get("prompts")

    @cached_property
    def logging(self) -> dict:
        """Return the ``logging`` section (``level`` and ``format``)."""
        return self._section("logging")


def configure_logging(section: Optional[Mapping[str, Any]] = None) -> None:
    """Configure root logging for scripts from a ``logging`` config section.

    Parameters
    ----------
    section : Mapping[str, Any] or None, optional
        Mapping with optional ``level`` (name or number, default ``INFO``)
        and ``format`` keys.
    """
    section = dict(section or {})
    level = section.get("level", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level: {section.get('level')!r}")

    logging.basicConfig(level=level, format=section.get("format", DEFAULT_LOG_FORMAT))
