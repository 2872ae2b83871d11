"""codebase_rag.generation.prompt_builder

Named Jinja2 prompt templates.

Templates are JSON objects with a ``name``, an optional ``system`` block,
optional ``few_shot`` examples and a ``user`` block. The built-in templates
(``rerank_score`` and ``answer_codebase_question``) ship as package data;
further files may be registered on top and override them by name.

Classes
-------
PromptTemplate
    A single named template.
PromptBuilder
    Registry of templates, loadable from JSON files or package resources.

Attributes
----------
DEFAULT_PROMPT_SOURCE : str
    Package resource holding the built-in templates.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jinja2 import Environment, StrictUndefined

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_SOURCE = "pkg:codebase_rag.prompts:default.json"

# StrictUndefined turns a missing variable into an error instead of an empty string.
_ENV = Environment(undefined=StrictUndefined, keep_trailing_newline=False, autoescape=False)


@dataclass
class PromptTemplate:
    """A named prompt template.

    Attributes
    ----------
    name : str
        Registry key.
    system : str
        System block; may be empty.
    few_shot : list[dict[str, str]]
        Examples rendered after the system block, each with a ``"content"`` key.
    user : str
        User block.
    """

    name: str
    system: str = ""
    few_shot: List[Dict[str, str]] = field(default_factory=list)
    user: str = ""

    def _system_text(self) -> str:
        parts = [self.system] if self.system else []
        parts.extend(example.get("content", "") for example in self.few_shot)
        return "\n".join(parts)

    def render(self, **kwargs) -> str:
        """Render system, examples and user block as one newline-joined string.

        Raises
        ------
        jinja2.UndefinedError
            If the template references a variable missing from ``kwargs``.
        """
        text = "\n".join(p for p in (self._system_text(), self.user) if p)
        return _ENV.from_string(text).render(**kwargs)

    def render_parts(self, **kwargs) -> tuple[str, str]:
        """Render a ``(system, user)`` pair for chat models.

        Few-shot examples belong to the system part.
        """
        system = _ENV.from_string(self._system_text()).render(**kwargs)
        user = _ENV.from_string(self.user).render(**kwargs)
        return system, user


class PromptBuilder:
    """Registry of :class:`PromptTemplate` objects keyed by name."""

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    @classmethod
    def with_defaults(cls) -> "PromptBuilder":
        """Return a builder holding the built-in templates."""
        builder = cls()
        builder.register_from_source(DEFAULT_PROMPT_SOURCE)
        return builder

    def register_from_dict(self, data: Dict[str, Any]) -> str:
        """Register one template definition and return its name.

        A definition whose name is already registered replaces the old one.

        Raises
        ------
        KeyError
            If ``name`` is missing.
        TypeError
            If ``name`` is not a string or ``few_shot`` is not a list.
        ValueError
            If ``name`` is blank.
        """
        name = data.get("name")
        if name is None:
            raise KeyError("Template definition missing required key: 'name'")
        if not isinstance(name, str):
            raise TypeError(f"Template 'name' must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Template 'name' must be a non-empty string")

        few_shot = data.get("few_shot") or []
        if not isinstance(few_shot, list):
            raise TypeError(f"Template {name!r}: 'few_shot' must be a list, got {type(few_shot)!r}")

        if name in self.templates:
            logger.info("Prompt template %r overridden", name)
        self.templates[name] = PromptTemplate(
            name=name,
            system=data.get("system") or "",
            few_shot=few_shot,
            user=data.get("user") or "",
        )
        return name

    def _register_json(self, text: str, origin: str) -> List[str]:
        data = json.loads(text)
        items = [data] if isinstance(data, dict) else data
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise TypeError(f"{origin} must hold a template object or a list of them")
        return [self.register_from_dict(item) for item in items]

    def register_from_file(self, path: Union[Path, str], base_dir: Optional[Path] = None) -> List[str]:
        """Register the templates in a JSON file.

        Parameters
        ----------
        path : Path or str
            Template file. Relative paths are resolved against ``base_dir``
            when it is given.
        base_dir : Path or None, optional
            Anchor for relative paths, usually the config file directory.

        Returns
        -------
        list[str]
            Names registered from the file, in file order.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If the file is not ``.json``.
        """
        p = Path(path)
        if base_dir is not None and not p.is_absolute():
            p = Path(base_dir) / p
        p = p.resolve()
        if not p.is_file():
            raise FileNotFoundError(f"Prompt file not found: {p}")
        if p.suffix.lower() != ".json":
            raise ValueError(f"Prompt files must be JSON, got {p.suffix!r}")

        return self._register_json(p.read_text(encoding="utf-8"), f"Prompt file {p}")

    def register_from_package(self, package: str, resource_path: str) -> List[str]:
        """Register the templates in a JSON resource shipped inside ``package``."""
        if not resource_path.lower().endswith(".json"):
            raise ValueError(f"Prompt resources must be JSON, got {resource_path!r}")

        try:
            res = resources.files(package).joinpath(resource_path)
        except ModuleNotFoundError as e:
            raise FileNotFoundError(f"Unknown package for prompt resource: {package}") from e
        if not res.is_file():
            raise FileNotFoundError(f"Prompt resource not found: pkg:{package}:{resource_path}")

        return self._register_json(res.read_text(encoding="utf-8"), f"pkg:{package}:{resource_path}")

    def register_from_source(self, source: str, base_dir: Optional[Path] = None) -> List[str]:
        """Register templates from ``pkg:<package>:<resource>``, ``file:<path>`` or a plain path."""
        if source.startswith("pkg:"):
            package, sep, resource_path = source[len("pkg:"):].partition(":")
            if not sep:
                raise ValueError(f"Expected 'pkg:<package>:<resource_path>', got {source!r}")
            return self.register_from_package(package.strip(), resource_path.strip())

        path = source[len("file:"):].strip() if source.startswith("file:") else source
        return self.register_from_file(path, base_dir=base_dir)

    def has_prompt(self, name: str) -> bool:
        return name in self.templates

    def get_template(self, name: str) -> PromptTemplate:
        """Return the template registered as ``name``.

        Raises
        ------
        KeyError
            If no such template exists.
        """
        try:
            return self.templates[name]
        except KeyError:
            raise KeyError(f"Unknown prompt template {name!r}; registered: {sorted(self.templates)}") from None

    def build(self, name: str, **kwargs) -> str:
        """Render template ``name`` as a single string."""
        return self.get_template(name).render(**kwargs)

    def build_parts(self, name: str, **kwargs) -> tuple[str, str]:
        """Render template ``name`` as a ``(system, user)`` pair."""
        return self.get_template(name).render_parts(**kwargs)


__all__ = ["DEFAULT_PROMPT_SOURCE", "PromptBuilder", "PromptTemplate"]
