"""codebase_rag.config

Configuration subsystem for the codebase RAG pipeline.

This package provides structured access to configuration loaded from YAML
files. It exposes validated, documented interfaces rather than raw
configuration dictionaries.

Modules
-------
global_config
    Global configuration loader, cached accessors and logging setup.
"""
from .global_config import GlobalConfig, configure_logging

__all__ = ["GlobalConfig", "configure_logging"]
