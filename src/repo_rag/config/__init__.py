"""repo_rag.config

Configuration subsystem for repo_rag.

This package provides structured access to global configuration loaded from
YAML files. It exposes validated, documented accessors rather than raw
configuration dictionaries.

Modules
-------
global_config
    Global configuration loader and cached accessors.
"""
from .global_config import GlobalConfig

__all__ = ["GlobalConfig"]
