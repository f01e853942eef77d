"""repo_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used by the ingest and ask flows.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property

DEFAULT_CHUNK_SIZE = 200
DEFAULT_CHUNK_OVERLAP = 50
DEFAULT_TOP_K = 5
DEFAULT_PORT = 3000


def _expand_env(obj):
    """Recursively expand environment variables in a nested structure.

    Parameters
    ----------
    obj : Any
        Object to expand. Supported types are dictionaries, lists, and strings.
        Other types are returned unchanged.

    Returns
    -------
    Any
        A structure of the same shape as ``obj`` with environment variables
        expanded in all string values.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise TypeError(f"'{name}' must be a mapping, got {type(section)}.")
    return section


class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the loaded file, used to resolve relative paths.
    """

    def __init__(
            self,
            raw: dict | None,
            config_path: Path | None = None,
        ):
        self.raw = raw or {}
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
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f) or {}
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    @cached_property
    def embedder(self) -> dict:
        """Return the embedder configuration section (may be empty)."""
        return _section(self.raw, "embedder")

    @cached_property
    def vector_store(self) -> dict:
        """Return the vector store configuration section (may be empty)."""
        return _section(self.raw, "vector_store")

    @cached_property
    def generator_llm(self) -> dict:
        """Return the synthesis LLM configuration section.

        Raises
        ------
        KeyError
            If ``generator_llm`` is missing from the configuration.
        """
        if "generator_llm" not in self.raw:
            raise KeyError("Missing 'generator_llm' in configuration.")
        return _section(self.raw, "generator_llm")

    @cached_property
    def chunking(self) -> dict:
        """Return validated chunking parameters.

        Returns
        -------
        dict
            Mapping with integer ``size`` and ``overlap`` keys.

        Raises
        ------
        ValueError
            If ``overlap`` is negative or not smaller than ``size``.
        """
        section = _section(self.raw, "chunking")
        size = int(section.get("size", DEFAULT_CHUNK_SIZE))
        overlap = int(section.get("overlap", DEFAULT_CHUNK_OVERLAP))
        if size < 1:
            raise ValueError(f"'chunking.size' must be positive, got {size}.")
        if overlap < 0 or overlap >= size:
            raise ValueError(
                f"'chunking.overlap' must satisfy 0 <= overlap < size, got overlap={overlap}, size={size}."
            )
        return {"size": size, "overlap": overlap}

    @cached_property
    def retriever(self) -> dict:
        """Return the retriever configuration section with ``top_k`` filled in."""
        section = dict(_section(self.raw, "retriever"))
        section["top_k"] = int(section.get("top_k") or DEFAULT_TOP_K)
        return section

    @cached_property
    def github(self) -> dict:
        """Return the GitHub source/OAuth configuration section (may be empty)."""
        return _section(self.raw, "github")

    @cached_property
    def server(self) -> dict:
        """Return the HTTP server section with ``host`` and ``port`` filled in."""
        section = dict(_section(self.raw, "server"))
        section.setdefault("host", "0.0.0.0")
        section["port"] = int(section.get("port", DEFAULT_PORT))
        return section

    @cached_property
    def logging(self) -> dict:
        """Return the logging section with ``level`` filled in."""
        section = dict(_section(self.raw, "logging"))
        section["level"] = str(section.get("level", "INFO")).upper()
        return section

    @cached_property
    def prompts(self):
        """Return the prompts configuration entry.

        Returns
        -------
        str or list[str] or None
            A single source, a list of sources, or ``None`` if not configured.
            Sources use the ``pkg:``/``file:``/plain path formats accepted by
            :meth:`repo_rag.generation.prompt_builder.PromptBuilder.register_from_source`.
        """
        return self.raw.get("prompts")

    @cached_property
    def prompt_name(self) -> str | None:
        """Return the configured prompt name, or ``None`` to use the default."""
        return self.raw.get("prompt_name")
