"""repo_rag.app.container

Composition root for repo_rag.

This module is the single place where concrete implementations are wired
together from configuration (embedder, vector store, GitHub collaborators,
prompt assembly, synthesis LLM and the two pipelines). Components are
constructed lazily and cached on first access, so each process holds exactly
one embedder and one index client.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

Examples
--------
>>> from repo_rag.config import GlobalConfig
>>> from repo_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config.yaml")
>>> c = build_container(cfg)
>>> c.warm_up()
>>> answer = c.pipeline.ask("octo-org", "tools", "Where is the CLI defined?")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property, wraps
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
import threading

from repo_rag.generation.prompt_builder import DEFAULT_PROMPT_NAME, DEFAULT_PROMPT_SOURCE


def _component(method: Callable[[Any], Any]) -> cached_property:
    """Cached component built at most once, even under concurrent first access.

    ``functools.cached_property`` does not lock on Python 3.12+; builds are
    serialised on the container's re-entrant ``_build_lock`` instead.
    """
    name = method.__name__

    @wraps(method)
    def build(self):
        with self._build_lock:
            if name not in self.__dict__:
                self.__dict__[name] = method(self)
            return self.__dict__[name]

    return cached_property(build)


@dataclass(frozen=True)
class RepoRagContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`repo_rag.config.GlobalConfig`).
    """

    config: Any
    _build_lock: Any = field(default_factory=threading.RLock, init=False, repr=False, compare=False)

    @_component
    def embedder(self) -> Any:
        """Return the embedder shared by ingest and ask flows (not yet loaded)."""
        from repo_rag.retrieval.embedder import create_embedder

        return create_embedder(_as_mapping(self.config.embedder))

    def warm_up(self, progress_callback: Optional[Callable[[dict], None]] = None) -> Any:
        """Load the embedding model.

        Raises
        ------
        EmbeddingFailure
            If the model cannot be loaded; callers treat this as fatal.
        """
        return self.embedder.initialize(progress_callback)

    @_component
    def vector_store(self) -> Any:
        """Return the vector store client/wrapper.

        A relative ``path`` for an embedded Qdrant store is resolved against
        the directory of the loaded config file.
        """
        from repo_rag.retrieval.vector_store import create_vector_store

        section = dict(_as_mapping(self.config.vector_store))
        path = section.get("path")
        base_dir = self._base_dir
        if path and base_dir is not None and not Path(str(path)).is_absolute():
            section["path"] = str((base_dir / str(path)).resolve())

        vector_size = _as_mapping(self.config.embedder).get("dimension")
        return create_vector_store(section, vector_size=int(vector_size) if vector_size else None)

    @_component
    def credentials(self) -> Any:
        """Return the process-wide GitHub token holder."""
        from repo_rag.sources.github import SessionCredentials

        return SessionCredentials(_as_mapping(self.config.github).get("token") or None)

    @_component
    def source_fetcher(self) -> Any:
        from repo_rag.sources.github import GitHubSourceFetcher

        return GitHubSourceFetcher.from_config_dict(_as_mapping(self.config.github))

    @_component
    def oauth(self) -> Any:
        from repo_rag.sources.github import GitHubOAuth

        return GitHubOAuth.from_config_dict(_as_mapping(self.config.github))

    @_component
    def public_url(self) -> str:
        from repo_rag.sources.github import resolve_public_url

        github = _as_mapping(self.config.github)
        port = _as_mapping(self.config.server).get("port", 3000)
        return resolve_public_url(github.get("public_url"), int(port))

    @_component
    def prompt_builder(self) -> Any:
        """Return the prompt builder.

        The bundled default template is always registered; sources listed in
        ``config.prompts`` are added on top and resolved relative to the
        config file directory.
        """
        from repo_rag.generation.prompt_builder import PromptBuilder

        builder = PromptBuilder()
        builder.register_from_source(DEFAULT_PROMPT_SOURCE)

        prompts = getattr(self.config, "prompts", None)
        if prompts is None:
            return builder

        if isinstance(prompts, str):
            sources = [prompts]
        elif isinstance(prompts, (list, tuple)):
            sources = [str(p) for p in prompts]
        else:
            raise TypeError(f"config.prompts must be a str or list[str], got {type(prompts)!r}")

        for src in sources:
            builder.register_from_source(src, base_dir=self._base_dir)

        return builder

    @_component
    def context_assembler(self) -> Any:
        from repo_rag.generation.prompt_builder import ContextAssembler

        prompt_name = getattr(self.config, "prompt_name", None) or DEFAULT_PROMPT_NAME
        return ContextAssembler(prompt_builder=self.prompt_builder, prompt_name=str(prompt_name))

    @_component
    def generator_llm(self) -> Any:
        """Return the synthesis LLM client."""
        from repo_rag.generation.llm_interface import create_llm

        return create_llm(dict(_as_mapping(self.config.generator_llm)))

    @_component
    def retriever(self) -> Any:
        from repo_rag.retrieval.retriever import VectorIndexRetriever

        section = _as_mapping(self.config.retriever)
        return VectorIndexRetriever(
            embedder=self.embedder,
            vector_store=self.vector_store,
            top_k=int(section.get("top_k") or 5),
        )

    @_component
    def ingest_pipeline(self) -> Any:
        from repo_rag.pipelines.ingest_pipeline import IngestionPipeline

        chunking = _as_mapping(self.config.chunking)
        return IngestionPipeline(
            embedder=self.embedder,
            vector_store=self.vector_store,
            fetcher=self.source_fetcher,
            chunk_size=int(chunking.get("size", 200)),
            overlap=int(chunking.get("overlap", 50)),
        )

    @_component
    def pipeline(self) -> Any:
        """Return the fully wired question-answering pipeline."""
        from repo_rag.pipelines.rag_pipeline import RAGPipeline

        return RAGPipeline(
            retriever=self.retriever,
            context_assembler=self.context_assembler,
            llm=self.generator_llm,
        )

    @property
    def _base_dir(self) -> Optional[Path]:
        cfg_path = getattr(self.config, "config_path", None)
        if not cfg_path:
            return None
        return Path(cfg_path).expanduser().resolve().parent


def build_container(config: Any) -> RepoRagContainer:
    """Create a :class:`RepoRagContainer`.

    Single entry point for the FastAPI startup hook, CLI scripts and tests.
    """
    return RepoRagContainer(config=config)


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce an object into a mapping.

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


__all__ = ["RepoRagContainer", "build_container"]
