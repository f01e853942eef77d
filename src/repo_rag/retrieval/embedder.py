"""repo_rag.retrieval.embedder

Embedding interfaces and factories for the retrieval layer.

This module defines a small provider-agnostic interface for producing vector
embeddings from text, along with a concrete implementation backed by the
LlamaIndex Hugging Face embedding wrapper. The model is loaded once per
embedder instance through :meth:`BaseEmbedder.initialize`; the instance is
constructed by the application container and injected wherever embeddings
are needed, so ingest and query always share one model and one
normalisation policy.

Classes
-------
BaseEmbedder
    Abstract interface specifying the API used by the ingest and ask flows.
HuggingFaceEmbedder
    Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.

Functions
---------
create_embedder
    Create an embedder implementation from a configuration mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
import asyncio
import logging
import threading

import numpy as np

from repo_rag.common.errors import EmbeddingFailure

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"

ProgressCallback = Callable[[Dict[str, Any]], None]
Embedding = List[float]


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


def l2_normalize(vectors: Sequence[Sequence[float]]) -> List[Embedding]:
    """Scale each vector to unit L2 norm.

    Zero vectors are returned unchanged.
    """
    arr = np.asarray(vectors, dtype=np.float64)
    if arr.size == 0:
        return [list(v) for v in vectors]
    norms = np.linalg.norm(arr, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return (arr / norms).tolist()


class BaseEmbedder(ABC):
    """Abstract interface for text embedding.

    Subclasses implement :meth:`_load` (one-time, potentially slow model
    acquisition) and :meth:`_encode` (a pure batch text-to-vector function).
    Everything else, including one-shot initialisation, batching of single
    strings and normalisation, lives here.

    Parameters
    ----------
    model_name : str
        Name of the underlying model, used for logging and progress events.
    dimension : int or None, optional
        Known output dimensionality. When ``None`` it is probed once after the
        model is loaded.
    """

    def __init__(self, model_name: str, dimension: Optional[int] = None):
        self.model_name = model_name
        self._dimension = dimension
        self._handle: Any = None
        self._lock = threading.Lock()

    @abstractmethod
    def _load(self) -> Any:
        """Load and return the model handle."""

    @abstractmethod
    def _encode(self, texts: List[str]) -> List[Embedding]:
        """Encode a non-empty batch of texts into raw (unnormalised) vectors."""

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "BaseEmbedder":
        """Create an embedder from a configuration mapping.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration mapping.

        Returns
        -------
        BaseEmbedder
            An embedder implementation. The model is not loaded yet.
        """

    @property
    def is_initialized(self) -> bool:
        return self._handle is not None

    def initialize(self, progress_callback: Optional[ProgressCallback] = None) -> Any:
        """Load the model once and return its handle.

        Calling this again returns the cached handle without reloading. It is
        safe to call from several threads; only one performs the load.

        Parameters
        ----------
        progress_callback : callable or None, optional
            Receives progress events as dictionaries with ``status`` (one of
            ``"initiate"`` or ``"ready"``) and ``model`` keys.

        Returns
        -------
        Any
            The loaded model handle.

        Raises
        ------
        EmbeddingFailure
            If the model cannot be loaded.
        """
        if self._handle is not None:
            return self._handle

        with self._lock:
            if self._handle is not None:
                return self._handle

            self._report(progress_callback, {"status": "initiate", "model": self.model_name})
            try:
                handle = self._load()
            except Exception as e:
                raise EmbeddingFailure(
                    f"Failed to load embedding model {self.model_name!r}: {e}"
                ) from e
            self._handle = handle
            self._report(progress_callback, {"status": "ready", "model": self.model_name})

        return self._handle

    def _report(self, progress_callback: Optional[ProgressCallback], event: Dict[str, Any]) -> None:
        logger.info("Embedding model %s: %s", event["model"], event["status"])
        if progress_callback is not None:
            progress_callback(event)

    @property
    def dimension(self) -> int:
        """Output dimensionality of this embedder."""
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension

    def embed(
            self,
            texts: Union[str, Sequence[str]],
            *,
            normalize: bool = True,
        ) -> Union[Embedding, List[Embedding]]:
        """Embed a single string or a batch of strings.

        Parameters
        ----------
        texts : str or Sequence[str]
            A single string, or a sequence of strings embedded in one batch.
        normalize : bool, optional
            Scale every vector to unit L2 norm. Defaults to ``True``; retrieval
            assumes normalised vectors.

        Returns
        -------
        list[float] or list[list[float]]
            One vector for a string input, otherwise one vector per input in
            input order.

        Raises
        ------
        EmbeddingFailure
            If the input is not a string or a sequence of strings, the model
            cannot be loaded, or encoding fails.
        """
        single = isinstance(texts, str)
        if single:
            batch = [texts]
        elif isinstance(texts, Sequence) and all(isinstance(t, str) for t in texts):
            batch = list(texts)
        else:
            raise EmbeddingFailure(
                f"embed expected a string or a sequence of strings, got {type(texts).__name__}"
            )

        if not batch:
            return []

        self.initialize()
        try:
            vectors = self._encode(batch)
        except EmbeddingFailure:
            raise
        except Exception as e:
            raise EmbeddingFailure(f"Embedding {len(batch)} text(s) failed: {e}") from e

        if len(vectors) != len(batch):
            raise EmbeddingFailure(
                f"Model returned {len(vectors)} vectors for {len(batch)} inputs"
            )
        sizes = {len(v) for v in vectors}
        if len(sizes) != 1:
            raise EmbeddingFailure(f"Model returned vectors of mixed sizes: {sorted(sizes)}")
        if self._dimension is not None and sizes != {self._dimension}:
            raise EmbeddingFailure(
                f"Model returned {sizes.pop()}-dimensional vectors, expected {self._dimension}"
            )

        vectors = l2_normalize(vectors) if normalize else [list(map(float, v)) for v in vectors]
        return vectors[0] if single else vectors

    def embed_query(self, query: str) -> Embedding:
        """Embed a single normalised query vector."""
        return self.embed(query, normalize=True)

    def embed_documents(self, documents: List[str]) -> List[Embedding]:
        """Embed several documents as normalised vectors."""
        return self.embed(list(documents), normalize=True)

    async def aembed_documents(self, texts: List[str]) -> List[Embedding]:
        """Asynchronously embed a batch of documents.

        Encoding runs in the default thread pool via ``run_in_executor``.
        """
        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(None, self.embed_documents, texts)


class HuggingFaceEmbedder(BaseEmbedder):
    """Embedder backed by a Hugging Face SentenceTransformer via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.huggingface.HuggingFaceEmbedding`
    with mean pooling. Normalisation is applied by :meth:`BaseEmbedder.embed`
    so it can be chosen per call.

    Parameters
    ----------
    model_name : str, optional
        Name or path of the embedding model.
    device : str or None, optional
        Device identifier (e.g., ``"cuda"``, ``"cpu"``, ``"mps"``). ``None``
        lets the backend choose.
    trust_remote_code : bool, optional
        Whether to allow custom model code from the Hugging Face Hub.
    cache_folder : str or None, optional
        Local directory for downloaded model files.
    embed_batch_size : int, optional
        Batch size used by the backend.
    dimension : int or None, optional
        Known output dimensionality.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    """

    def __init__(
            self,
            model_name: str = DEFAULT_MODEL_NAME,
            *,
            device: Optional[str] = None,
            trust_remote_code: bool = False,
            cache_folder: Optional[str] = None,
            embed_batch_size: int = 32,
            dimension: Optional[int] = None,
            model_kwargs: Optional[dict[str, Any]] = None,
        ):
        super().__init__(model_name, dimension=dimension)
        self.device = device
        self.trust_remote_code = trust_remote_code
        self.cache_folder = cache_folder
        self.embed_batch_size = embed_batch_size
        self.model_kwargs = model_kwargs or {}

    def _load(self) -> Any:
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        return HuggingFaceEmbedding(
            model_name=self.model_name,
            device=self.device,
            trust_remote_code=self.trust_remote_code,
            cache_folder=self.cache_folder,
            embed_batch_size=self.embed_batch_size,
            normalize=False,
            model_kwargs=self.model_kwargs,
        )

    def _encode(self, texts: List[str]) -> List[Embedding]:
        return self._handle.get_text_embedding_batch(texts)

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "HuggingFaceEmbedder":
        """Create a Hugging Face embedder from a configuration mapping.

        Recognised keys are ``model_name``, ``device``, ``trust_remote_code``,
        ``cache_folder``, ``embed_batch_size``, ``dimension`` and
        ``model_kwargs``; all are optional.
        """
        dimension = config.get("dimension")
        return cls(
            model_name=config.get("model_name") or DEFAULT_MODEL_NAME,
            device=config.get("device"),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            cache_folder=config.get("cache_folder"),
            embed_batch_size=int(config.get("embed_batch_size", 32)),
            dimension=int(dimension) if dimension is not None else None,
            model_kwargs=config.get("model_kwargs", {}),
        )


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Extract the embedder kind/type/provider discriminator from a config mapping."""
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Normalise an embedder kind string to a registry key.

    CamelCase becomes snake_case, hyphens and spaces become underscores and
    the result is lower-cased (e.g., ``"HuggingFace"`` -> ``"hugging_face"``
    -> ``"huggingface"``).
    """
    k = kind.strip()
    if not k:
        return ""

    # Insert underscores between camel-case boundaries.
    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_").lower()
    while "__" in k2:
        k2 = k2.replace("__", "_")

    return k2.replace("hugging_face", "huggingface")


def create_embedder(config: Mapping[str, Any] | None = None) -> BaseEmbedder:
    """Create an embedder implementation from a configuration mapping.

    This is the preferred entry point for wiring embedders (used by the
    application container). The implementation is selected by one of the
    ``kind``, ``type``, ``provider``, ``backend`` or ``impl`` keys and
    defaults to :class:`HuggingFaceEmbedder`.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.
    """
    config = {} if config is None else config
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedder expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw)

    registry = {
        "huggingface": HuggingFaceEmbedder,
        "hf": HuggingFaceEmbedder,
        "sentence_transformers": HuggingFaceEmbedder,
    }

    cls = registry.get(kind) if kind else HuggingFaceEmbedder
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config))


__all__ = [
    "BaseEmbedder",
    "HuggingFaceEmbedder",
    "create_embedder",
    "l2_normalize",
]
