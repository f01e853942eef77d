"""repo_rag.retrieval.vector_store

Vector store interfaces and factories for the retrieval layer.

This module defines a small wrapper interface around vector-store backends
and a concrete implementation backed by Qdrant. The store manages named
collections (one per ingested repository) holding ``(id, vector, text)``
triples. Vectors are always computed by an external embedder; the store
never embeds text itself.

Classes
-------
BaseVectorStore
    Abstract interface for vector store wrappers.
QdrantIndexStore
    Qdrant-backed collection manager.

Functions
---------
collection_name_for
    Derive a sanitized collection name from an owner/repository pair.
create_vector_store
    Create a vector store implementation from a configuration mapping.
"""
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Iterable, List, Optional
from uuid import NAMESPACE_URL, uuid5
import logging
import re

from qdrant_client import QdrantClient
from qdrant_client import models as qmodels

from repo_rag.common.errors import CollectionNotFound, EmbeddingFailure, IndexWriteConflict
from repo_rag.common.schemas import Collection, IndexEntry, QueryMatch

logger = logging.getLogger(__name__)

_UNSAFE_COLLECTION_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")

DEFAULT_BATCH_SIZE = 64


def sanitize_collection_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return _UNSAFE_COLLECTION_CHARS.sub("_", name)


def collection_name_for(owner: str, repo: str) -> str:
    """Return the collection name used for ``owner/repo``.

    Examples
    --------
    >>> collection_name_for("octo-org", "my.repo")
    'octo-org-my_repo'
    """
    return sanitize_collection_name(f"{owner}-{repo}")


class BaseVectorStore(ABC):
    """Abstract interface for vector store wrappers.

    Attributes
    ----------
    vectors_supplied_externally : bool
        ``True`` when the backend stores caller-provided vectors and performs
        no embedding of its own. Entries passed to :meth:`add_all` must then
        carry an embedding.
    """

    vectors_supplied_externally: bool = True

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: dict) -> "BaseVectorStore":
        """Create a vector store instance from a configuration mapping."""

    @abstractmethod
    def replace_collection(self, name: str, vector_size: Optional[int] = None) -> Collection:
        """Delete ``name`` if it exists and create it again, empty."""

    @abstractmethod
    def get_collection(self, name: str) -> Collection:
        """Return a handle to an existing collection or raise :class:`CollectionNotFound`."""

    @abstractmethod
    def delete_collection(self, name: str) -> bool:
        """Delete a collection. Returns ``False`` if it did not exist."""

    @abstractmethod
    def list_collections(self) -> List[str]:
        """Return the names of all collections."""

    @abstractmethod
    def count(self, collection: Collection) -> int:
        """Return the number of entries stored in ``collection``."""

    @abstractmethod
    def add_all(self, collection: Collection, entries: Iterable[IndexEntry]) -> None:
        """Insert entries; ids must be new and unique."""

    @abstractmethod
    def query(self, collection: Collection, query_embedding: List[float], k: int) -> List[QueryMatch]:
        """Return up to ``k`` nearest entries, most similar first."""


class QdrantIndexStore(BaseVectorStore):
    """Qdrant-backed collection manager.

    Each collection uses cosine distance over vectors supplied by the caller.
    Point ids are UUID5 values derived from the chunk id, and the chunk id and
    text are kept in the point payload.

    Parameters
    ----------
    client : QdrantClient or None, optional
        Pre-built client. When given, the connection parameters are ignored.
    host : str, optional
        Qdrant host address. Defaults to ``"localhost"``.
    port : int, optional
        Qdrant HTTP port. Defaults to ``6333``.
    url : str or None, optional
        Full server URL; takes precedence over ``host``/``port``.
    location : str or None, optional
        ``":memory:"`` for an in-process store.
    path : str or None, optional
        Directory for an embedded, on-disk store.
    api_key : str or None, optional
        API key for Qdrant Cloud or secured servers.
    timeout : float or None, optional
        Request timeout in seconds for remote servers.
    vector_size : int or None, optional
        Default vector size for :meth:`replace_collection`.
    batch_size : int, optional
        Maximum points per upsert request.
    """

    vectors_supplied_externally = True

    def __init__(
        self,
        *,
        client: Optional[QdrantClient] = None,
        host: str = "localhost",
        port: int = 6333,
        url: Optional[str] = None,
        location: Optional[str] = None,
        path: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = 30.0,
        vector_size: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if client is None:
            if location:
                client = QdrantClient(location=location)
            elif path:
                client = QdrantClient(path=path)
            elif url:
                client = QdrantClient(url=url, api_key=api_key, timeout=timeout)
            else:
                client = QdrantClient(host=host, port=port, api_key=api_key, timeout=timeout)

        self.client = client
        self.vector_size = vector_size
        self.batch_size = batch_size if batch_size and batch_size > 0 else DEFAULT_BATCH_SIZE

    @classmethod
    def from_config_dict(cls, config: dict, vector_size: Optional[int] = None) -> "QdrantIndexStore":
        """Create a QdrantIndexStore from a configuration mapping.

        Parameters
        ----------
        config : dict
            Configuration mapping. Recognised keys: ``host``, ``port``,
            ``url``, ``location``, ``path``, ``api_key``, ``timeout``,
            ``vector_size`` and ``batch_size``.
        vector_size : int or None, optional
            Overrides ``config["vector_size"]``, typically the embedder's
            dimension.
        """
        timeout = config.get("timeout", 30.0)
        return cls(
            host=config.get("host", "localhost"),
            port=int(config.get("port", 6333)),
            url=config.get("url"),
            location=config.get("location"),
            path=config.get("path"),
            api_key=config.get("api_key"),
            timeout=float(timeout) if timeout is not None else None,
            vector_size=vector_size or config.get("vector_size"),
            batch_size=int(config.get("batch_size", DEFAULT_BATCH_SIZE)),
        )

    def replace_collection(self, name: str, vector_size: Optional[int] = None) -> Collection:
        """Delete any collection called ``name`` and create a fresh empty one.

        Deleting a collection that does not exist is not an error, so calling
        this twice in a row leaves one empty collection.

        Raises
        ------
        ValueError
            If no vector size is given here or at construction time.
        """
        size = vector_size or self.vector_size
        if not size:
            raise ValueError("replace_collection requires a vector_size")

        self.delete_collection(name)
        self.client.create_collection(
            collection_name=name,
            vectors_config=qmodels.VectorParams(size=int(size), distance=qmodels.Distance.COSINE),
        )
        logger.info("Created collection %s (vector size %d)", name, size)
        return Collection(name=name, vector_size=int(size))

    def get_collection(self, name: str) -> Collection:
        if not self.client.collection_exists(collection_name=name):
            raise CollectionNotFound(name)
        info = self.client.get_collection(collection_name=name)
        vectors = info.config.params.vectors
        return Collection(name=name, vector_size=int(vectors.size))

    def delete_collection(self, name: str) -> bool:
        if not self.client.collection_exists(collection_name=name):
            return False
        self.client.delete_collection(collection_name=name)
        logger.info("Deleted collection %s", name)
        return True

    def list_collections(self) -> List[str]:
        return sorted(c.name for c in self.client.get_collections().collections)

    def count(self, collection: Collection) -> int:
        self._require(collection)
        return self.client.count(collection_name=collection.name, exact=True).count

    def add_all(self, collection: Collection, entries: Iterable[IndexEntry]) -> None:
        """Insert entries into ``collection``.

        The whole call is validated before anything is written: ids must be
        unique within ``entries`` and absent from the collection, and every
        embedding must match the collection's vector size.

        Raises
        ------
        CollectionNotFound
            If the collection does not exist.
        IndexWriteConflict
            If an id repeats within ``entries`` or already exists.
        EmbeddingFailure
            If an entry has no embedding or one of the wrong size.
        """
        entries = list(entries)
        if not entries:
            return
        self._require(collection)

        duplicates = [i for i, n in Counter(e.id for e in entries).items() if n > 1]
        if duplicates:
            raise IndexWriteConflict(collection.name, duplicates)

        for entry in entries:
            if not entry.embedding:
                raise EmbeddingFailure(f"Entry {entry.id!r} has no embedding")
            if len(entry.embedding) != collection.vector_size:
                raise EmbeddingFailure(
                    f"Entry {entry.id!r} has a {len(entry.embedding)}-dimensional embedding; "
                    f"collection {collection.name!r} expects {collection.vector_size}"
                )

        existing = self.client.retrieve(
            collection_name=collection.name,
            ids=[_point_id(e.id) for e in entries],
            with_payload=True,
            with_vectors=False,
        )
        if existing:
            raise IndexWriteConflict(
                collection.name, [(r.payload or {}).get("chunk_id", str(r.id)) for r in existing]
            )

        for start in range(0, len(entries), self.batch_size):
            batch = entries[start:start + self.batch_size]
            self.client.upsert(
                collection_name=collection.name,
                points=[
                    qmodels.PointStruct(
                        id=_point_id(e.id),
                        vector=list(e.embedding),
                        payload={**e.metadata, "chunk_id": e.id, "text": e.text},
                    )
                    for e in batch
                ],
                wait=True,
            )

    def query(self, collection: Collection, query_embedding: List[float], k: int) -> List[QueryMatch]:
        """Return up to ``k`` nearest entries ordered by increasing cosine distance.

        Raises
        ------
        CollectionNotFound
            If the collection does not exist. An existing but empty collection
            returns an empty list.
        EmbeddingFailure
            If the query vector does not match the collection's vector size.
        ValueError
            If ``k`` is smaller than 1.
        """
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        self._require(collection)
        if len(query_embedding) != collection.vector_size:
            raise EmbeddingFailure(
                f"Query embedding has {len(query_embedding)} dimensions; "
                f"collection {collection.name!r} expects {collection.vector_size}"
            )

        response = self.client.query_points(
            collection_name=collection.name,
            query=list(query_embedding),
            limit=k,
            with_payload=True,
        )
        matches = [
            QueryMatch(
                id=(point.payload or {}).get("chunk_id", str(point.id)),
                text=(point.payload or {}).get("text", ""),
                distance=1.0 - float(point.score),
            )
            for point in response.points
        ]
        matches.sort(key=lambda m: m.distance)
        return matches

    def _require(self, collection: Collection) -> None:
        if not self.client.collection_exists(collection_name=collection.name):
            raise CollectionNotFound(collection.name)


def _point_id(chunk_id: str) -> str:
    return str(uuid5(NAMESPACE_URL, chunk_id))


def _get_vector_store_kind(cfg: dict) -> Any:
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if val is not None:
            return val
    return None


def _normalize_vector_store_kind(kind: Any) -> str:
    if not kind:
        return "qdrant"
    k = str(kind).lower()
    if k in {"qdrant", "qdrantindexstore", "qdrant_index_store"}:
        return "qdrant"
    return k


def create_vector_store(config: dict | None = None, vector_size: Optional[int] = None) -> BaseVectorStore:
    """Create a vector store implementation from a configuration mapping.

    The backend is selected with one of ``kind``, ``type``, ``provider``,
    ``backend`` or ``impl``; the default is Qdrant.

    Raises
    ------
    ValueError
        If the requested backend kind is not supported.
    """
    config = config or {}
    kind = _normalize_vector_store_kind(_get_vector_store_kind(config))
    if kind == "qdrant":
        return QdrantIndexStore.from_config_dict(config, vector_size=vector_size)
    raise ValueError(f"Unknown vector store kind: {kind!r}")


__all__ = [
    "BaseVectorStore",
    "QdrantIndexStore",
    "collection_name_for",
    "sanitize_collection_name",
    "create_vector_store",
]
