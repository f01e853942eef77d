"""repo_rag.common.errors

Error taxonomy for the ingest and ask flows.

Every error raised deliberately by :mod:`repo_rag` derives from
:class:`RepoRagError`, so callers (the HTTP layer, CLI scripts) can map them
to a terminal response without catching unrelated exceptions.

Classes
-------
RepoRagError
    Base class.
AuthenticationMissing
    No valid source-control credential is available.
CollectionNotFound
    A query or lookup targeted a collection that does not exist.
EmbeddingFailure
    The embedding model is unavailable or the input is malformed.
IndexWriteConflict
    An insert would duplicate an id within a collection.
UpstreamServiceError
    A source fetch or synthesis call failed.
"""


class RepoRagError(Exception):
    """Base class for all repo_rag errors."""


class AuthenticationMissing(RepoRagError):
    """Raised when an operation requires a source-control token and none is set."""


class CollectionNotFound(RepoRagError):
    """Raised when a named collection does not exist.

    Parameters
    ----------
    name : str
        Name of the missing collection.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Collection {name!r} not found. Ingest the repository before querying it."
        )


class EmbeddingFailure(RepoRagError):
    """Raised when embeddings cannot be produced or do not fit the index."""


class IndexWriteConflict(RepoRagError):
    """Raised when an insert would duplicate ids within a collection.

    Parameters
    ----------
    collection : str
        Target collection name.
    ids : list[str]
        The conflicting ids.
    """

    def __init__(self, collection: str, ids: list[str]):
        self.collection = collection
        self.ids = list(ids)
        preview = ", ".join(repr(i) for i in self.ids[:5])
        more = "" if len(self.ids) <= 5 else f" (+{len(self.ids) - 5} more)"
        super().__init__(f"Duplicate ids in collection {collection!r}: {preview}{more}")


class UpstreamServiceError(RepoRagError):
    """Raised when an external service (GitHub, synthesis LLM) fails.

    Parameters
    ----------
    service : str
        Short name of the failing service.
    message : str
        Human-readable description.
    status_code : int or None, optional
        HTTP status returned by the service, if any.
    """

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


__all__ = [
    "RepoRagError",
    "AuthenticationMissing",
    "CollectionNotFound",
    "EmbeddingFailure",
    "IndexWriteConflict",
    "UpstreamServiceError",
]
