"""
Common building blocks shared across the repo_rag stack.

This package provides small, widely-used primitives (document and chunk
schemas, the error taxonomy and ID aliases) intended to be imported by
multiple layers of the system.

Classes
-------
Document
    Fetched source file.
DocumentChunk
    Word window of a document.
IndexEntry
    Triple written to a vector collection.
QueryMatch
    Nearest-neighbour hit.
Collection
    Vector collection handle.
FileIngestResult, IngestReport
    Per-file and aggregate ingestion outcomes.

Attributes
----------
SourceId : TypeAlias
    Type alias for source (file path) identifiers.
ChunkId : TypeAlias
    Type alias for chunk identifiers.

See Also
--------
repo_rag.common.errors
    Error taxonomy.
"""
from __future__ import annotations
from typing import TypeAlias

from .schemas import (
    Collection,
    Document,
    DocumentChunk,
    FileIngestResult,
    IndexEntry,
    IngestReport,
    QueryMatch,
)
from .errors import (
    AuthenticationMissing,
    CollectionNotFound,
    EmbeddingFailure,
    IndexWriteConflict,
    RepoRagError,
    UpstreamServiceError,
)

SourceId: TypeAlias = str
ChunkId: TypeAlias = str

__all__ = [
    "Collection",
    "Document",
    "DocumentChunk",
    "FileIngestResult",
    "IndexEntry",
    "IngestReport",
    "QueryMatch",
    "AuthenticationMissing",
    "CollectionNotFound",
    "EmbeddingFailure",
    "IndexWriteConflict",
    "RepoRagError",
    "UpstreamServiceError",
    "SourceId",
    "ChunkId",
]
