"""repo_rag.common.schemas

Core data schemas shared across the ingest and ask flows.

These lightweight dataclasses describe the canonical shapes for fetched source
files, their chunked derivatives, the triples written to a vector index and
the matches read back from it, plus the per-file report produced by an
ingestion run.

Classes
-------
Document
    A single fetched source file, prior to chunking.
DocumentChunk
    A word window produced from a parent :class:`Document`.
IndexEntry
    An ``(id, embedding, text)`` triple destined for a vector collection.
QueryMatch
    One nearest-neighbour hit returned by a vector collection.
Collection
    Handle to a named vector collection.
FileIngestResult
    Outcome of ingesting one source file.
IngestReport
    Aggregate outcome of an ingestion run.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

INGEST_STORED = "stored"
INGEST_SKIPPED = "skipped"
INGEST_FAILED = "failed"


@dataclass
class Document:
    """Container for a raw source file.

    Attributes
    ----------
    source_id : str
        Identifier of the source, typically the repository-relative path.
    text : str
        Full decoded text of the file.
    metadata : Dict[str, Any]
        Arbitrary metadata (e.g., ``{"owner": "acme", "repo": "tools"}``).
    """
    source_id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DocumentChunk:
    """A word window derived from a parent :class:`Document`.

    Attributes
    ----------
    source_id : str
        Identifier of the parent document.
    index : int
        Zero-based position of the chunk within its parent.
    text : str
        Chunk text, tokens joined by single spaces.
    metadata : Dict[str, Any]
        Metadata propagated from the parent document.
    """
    source_id: str
    index: int
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        """Storage identifier, unique within a collection."""
        return f"{self.source_id}-{self.index}"


@dataclass
class IndexEntry:
    """A vector-index record.

    Attributes
    ----------
    id : str
        Chunk identifier (see :attr:`DocumentChunk.id`).
    embedding : List[float]
        Vector computed externally by an embedder.
    text : str
        Chunk body stored alongside the vector.
    metadata : Dict[str, Any]
        Extra payload fields.
    """
    id: str
    embedding: List[float]
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QueryMatch:
    """A single nearest-neighbour hit.

    ``distance`` is the cosine distance (``1 - cosine similarity``), so lower
    is more similar.
    """
    id: str
    text: str
    distance: float


@dataclass(frozen=True)
class Collection:
    """Handle to a named vector collection."""
    name: str
    vector_size: int


@dataclass
class FileIngestResult:
    """Outcome of ingesting a single file.

    Attributes
    ----------
    path : str
        Repository-relative path of the file.
    status : str
        One of ``"stored"``, ``"skipped"`` or ``"failed"``.
    chunk_count : int
        Number of chunks written to the collection.
    error : str or None
        Error description for failed files, or the skip reason.
    """
    path: str
    status: str
    chunk_count: int = 0
    error: Optional[str] = None


@dataclass
class IngestReport:
    """Aggregate outcome of one ingestion run.

    Attributes
    ----------
    collection_name : str
        Collection that was replaced and filled.
    results : List[FileIngestResult]
        Per-file outcomes in processing order.
    """
    collection_name: str
    results: List[FileIngestResult] = field(default_factory=list)

    @property
    def stored(self) -> List[FileIngestResult]:
        return [r for r in self.results if r.status == INGEST_STORED]

    @property
    def skipped(self) -> List[FileIngestResult]:
        return [r for r in self.results if r.status == INGEST_SKIPPED]

    @property
    def failed(self) -> List[FileIngestResult]:
        return [r for r in self.results if r.status == INGEST_FAILED]

    @property
    def total_chunks(self) -> int:
        return sum(r.chunk_count for r in self.results)

    @property
    def ok(self) -> bool:
        """``True`` when no file failed."""
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection_name,
            "files_processed": len(self.results),
            "files_stored": len(self.stored),
            "files_skipped": len(self.skipped),
            "chunks_stored": self.total_chunks,
            "failed_files": [
                {"path": r.path, "error": r.error} for r in self.failed
            ],
        }
