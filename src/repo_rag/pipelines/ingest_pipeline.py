"""repo_rag.pipelines.ingest_pipeline

Repository ingestion orchestration.

This module defines :class:`IngestionPipeline`, which replaces a repository's
collection and fills it file by file: fetch, chunk, embed, insert. A failure
confined to one file is logged and recorded in the returned
:class:`~repo_rag.common.schemas.IngestReport`; failures that make the whole
run meaningless (missing credentials, missing collection, model not loadable)
abort it.

Classes
-------
IngestionPipeline
    Orchestrates source fetch → chunking → embedding → vector insert.
"""

from typing import Dict, Iterable, List
import logging
import threading

from repo_rag.common.errors import (
    AuthenticationMissing,
    EmbeddingFailure,
    IndexWriteConflict,
    UpstreamServiceError,
)
from repo_rag.common.schemas import (
    INGEST_FAILED,
    INGEST_SKIPPED,
    INGEST_STORED,
    Collection,
    Document,
    FileIngestResult,
    IndexEntry,
    IngestReport,
)
from repo_rag.retrieval.embedder import BaseEmbedder
from repo_rag.retrieval.text_splitter import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_OVERLAP,
    get_chunks_from_document,
    validate_window,
)
from repo_rag.retrieval.vector_store import BaseVectorStore, collection_name_for
from repo_rag.sources.github import SourceFetcher

logger = logging.getLogger(__name__)

# Errors that only invalidate the file being processed.
_PER_FILE_ERRORS = (UpstreamServiceError, EmbeddingFailure, IndexWriteConflict)


class IngestionPipeline:
    """Fill one collection per repository with embedded word windows.

    Ingests of the same collection are serialised with a per-collection lock;
    different collections may be ingested concurrently.

    Parameters
    ----------
    embedder : BaseEmbedder
        Embedder shared with the ask flow.
    vector_store : BaseVectorStore
        Store owning the collections.
    fetcher : SourceFetcher or None, optional
        Source collaborator; required only by :meth:`ingest_repository`.
    chunk_size : int, optional
        Words per chunk. Defaults to ``200``.
    overlap : int, optional
        Words shared by consecutive chunks. Defaults to ``50``.

    Raises
    ------
    ValueError
        If the chunking parameters are invalid.
    """

    def __init__(
            self,
            *,
            embedder: BaseEmbedder,
            vector_store: BaseVectorStore,
            fetcher: SourceFetcher | None = None,
            chunk_size: int = DEFAULT_CHUNK_SIZE,
            overlap: int = DEFAULT_OVERLAP,
        ):
        validate_window(chunk_size, overlap)
        if not vector_store.vectors_supplied_externally:
            raise ValueError("IngestionPipeline requires a vector store that accepts external vectors.")

        self.embedder = embedder
        self.vector_store = vector_store
        self.fetcher = fetcher
        self.chunk_size = chunk_size
        self.overlap = overlap
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, collection_name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(collection_name, threading.Lock())

    def _replace(self, collection_name: str) -> Collection:
        # Model load failures must abort the run, not count as per-file failures.
        self.embedder.initialize()
        return self.vector_store.replace_collection(collection_name, self.embedder.dimension)

    def store_document(self, collection: Collection, document: Document) -> FileIngestResult:
        """Chunk, embed and insert one document into ``collection``.

        Errors propagate to the caller; see :meth:`ingest_documents` for the
        per-file failure policy.
        """
        chunks = get_chunks_from_document(document, size=self.chunk_size, overlap=self.overlap)
        if not chunks:
            return FileIngestResult(path=document.source_id, status=INGEST_SKIPPED, error="no text")

        embeddings = self.embedder.embed([c.text for c in chunks], normalize=True)
        self.vector_store.add_all(
            collection,
            [
                IndexEntry(id=c.id, embedding=e, text=c.text, metadata={"source_id": c.source_id, "index": c.index})
                for c, e in zip(chunks, embeddings)
            ],
        )
        logger.info(" -> Stored %d chunks from %s", len(chunks), document.source_id)
        return FileIngestResult(path=document.source_id, status=INGEST_STORED, chunk_count=len(chunks))

    def _store_safely(self, collection: Collection, document: Document) -> FileIngestResult:
        try:
            return self.store_document(collection, document)
        except _PER_FILE_ERRORS as e:
            logger.error("[ERROR] Skipping file '%s': %s", document.source_id, e)
            return FileIngestResult(path=document.source_id, status=INGEST_FAILED, error=str(e))

    def ingest_documents(self, collection_name: str, documents: Iterable[Document]) -> IngestReport:
        """Replace ``collection_name`` and store ``documents`` into it.

        Parameters
        ----------
        collection_name : str
            Target collection; any existing content is deleted first.
        documents : Iterable[Document]
            Documents to store, in order.

        Returns
        -------
        IngestReport
            One result per document. Failed files do not abort the run.

        Raises
        ------
        EmbeddingFailure
            If the embedding model cannot be loaded.
        CollectionNotFound
            If the collection disappears during the run.
        """
        with self._lock_for(collection_name):
            collection = self._replace(collection_name)
            report = IngestReport(collection_name=collection.name)
            for document in documents:
                report.results.append(self._store_safely(collection, document))

        self._log_summary(report)
        return report

    def ingest_repository(self, owner: str, repo: str, token: str) -> IngestReport:
        """Replace the collection of ``owner/repo`` and ingest every text file.

        The file listing is fetched before the collection is replaced, so a
        listing failure leaves the previous index intact.

        Raises
        ------
        AuthenticationMissing
            If no token is given or GitHub rejects it.
        UpstreamServiceError
            If the file listing cannot be fetched.
        EmbeddingFailure
            If the embedding model cannot be loaded.
        """
        if self.fetcher is None:
            raise ValueError("ingest_repository requires a source fetcher.")
        if not token:
            raise AuthenticationMissing("Not authenticated with GitHub.")

        collection_name = collection_name_for(owner, repo)
        entries = self.fetcher.list_files(owner, repo, token)
        logger.info("Ingesting %s/%s into %s (%d files)", owner, repo, collection_name, len(entries))

        with self._lock_for(collection_name):
            collection = self._replace(collection_name)
            report = IngestReport(collection_name=collection.name)

            for entry in entries:
                if not entry.is_text:
                    report.results.append(
                        FileIngestResult(path=entry.path, status=INGEST_SKIPPED, error="binary")
                    )
                    continue

                try:
                    text = self.fetcher.fetch_text(owner, repo, entry.path, token)
                except UpstreamServiceError as e:
                    logger.error("[ERROR] Skipping file '%s': %s", entry.path, e)
                    report.results.append(FileIngestResult(path=entry.path, status=INGEST_FAILED, error=str(e)))
                    continue

                if text is None:
                    report.results.append(
                        FileIngestResult(path=entry.path, status=INGEST_SKIPPED, error="no text content")
                    )
                    continue

                document = Document(source_id=entry.path, text=text, metadata={"owner": owner, "repo": repo})
                report.results.append(self._store_safely(collection, document))

        self._log_summary(report)
        return report

    @staticmethod
    def _log_summary(report: IngestReport) -> None:
        failed: List[str] = [r.path for r in report.failed]
        logger.info(
            "Ingest of %s complete: %d stored, %d skipped, %d failed, %d chunks",
            report.collection_name, len(report.stored), len(report.skipped), len(failed), report.total_chunks,
        )
        if failed:
            logger.warning("Failed files in %s: %s", report.collection_name, failed)


__all__ = ["IngestionPipeline"]
