"""repo_rag.retrieval.text_splitter

Word-window chunking for the retrieval layer.

Source files are split on whitespace and grouped into fixed-size windows of
words. Consecutive windows share ``overlap`` words so that a passage cut at a
window boundary is still seen whole by at least one chunk.

Functions
---------
iter_word_windows
    Lazily yield overlapping word windows from raw text.
split_words
    Eager variant of :func:`iter_word_windows`.
get_chunks_from_document
    Convert a :class:`~repo_rag.common.schemas.Document` into
    :class:`~repo_rag.common.schemas.DocumentChunk` objects.
get_chunks_from_documents
    Chunk several documents.
"""

from typing import Iterator, List

from repo_rag.common import Document, DocumentChunk

DEFAULT_CHUNK_SIZE = 200
DEFAULT_OVERLAP = 50


def validate_window(size: int, overlap: int) -> None:
    if size < 1:
        raise ValueError(f"size must be a positive integer, got {size}")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")
    if overlap >= size:
        raise ValueError(f"overlap ({overlap}) must be smaller than size ({size})")


def iter_word_windows(
        text: str,
        size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> Iterator[str]:
    """Yield overlapping word windows from ``text``.

    Words are accumulated into a window; once it holds ``size`` words it is
    emitted (joined by single spaces) and the next window is seeded with its
    last ``overlap`` words. A trailing window is emitted only if it contains
    at least one word not already emitted, so a window made purely of the
    overlap seed never appears on its own.

    Parameters
    ----------
    text : str
        Raw text. Any run of whitespace separates words.
    size : int, optional
        Words per window. Defaults to ``200``.
    overlap : int, optional
        Words shared by consecutive windows. Defaults to ``50``.

    Yields
    ------
    str
        Window text.

    Raises
    ------
    ValueError
        If ``size < 1``, ``overlap < 0`` or ``overlap >= size``.
    """
    validate_window(size, overlap)

    window: List[str] = []
    fresh = 0
    for word in text.split():
        window.append(word)
        fresh += 1
        if len(window) >= size:
            yield " ".join(window)
            window = window[len(window) - overlap:]
            fresh = 0

    if fresh:
        yield " ".join(window)


def split_words(
        text: str,
        size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> List[str]:
    """Split ``text`` into a list of overlapping word windows.

    See :func:`iter_word_windows` for the windowing rules. Empty or
    whitespace-only input yields an empty list.
    """
    return list(iter_word_windows(text, size=size, overlap=overlap))


def get_chunks_from_document(
        document: Document,
        size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> List[DocumentChunk]:
    """Chunk a single document.

    Parameters
    ----------
    document : Document
        Document to split.
    size : int, optional
        Words per chunk.
    overlap : int, optional
        Words shared by consecutive chunks.

    Returns
    -------
    list[DocumentChunk]
        Chunks with zero-based, increasing ``index`` values. The parent
        metadata is copied onto every chunk.
    """
    return [
        DocumentChunk(
            source_id=document.source_id,
            index=index,
            text=window,
            metadata=dict(document.metadata),
        )
        for index, window in enumerate(iter_word_windows(document.text, size=size, overlap=overlap))
    ]


def get_chunks_from_documents(
        documents: List[Document],
        size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> List[DocumentChunk]:
    """Chunk several documents, preserving document order."""
    chunks: List[DocumentChunk] = []
    for document in documents:
        chunks.extend(get_chunks_from_document(document, size=size, overlap=overlap))
    return chunks


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP",
    "validate_window",
    "iter_word_windows",
    "split_words",
    "get_chunks_from_document",
    "get_chunks_from_documents",
]
