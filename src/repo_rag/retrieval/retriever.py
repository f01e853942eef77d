"""repo_rag.retrieval.retriever

Retriever for the ask flow.

The retriever composes an embedder and a vector store: it embeds a question
with the same model and normalisation policy used at ingest time and returns
the texts of the nearest stored chunks.

Classes
-------
VectorIndexRetriever
    Vector-similarity retriever over named collections.
"""

from typing import List, Optional
import logging

from repo_rag.common.schemas import QueryMatch
from repo_rag.retrieval.embedder import BaseEmbedder
from repo_rag.retrieval.vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class VectorIndexRetriever:
    """Vector-based retriever over named collections.

    Parameters
    ----------
    embedder : BaseEmbedder
        Embedder shared with the ingest flow.
    vector_store : BaseVectorStore
        Store holding the collections.
    top_k : int, optional
        Default number of results. Defaults to ``5``.
    """

    def __init__(
            self,
            *,
            embedder: BaseEmbedder,
            vector_store: BaseVectorStore,
            top_k: int = 5,
        ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.top_k = top_k

    def retrieve_matches(
            self,
            collection_name: str,
            question: str,
            k: Optional[int] = None,
        ) -> List[QueryMatch]:
        """Return the nearest matches for ``question``, most similar first.

        Raises
        ------
        CollectionNotFound
            If ``collection_name`` has not been ingested.
        EmbeddingFailure
            If the question cannot be embedded.
        """
        collection = self.vector_store.get_collection(collection_name)
        query_embedding = self.embedder.embed(question, normalize=True)
        matches = self.vector_store.query(collection, query_embedding, self.top_k if k is None else k)
        logger.debug(
            "Retrieved %d match(es) from %s: %s",
            len(matches), collection_name, [m.id for m in matches],
        )
        return matches

    def retrieve(
            self,
            collection_name: str,
            question: str,
            k: Optional[int] = None,
        ) -> List[str]:
        """Retrieve chunk texts relevant to ``question``.

        Parameters
        ----------
        collection_name : str
            Collection to search.
        question : str
            Natural-language question.
        k : int or None, optional
            Maximum number of results; defaults to :attr:`top_k`.

        Returns
        -------
        list[str]
            Chunk texts in similarity-rank order.
        """
        return [m.text for m in self.retrieve_matches(collection_name, question, k)]


__all__ = ["VectorIndexRetriever"]
