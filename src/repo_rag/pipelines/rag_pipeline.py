"""repo_rag.pipelines.rag_pipeline

Question answering over an ingested repository.

This module defines the :class:`RAGPipeline`, which coordinates query-time
retrieval, context assembly and the synthesis call.

Classes
-------
RAGPipeline
    Orchestrates retrieval → context assembly → generation.
"""

from typing import Any, Optional
import logging

from repo_rag.generation.llm_interface import BaseLLM
from repo_rag.generation.prompt_builder import ContextAssembler
from repo_rag.retrieval.retriever import VectorIndexRetriever
from repo_rag.retrieval.vector_store import collection_name_for

logger = logging.getLogger(__name__)


class RAGPipeline:
    """Retrieval-Augmented Generation orchestrator.

    The pipeline is stateless beyond its configured components and safe to
    reuse across requests.

    Parameters
    ----------
    retriever : VectorIndexRetriever
        Embeds the question and fetches the top-k chunk texts.
    context_assembler : ContextAssembler
        Merges the retrieved chunks and the question into one prompt.
    llm : BaseLLM
        Synthesis service.
    llm_generate_defaults : dict or None, optional
        Default keyword arguments forwarded to ``llm.generate``.
    """

    def __init__(self,
                 retriever: VectorIndexRetriever,
                 context_assembler: ContextAssembler,
                 llm: BaseLLM,
                 llm_generate_defaults: dict | None = None,
        ):
        self.retriever = retriever
        self.context_assembler = context_assembler
        self.llm = llm
        self.llm_generate_defaults = llm_generate_defaults or {}

    def build_prompt(self, collection_name: str, query: str, k: Optional[int] = None) -> dict:
        """Retrieve context for ``query`` and assemble the prompt without generating.

        Returns
        -------
        dict
            ``{"prompt": str, "source_nodes": list[QueryMatch]}``.
        """
        matches = self.retriever.retrieve_matches(collection_name, query, k)
        prompt = self.context_assembler.assemble([m.text for m in matches], query)
        return {'prompt': prompt, 'source_nodes': matches}

    def run(self, collection_name: str, query: str, k: Optional[int] = None, **kwargs) -> dict:
        """Answer ``query`` from the chunks stored in ``collection_name``.

        The execution order is:
        1. Retrieve the top-k chunks (``CollectionNotFound`` if not ingested).
        2. Assemble the synthesis prompt.
        3. Call the synthesis service.

        Parameters
        ----------
        collection_name : str
            Collection to search.
        query : str
            Natural-language question.
        k : int or None, optional
            Number of chunks to retrieve.
        **kwargs : Any
            Per-call overrides forwarded to ``llm.generate``.

        Returns
        -------
        dict
            ``{"prompt": str, "response": str, "source_nodes": list[QueryMatch]}``.
        """
        logger.info("Received query for '%s': %r", collection_name, query)
        result = self.build_prompt(collection_name, query, k)

        gen_kwargs = {**self.llm_generate_defaults, **kwargs}
        response = self.llm.generate(result['prompt'], **gen_kwargs)

        return {**result, 'response': response}

    def ask(self, owner: str, repo: str, query: str, **kwargs) -> dict:
        """Run the pipeline against the collection of ``owner/repo``."""
        return self.run(collection_name_for(owner, repo), query, **kwargs)

    def __call__(self, collection_name: str, query: str, **kwargs) -> Any:
        return self.run(collection_name, query, **kwargs)


__all__ = ['RAGPipeline']
