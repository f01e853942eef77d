"""
Retrieval layer of repo_rag.

This package covers everything needed to turn repository files into
searchable vectors and to fetch the most relevant chunks for a question.

Submodules
----------
text_splitter
    Overlapping word-window chunking.
embedder
    Embedding model wrappers with one-shot initialisation and normalisation.
vector_store
    Named-collection vector index backed by Qdrant.
retriever
    High-level retrieval API composing the embedder and the vector store.
"""
