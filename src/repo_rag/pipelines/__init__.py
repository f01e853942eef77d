"""repo_rag.pipelines

Pipeline orchestration components for repo_rag.

Pipelines are lightweight and hold no state beyond their configured
components (and, for ingestion, per-collection locks), so they are safe to
reuse across requests.

Modules
-------
ingest_pipeline
    Repository ingestion (fetch → chunk → embed → insert).
rag_pipeline
    Question answering (retrieve → assemble → generate).
"""
