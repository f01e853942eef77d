"""repo_rag.app

Application wiring: the composition root and the HTTP surface.

Modules
-------
container
    Lazily constructed, cached runtime components.
api
    FastAPI application exposing OAuth, ingest and ask endpoints.
"""
