"""repo_rag.sources

Source collaborators that supply repository files to the ingest flow.

Modules
-------
github
    GitHub tree listing, content download and OAuth helpers.
"""
