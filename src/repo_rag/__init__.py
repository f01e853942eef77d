"""repo_rag

Retrieval-augmented question answering over GitHub repositories.

Repository files are split into overlapping word windows, embedded with a
local sentence-embedding model and stored in one vector collection per
repository. Questions are embedded the same way, matched against the
collection, and the best chunks are assembled into a prompt for an external
text-generation service.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container and HTTP surface.
pipelines
    Ingestion and question-answering orchestration.
retrieval
    Chunking, embedding, vector collections and retrieval.
generation
    Context assembly and the synthesis client.
sources
    GitHub file listing, download and OAuth.
common
    Shared schemas and the error taxonomy.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("repo-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import RepoRagContainer, build_container
from .pipelines.ingest_pipeline import IngestionPipeline
from .pipelines.rag_pipeline import RAGPipeline
from .common import Document, DocumentChunk

__all__ = [
    "__version__",
    "GlobalConfig",
    "RepoRagContainer",
    "build_container",
    "IngestionPipeline",
    "RAGPipeline",
    "Document",
    "DocumentChunk",
]
