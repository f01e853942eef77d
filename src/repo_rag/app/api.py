# repo_rag/app/api.py
from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field
from repo_rag.common.errors import (
    AuthenticationMissing,
    CollectionNotFound,
    EmbeddingFailure,
    IndexWriteConflict,
    RepoRagError,
    UpstreamServiceError,
)
from repo_rag.config import GlobalConfig
from repo_rag.app.container import build_container
import logging
import os
from typing import Any

logger = logging.getLogger("repo_rag.api")

_STATUS_BY_ERROR: list[tuple[type[RepoRagError], int]] = [
    (AuthenticationMissing, 401),
    (CollectionNotFound, 404),
    (IndexWriteConflict, 409),
    (UpstreamServiceError, 502),
    (EmbeddingFailure, 500),
]


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)


class RetrievedContextChunk(BaseModel):
    rank: int
    doc_id: str
    text: str
    distance: float | None = None


class AskResponse(BaseModel):
    answer: str
    context: list[RetrievedContextChunk] = Field(default_factory=list)


class FailedFile(BaseModel):
    path: str
    error: str | None = None


class ProcessResponse(BaseModel):
    message: str
    collection: str
    files_processed: int
    files_stored: int
    files_skipped: int
    chunks_stored: int
    failed_files: list[FailedFile] = Field(default_factory=list)


def _serialize_context(matches: list[Any]) -> list[RetrievedContextChunk]:
    return [
        RetrievedContextChunk(rank=idx, doc_id=m.id, text=m.text, distance=m.distance)
        for idx, m in enumerate(matches, start=1)
    ]


def _to_http_error(e: RepoRagError, what: str) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            break
    else:
        status = 500
    if status >= 500:
        logger.exception("Error while handling %s", what)
    else:
        logger.warning("%s rejected: %s", what, e)
    return HTTPException(status_code=status, detail={"error": f"{type(e).__name__}: {e}"})


def create_app(container: Any = None) -> FastAPI:
    """Create the HTTP application.

    Parameters
    ----------
    container : Any, optional
        Pre-built container. When ``None`` the container is built at startup
        from the YAML file named by ``REPO_RAG_CONFIG`` and the embedding
        model is loaded before the first request is served.
    """
    app = FastAPI(title="repo_rag API", version="0.1.0")
    app.state.container = container

    @app.on_event("startup")
    def startup():
        if app.state.container is not None:
            return
        cfg_path = os.environ.get("REPO_RAG_CONFIG", "/app/config/config.yaml")
        cfg = GlobalConfig.load(cfg_path)
        logging.basicConfig(
            level=cfg.logging["level"],
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        c = build_container(cfg)
        logger.info("Initializing embedding pipeline...")
        # A model that cannot load is fatal: let the exception stop the server.
        c.warm_up(progress_callback=lambda event: logger.info("Embedding model progress: %s", event))
        logger.info("Embedding pipeline loaded successfully.")
        app.state.container = c

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/auth/github")
    def auth_github():
        c = app.state.container
        redirect_uri = f"{c.public_url}/auth/github/callback"
        try:
            return RedirectResponse(c.oauth.authorize_url(redirect_uri))
        except ValueError as e:
            logger.error("GitHub OAuth is not configured: %s", e)
            raise HTTPException(status_code=500, detail="GitHub OAuth is not configured.")

    @app.get("/auth/github/callback", response_class=PlainTextResponse)
    def auth_github_callback(code: str):
        c = app.state.container
        try:
            token = c.oauth.exchange_code(code, redirect_uri=f"{c.public_url}/auth/github/callback")
        except (RepoRagError, ValueError) as e:
            logger.error("Error obtaining access token: %s", e)
            raise HTTPException(status_code=500, detail="Authentication Failed.")
        c.credentials.set(token)
        return "Authentication successful!"

    @app.get("/api/repos/{owner}/{repo}/process", response_model=ProcessResponse)
    def process_repository(owner: str, repo: str):
        c = app.state.container
        try:
            token = c.credentials.require()
            report = c.ingest_pipeline.ingest_repository(owner, repo, token)
        except RepoRagError as e:
            raise _to_http_error(e, f"process {owner}/{repo}")
        return ProcessResponse(message="Processing complete.", **report.to_dict())

    @app.post("/api/ask/{owner}/{repo}", response_model=AskResponse)
    def ask(owner: str, repo: str, req: QueryRequest):
        c = app.state.container
        try:
            result = c.pipeline.ask(owner, repo, req.query)
        except RepoRagError as e:
            raise _to_http_error(e, f"ask {owner}/{repo}")
        return AskResponse(
            answer=str(result.get("response", "")),
            context=_serialize_context(result.get("source_nodes", [])),
        )

    return app


app = create_app()
