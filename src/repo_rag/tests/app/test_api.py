from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from repo_rag.app.api import create_app
from repo_rag.common import FileIngestResult, IngestReport, QueryMatch
from repo_rag.common.errors import (
    AuthenticationMissing,
    CollectionNotFound,
    EmbeddingFailure,
    IndexWriteConflict,
    UpstreamServiceError,
)
from repo_rag.sources.github import SessionCredentials


class DummyIngest:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error
        self.calls = []

    def ingest_repository(self, owner, repo, token):
        self.calls.append((owner, repo, token))
        if self.error is not None:
            raise self.error
        return self.report


class DummyPipeline:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def ask(self, owner, repo, query, **kwargs):
        self.calls.append((owner, repo, query))
        if self.error is not None:
            raise self.error
        return self.result


class DummyOAuth:
    def __init__(self, token="gho_abc", error=None):
        self.token = token
        self.error = error

    def authorize_url(self, redirect_uri, state=None):
        return f"https://github.com/login/oauth/authorize?redirect_uri={redirect_uri}"

    def exchange_code(self, code, redirect_uri=None):
        if self.error is not None:
            raise self.error
        return self.token


def _container(**overrides):
    report = IngestReport(
        collection_name="octo-tools",
        results=[
            FileIngestResult(path="src/app.js", status="stored", chunk_count=3),
            FileIngestResult(path="logo.png", status="skipped", error="binary"),
            FileIngestResult(path="big.json", status="failed", error="github: 502"),
        ],
    )
    defaults = dict(
        credentials=SessionCredentials(),
        ingest_pipeline=DummyIngest(report=report),
        pipeline=DummyPipeline(result={
            "prompt": "p",
            "response": "Look in src/app.js",
            "source_nodes": [QueryMatch(id="src/app.js-1", text="function main() {}", distance=0.12)],
        }),
        oauth=DummyOAuth(),
        public_url="http://localhost:3000",
    )
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


@pytest.fixture
def container():
    return _container()


@pytest.fixture
def client(container):
    return TestClient(create_app(container=container))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_auth_redirects_to_github(client):
    resp = client.get("/auth/github", follow_redirects=False)

    assert resp.status_code in (302, 307)
    assert resp.headers["location"].endswith("redirect_uri=http://localhost:3000/auth/github/callback")


def test_auth_callback_stores_token(client, container):
    resp = client.get("/auth/github/callback", params={"code": "abc"})

    assert resp.status_code == 200
    assert resp.text == "Authentication successful!"
    assert container.credentials.get() == "gho_abc"


def test_auth_callback_failure_returns_500(container):
    container.oauth = DummyOAuth(error=UpstreamServiceError("github-oauth", "bad code"))
    client = TestClient(create_app(container=container))

    resp = client.get("/auth/github/callback", params={"code": "abc"})

    assert resp.status_code == 500
    assert container.credentials.get() is None


def test_process_requires_authentication(client, container):
    resp = client.get("/api/repos/octo/tools/process")

    assert resp.status_code == 401
    assert "AuthenticationMissing" in resp.json()["detail"]["error"]
    assert container.ingest_pipeline.calls == []


def test_process_reports_summary(client, container):
    container.credentials.set("tok")

    resp = client.get("/api/repos/octo/tools/process")

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Processing complete."
    assert body["collection"] == "octo-tools"
    assert body["files_processed"] == 3
    assert body["files_stored"] == 1
    assert body["files_skipped"] == 1
    assert body["chunks_stored"] == 3
    assert body["failed_files"] == [{"path": "big.json", "error": "github: 502"}]
    assert container.ingest_pipeline.calls == [("octo", "tools", "tok")]


@pytest.mark.parametrize(
    "error, status",
    [
        (AuthenticationMissing("GitHub rejected the access token."), 401),
        (UpstreamServiceError("github", "GET tree returned 502", 502), 502),
        (EmbeddingFailure("model missing"), 500),
        (IndexWriteConflict("octo-tools", ["a-0"]), 409),
    ],
)
def test_process_maps_errors(container, error, status):
    container.credentials.set("tok")
    container.ingest_pipeline = DummyIngest(error=error)
    client = TestClient(create_app(container=container))

    assert client.get("/api/repos/octo/tools/process").status_code == status


def test_ask_returns_answer_and_context(client, container):
    resp = client.post("/api/ask/octo/tools", json={"query": "Where is main?"})

    assert resp.status_code == 200
    assert resp.json() == {
        "answer": "Look in src/app.js",
        "context": [
            {"rank": 1, "doc_id": "src/app.js-1", "text": "function main() {}", "distance": 0.12},
        ],
    }
    assert container.pipeline.calls == [("octo", "tools", "Where is main?")]


def test_ask_unknown_repository_is_404(container):
    container.pipeline = DummyPipeline(error=CollectionNotFound("octo-nothing"))
    client = TestClient(create_app(container=container))

    resp = client.post("/api/ask/octo/nothing", json={"query": "hi"})

    assert resp.status_code == 404
    assert "octo-nothing" in resp.json()["detail"]["error"]


def test_ask_synthesis_failure_is_502(container):
    container.pipeline = DummyPipeline(error=UpstreamServiceError("synthesis", "quota"))
    client = TestClient(create_app(container=container))

    assert client.post("/api/ask/octo/tools", json={"query": "hi"}).status_code == 502


@pytest.mark.parametrize("payload", [{}, {"query": ""}])
def test_ask_rejects_empty_query(client, payload):
    assert client.post("/api/ask/octo/tools", json=payload).status_code == 422
