import json
import threading
import time

import pytest

from conftest import FakeFetcher, FakeLLM, KeywordEmbedder, words
from repo_rag.app.container import build_container
from repo_rag.config import GlobalConfig
from repo_rag.generation.llm_interface import OpenAIChatLikeLLM
from repo_rag.pipelines.ingest_pipeline import IngestionPipeline
from repo_rag.retrieval.embedder import HuggingFaceEmbedder
from repo_rag.retrieval.vector_store import QdrantIndexStore


def _config(tmp_path, **sections):
    raw = {
        "embedder": {"type": "huggingface", "model_name": "dummy/minilm", "dimension": 13},
        "vector_store": {"location": ":memory:"},
        "generator_llm": {"type": "gemini", "api_key": "k"},
        "github": {"token": "tok", "client_id": "cid", "client_secret": "secret"},
        "chunking": {"size": 200, "overlap": 50},
        "retriever": {"top_k": 3},
    }
    raw.update(sections)
    return GlobalConfig(raw, config_path=tmp_path / "config.yaml")


def test_components_are_built_from_config_and_cached(tmp_path):
    c = build_container(_config(tmp_path))

    assert isinstance(c.embedder, HuggingFaceEmbedder)
    assert not c.embedder.is_initialized
    assert isinstance(c.vector_store, QdrantIndexStore)
    assert c.vector_store.vector_size == 13
    assert isinstance(c.generator_llm, OpenAIChatLikeLLM)
    assert c.retriever.top_k == 3
    assert c.retriever.embedder is c.embedder
    assert c.ingest_pipeline.embedder is c.embedder
    assert c.ingest_pipeline.vector_store is c.vector_store
    assert c.pipeline is c.pipeline
    assert c.credentials.require() == "tok"


def test_relative_store_path_is_resolved_against_config_dir(tmp_path):
    c = build_container(_config(tmp_path, vector_store={"path": "qdrant_data"}))

    assert isinstance(c.vector_store, QdrantIndexStore)
    assert (tmp_path / "qdrant_data").exists()


def test_extra_prompts_are_registered(tmp_path):
    (tmp_path / "extra.json").write_text(json.dumps({"name": "terse", "user": "{{ question }}"}))
    c = build_container(_config(tmp_path, prompts=["extra.json"], prompt_name="terse"))

    assert c.prompt_builder.list_prompts() == ["codebase_qa", "terse"]
    assert c.context_assembler.assemble(["ctx"], "why?") == "why?"


def test_invalid_prompts_entry_raises(tmp_path):
    c = build_container(_config(tmp_path, prompts={"bad": True}))

    with pytest.raises(TypeError):
        c.prompt_builder


def test_public_url_uses_server_port(tmp_path, monkeypatch):
    monkeypatch.delenv("CODESPACE_NAME", raising=False)
    c = build_container(_config(tmp_path, server={"port": 8080}))

    assert c.public_url == "http://localhost:8080"


def test_ingest_then_ask_through_container(tmp_path):
    c = build_container(_config(tmp_path))
    embedder = KeywordEmbedder()
    fetcher = FakeFetcher({"src/app.js": words(300, at={10: "zebra"})})
    llm = FakeLLM(answer="line 10")
    # Swap in offline collaborators before anything reads them.
    c.__dict__.update(embedder=embedder, source_fetcher=fetcher, generator_llm=llm)

    events = []
    c.warm_up(events.append)
    report = c.ingest_pipeline.ingest_repository("octo", "tools", c.credentials.require())
    result = c.pipeline.ask("octo", "tools", "zebra?")

    assert [e["status"] for e in events] == ["initiate", "ready"]
    assert report.total_chunks == 2
    assert result["response"] == "line 10"
    assert result["source_nodes"][0].id == "src/app.js-0"


def test_concurrent_first_access_builds_one_pipeline(tmp_path, monkeypatch):
    c = build_container(_config(tmp_path))
    c.__dict__.update(embedder=KeywordEmbedder(), source_fetcher=FakeFetcher({}))

    original_init = IngestionPipeline.__init__

    def slow_init(self, **kwargs):
        time.sleep(0.2)
        original_init(self, **kwargs)

    monkeypatch.setattr(IngestionPipeline, "__init__", slow_init)

    seen = []
    threads = [threading.Thread(target=lambda: seen.append(c.ingest_pipeline)) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 4
    assert len({id(p) for p in seen}) == 1
    assert c.ingest_pipeline is seen[0]


def test_concurrent_first_access_builds_one_store(tmp_path):
    c = build_container(_config(tmp_path, vector_store={"path": "qdrant_data"}))

    seen = []
    threads = [threading.Thread(target=lambda: seen.append(c.vector_store)) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 4
    assert len({id(s) for s in seen}) == 1
