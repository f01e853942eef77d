import asyncio
import math
import threading

import pytest

from conftest import KeywordEmbedder
from repo_rag.common.errors import EmbeddingFailure
from repo_rag.retrieval.embedder import (
    DEFAULT_MODEL_NAME,
    HuggingFaceEmbedder,
    create_embedder,
    l2_normalize,
)


def _norm(vec):
    return math.sqrt(sum(x * x for x in vec))


def test_single_string_returns_one_unit_vector(embedder):
    vec = embedder.embed("dessert recipe")

    assert len(vec) == embedder.dimension
    assert _norm(vec) == pytest.approx(1.0)


def test_batch_returns_one_vector_per_input_in_order(embedder):
    vectors = embedder.embed(["cake", "sql query", "zebra"])

    assert len(vectors) == 3
    assert vectors[0][embedder.vocabulary.index("cake")] == pytest.approx(1.0)
    assert vectors[2][embedder.vocabulary.index("zebra")] == pytest.approx(1.0)


def test_embedding_is_deterministic(embedder):
    assert embedder.embed("bake the cake") == embedder.embed("bake the cake")


def test_normalize_false_returns_raw_vectors(embedder):
    vec = embedder.embed("cake cake", normalize=False)

    assert vec[embedder.vocabulary.index("cake")] == 2.0


def test_empty_batch_returns_empty_list(embedder):
    assert embedder.embed([]) == []
    assert embedder.encoded_batches == []


@pytest.mark.parametrize("bad", [123, None, ["ok", 5]])
def test_non_text_input_raises_embedding_failure(embedder, bad):
    with pytest.raises(EmbeddingFailure):
        embedder.embed(bad)


def test_initialize_is_idempotent_and_reports_progress(embedder):
    events = []

    first = embedder.initialize(events.append)
    second = embedder.initialize(events.append)

    assert first is second
    assert embedder.load_calls == 1
    assert events == [
        {"status": "initiate", "model": "keyword-test-model"},
        {"status": "ready", "model": "keyword-test-model"},
    ]


def test_concurrent_initialize_loads_once(embedder):
    threads = [threading.Thread(target=embedder.initialize) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert embedder.load_calls == 1
    assert embedder.is_initialized


def test_load_failure_is_wrapped_and_not_cached():
    emb = KeywordEmbedder(fail_load=True)

    with pytest.raises(EmbeddingFailure, match="keyword-test-model"):
        emb.initialize()
    assert not emb.is_initialized

    with pytest.raises(EmbeddingFailure):
        emb.embed("cake")


def test_wrong_dimension_from_model_raises(monkeypatch, embedder):
    monkeypatch.setattr(embedder, "_encode", lambda texts: [[1.0, 0.0] for _ in texts])

    with pytest.raises(EmbeddingFailure, match="expected"):
        embedder.embed("cake")


def test_count_mismatch_from_model_raises(monkeypatch, embedder):
    monkeypatch.setattr(embedder, "_encode", lambda texts: [])

    with pytest.raises(EmbeddingFailure):
        embedder.embed(["a", "b"])


def test_dimension_is_probed_when_not_configured():
    emb = KeywordEmbedder()
    emb._dimension = None

    assert emb.dimension == len(emb.vocabulary) + 1


def test_l2_normalize_leaves_zero_vectors_unchanged():
    assert l2_normalize([[0.0, 0.0], [3.0, 4.0]]) == [[0.0, 0.0], [0.6, 0.8]]


class DummyHFEmbedding:
    """Stub for llama_index's HuggingFaceEmbedding."""

    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        DummyHFEmbedding.instances.append(self)

    def get_text_embedding_batch(self, texts):
        return [[float(len(t)), 0.0, 0.0] for t in texts]


def test_huggingface_embedder_loads_backend_lazily(monkeypatch):
    DummyHFEmbedding.instances = []
    monkeypatch.setattr(
        "llama_index.embeddings.huggingface.HuggingFaceEmbedding",
        DummyHFEmbedding,
        raising=True,
    )

    emb = create_embedder({"type": "HuggingFace", "model_name": "dummy/minilm", "device": "cpu"})
    assert isinstance(emb, HuggingFaceEmbedder)
    assert DummyHFEmbedding.instances == []

    vec = emb.embed("abcd")

    assert vec == [1.0, 0.0, 0.0]
    assert len(DummyHFEmbedding.instances) == 1
    kwargs = DummyHFEmbedding.instances[0].kwargs
    assert kwargs["model_name"] == "dummy/minilm"
    assert kwargs["normalize"] is False


def test_create_embedder_defaults_to_huggingface():
    emb = create_embedder()

    assert isinstance(emb, HuggingFaceEmbedder)
    assert emb.model_name == DEFAULT_MODEL_NAME


def test_create_embedder_rejects_unknown_kind():
    with pytest.raises(ValueError, match="Unknown embedder kind"):
        create_embedder({"kind": "word2vec"})


def test_embed_query_returns_one_unit_vector(embedder):
    vec = embedder.embed_query("bake a cake")

    assert vec == embedder.embed("bake a cake")
    assert _norm(vec) == pytest.approx(1.0)


def test_embed_documents_returns_normalised_batch(embedder):
    vectors = embedder.embed_documents(["sugar", "sql table"])

    assert len(vectors) == 2
    assert all(_norm(v) == pytest.approx(1.0) for v in vectors)


def test_aembed_documents_matches_sync_result(embedder):
    texts = ["flour and sugar", "database query"]

    vectors = asyncio.run(embedder.aembed_documents(texts))

    assert vectors == embedder.embed_documents(texts)
