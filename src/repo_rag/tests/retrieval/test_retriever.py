import pytest

from repo_rag.common import IndexEntry
from repo_rag.common.errors import CollectionNotFound
from repo_rag.retrieval.retriever import VectorIndexRetriever

RECIPE = "A simple dessert recipe: mix sugar and flour, then bake the cake."
DATABASE = "def run(database): execute the sql query against the table"


@pytest.fixture
def filled_store(embedder, store):
    coll = store.replace_collection("octo-tools", vector_size=embedder.dimension)
    texts = {"recipes.md-0": RECIPE, "db.py-0": DATABASE}
    vectors = embedder.embed(list(texts.values()))
    store.add_all(coll, [
        IndexEntry(id=i, embedding=v, text=t) for (i, t), v in zip(texts.items(), vectors)
    ])
    return store


def test_retrieve_ranks_most_similar_chunk_first(embedder, filled_store):
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=filled_store, top_k=5)

    texts = retriever.retrieve("octo-tools", "dessert recipe")

    assert texts[0] == RECIPE
    assert len(texts) == 2


def test_retrieve_matches_carries_ids_and_distances(embedder, filled_store):
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=filled_store)

    matches = retriever.retrieve_matches("octo-tools", "which sql query hits the database table", k=1)

    assert [m.id for m in matches] == ["db.py-0"]
    assert 0.0 <= matches[0].distance < 0.5


def test_retrieve_uses_default_top_k(embedder, filled_store):
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=filled_store, top_k=1)

    assert len(retriever.retrieve("octo-tools", "cake")) == 1


def test_retrieve_unknown_collection_raises_before_embedding(embedder, store):
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=store)

    with pytest.raises(CollectionNotFound):
        retriever.retrieve("nobody-nothing", "anything")
    assert embedder.encoded_batches == []


def test_retrieve_empty_collection_returns_empty(embedder, store):
    store.replace_collection("octo-empty", vector_size=embedder.dimension)
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=store)

    assert retriever.retrieve("octo-empty", "dessert") == []


def test_dessert_question_ranks_a_recipe_first(embedder, store):
    texts = {
        "pie.md-0": "apple pie recipe",
        "garage.md-0": "car engine repair",
        "bread.md-0": "banana bread recipe",
    }
    coll = store.replace_collection("octo-kitchen", vector_size=embedder.dimension)
    store.add_all(coll, [
        IndexEntry(id=i, embedding=v, text=t)
        for (i, t), v in zip(texts.items(), embedder.embed(list(texts.values())))
    ])
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=store, top_k=3)

    top = retriever.retrieve("octo-kitchen", "dessert recipe")

    assert top[0] in ("apple pie recipe", "banana bread recipe")
    assert top[-1] == "car engine repair"


def test_explicit_zero_k_is_rejected_not_defaulted(embedder, filled_store):
    retriever = VectorIndexRetriever(embedder=embedder, vector_store=filled_store, top_k=5)

    with pytest.raises(ValueError, match="k must be at least 1"):
        retriever.retrieve("octo-tools", "cake", k=0)
