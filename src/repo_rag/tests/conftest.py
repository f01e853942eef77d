import re
from typing import Dict, List, Optional

import pytest

from repo_rag.common.errors import UpstreamServiceError
from repo_rag.retrieval.embedder import BaseEmbedder
from repo_rag.retrieval.vector_store import QdrantIndexStore
from repo_rag.sources.github import SourceEntry, is_text_path

VOCABULARY = [
    "dessert", "recipe", "cake", "sugar", "flour", "bake",
    "database", "query", "sql", "table",
    "zebra", "giraffe",
]

_PUNCT = re.compile(r"[^a-z0-9]")


class KeywordEmbedder(BaseEmbedder):
    """
    Deterministic bag-of-words embedder for tests.

    Each vocabulary word gets its own axis; every other word adds a small
    weight to a shared "unknown" axis so that no text embeds to zero.
    """

    def __init__(self, vocabulary: Optional[List[str]] = None, fail_load: bool = False):
        self.vocabulary = list(vocabulary or VOCABULARY)
        super().__init__("keyword-test-model", dimension=len(self.vocabulary) + 1)
        self.fail_load = fail_load
        self.load_calls = 0
        self.encoded_batches: List[List[str]] = []

    def _load(self):
        self.load_calls += 1
        if self.fail_load:
            raise OSError("model files missing")
        return object()

    def _encode(self, texts):
        self.encoded_batches.append(list(texts))
        vectors = []
        for text in texts:
            vec = [0.0] * (len(self.vocabulary) + 1)
            for word in text.split():
                token = _PUNCT.sub("", word.lower())
                if token in self.vocabulary:
                    vec[self.vocabulary.index(token)] += 1.0
                else:
                    vec[-1] += 0.01
            vectors.append(vec)
        return vectors

    @classmethod
    def from_config_dict(cls, config):
        return cls(vocabulary=config.get("vocabulary"))


class FakeFetcher:
    """In-memory stand-in for the GitHub source collaborator."""

    def __init__(self, files: Dict[str, Optional[str]], failing: Optional[set] = None):
        self.files = dict(files)
        self.failing = set(failing or ())
        self.fetched: List[str] = []
        self.list_error: Optional[Exception] = None

    def list_files(self, owner, repo, token):
        if self.list_error is not None:
            raise self.list_error
        return [SourceEntry(path=p, is_text=is_text_path(p)) for p in self.files]

    def fetch_text(self, owner, repo, path, token):
        self.fetched.append(path)
        if path in self.failing:
            raise UpstreamServiceError("github", f"GET {path} returned 500", 500)
        return self.files[path]


class FakeLLM:
    """Records prompts and returns a canned answer."""

    def __init__(self, answer: str = "It is defined in src/app.js.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []
        self.kwargs: List[dict] = []

    def get_llm(self):
        return self

    def generate(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.kwargs.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.answer


def words(n: int, at: Optional[Dict[int, str]] = None) -> str:
    """Return ``n`` distinct filler words, with ``at`` overriding given positions."""
    at = at or {}
    return " ".join(at.get(i, f"w{i}") for i in range(n))


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def store():
    return QdrantIndexStore(location=":memory:")
