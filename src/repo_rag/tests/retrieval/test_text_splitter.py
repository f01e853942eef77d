import pytest

from conftest import words
from repo_rag.common import Document
from repo_rag.retrieval.text_splitter import (
    get_chunks_from_document,
    get_chunks_from_documents,
    iter_word_windows,
    split_words,
)


def test_500_words_yield_three_overlapping_chunks():
    text = words(500)

    chunks = split_words(text, size=200, overlap=50)

    assert len(chunks) == 3
    assert chunks[0].split() == [f"w{i}" for i in range(0, 200)]
    assert chunks[1].split() == [f"w{i}" for i in range(150, 350)]
    assert chunks[2].split() == [f"w{i}" for i in range(300, 500)]


def test_consecutive_chunks_share_overlap_words():
    chunks = split_words(words(450), size=200, overlap=50)

    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.split()[-50:] == nxt.split()[:50]


def test_trailing_partial_window_is_emitted():
    chunks = split_words(words(450), size=200, overlap=50)

    assert len(chunks) == 3
    assert chunks[-1].split() == [f"w{i}" for i in range(300, 450)]


def test_every_word_is_covered():
    text = words(737)
    chunks = split_words(text, size=64, overlap=16)

    covered = set()
    for chunk in chunks:
        covered.update(chunk.split())
    assert covered == set(text.split())


def test_short_text_is_one_chunk():
    assert split_words("def main(): return 1", size=200, overlap=50) == ["def main(): return 1"]


def test_exactly_size_words_is_one_chunk():
    assert len(split_words(words(200), size=200, overlap=50)) == 1


def test_empty_and_whitespace_text_yield_nothing():
    assert split_words("") == []
    assert split_words("  \n\t  ") == []


def test_whitespace_runs_collapse_to_single_spaces():
    assert split_words("a\n\n\tb   c\r\nd", size=10, overlap=2) == ["a b c d"]


def test_zero_overlap_partitions_words():
    chunks = split_words(words(400), size=200, overlap=0)

    assert len(chunks) == 2
    assert chunks[1].split()[0] == "w200"


def test_iter_word_windows_is_lazy():
    gen = iter_word_windows(words(1000), size=100, overlap=10)

    assert next(gen).split()[0] == "w0"


@pytest.mark.parametrize(
    "size, overlap",
    [(0, 0), (-5, 0), (10, -1), (10, 10), (10, 11)],
)
def test_invalid_window_parameters_raise(size, overlap):
    with pytest.raises(ValueError):
        split_words("some text here", size=size, overlap=overlap)


def test_get_chunks_from_document_assigns_ids_and_metadata():
    doc = Document(source_id="src/app.js", text=words(500), metadata={"repo": "tools"})

    chunks = get_chunks_from_document(doc, size=200, overlap=50)

    assert [c.index for c in chunks] == [0, 1, 2]
    assert [c.id for c in chunks] == ["src/app.js-0", "src/app.js-1", "src/app.js-2"]
    assert all(c.metadata == {"repo": "tools"} for c in chunks)
    chunks[0].metadata["repo"] = "changed"
    assert doc.metadata == {"repo": "tools"}


def test_get_chunks_from_documents_preserves_order():
    docs = [
        Document(source_id="a.py", text=words(10)),
        Document(source_id="b.py", text=""),
        Document(source_id="c.py", text=words(10)),
    ]

    chunks = get_chunks_from_documents(docs, size=200, overlap=50)

    assert [c.id for c in chunks] == ["a.py-0", "c.py-0"]
