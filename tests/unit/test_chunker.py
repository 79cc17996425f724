"""Unit tests for the chunker module."""

from __future__ import annotations

import pytest
from langchain_core.documents import Document

from docqa.ingestion.chunker import chunk_documents, split_spans
from docqa.retrieval.models import DocumentChunk, document_id

URL = "https://example.com/policy.pdf"


def _reconstruct(chunks: list[DocumentChunk]) -> str:
    return chunks[0].text + "".join(c.text[c.overlap :] for c in chunks[1:])


def test_overlap_trimmed_concatenation_equals_original() -> None:
    """2500 chars at size 1000 / overlap 200 reconstruct losslessly."""
    text = "".join(chr(ord("a") + (i * 7) % 26) for i in range(2500))
    chunks = chunk_documents([Document(page_content=text)], document_url=URL, chunk_size=1000, chunk_overlap=200)

    assert len(chunks) == 3
    assert [len(c.text) for c in chunks] == [1000, 1000, 900]
    assert [c.overlap for c in chunks] == [0, 200, 200]
    assert _reconstruct(chunks) == text


def test_reconstruction_with_word_boundaries() -> None:
    text = " ".join(f"word{i}" for i in range(600))
    chunks = chunk_documents([Document(page_content=text)], document_url=URL, chunk_size=1000, chunk_overlap=200)
    assert len(chunks) > 1
    assert all(len(c.text) <= 1000 for c in chunks)
    assert _reconstruct(chunks) == text


def test_chunks_end_on_separator_when_possible() -> None:
    text = ("Sentence number one is here. " * 60).strip()
    spans = split_spans(text, chunk_size=500, chunk_overlap=100)
    first_end = spans[0][1]
    assert text[:first_end].endswith(". ")


def test_consecutive_chunks_share_exact_overlap() -> None:
    text = "x" * 3000
    chunks = chunk_documents([Document(page_content=text)], document_url=URL, chunk_size=1000, chunk_overlap=200)
    for prev, cur in zip(chunks, chunks[1:]):
        assert prev.text[-200:] == cur.text[:200]
        assert cur.start_index == prev.start_index + len(prev.text) - 200


def test_chunking_is_deterministic() -> None:
    docs = [Document(page_content="alpha beta gamma " * 200, metadata={"page": 0})]
    first = chunk_documents(docs, document_url=URL, chunk_size=300, chunk_overlap=50)
    second = chunk_documents(docs, document_url=URL, chunk_size=300, chunk_overlap=50)
    assert [c.model_dump() for c in first] == [c.model_dump() for c in second]


def test_chunk_ids_are_stable_per_document_and_position() -> None:
    docs = [Document(page_content="text " * 100)]
    chunks = chunk_documents(docs, document_url=URL, chunk_size=200, chunk_overlap=20)
    doc_id = document_id(URL)
    assert [c.chunk_id for c in chunks] == [f"{doc_id}_{i}" for i in range(len(chunks))]
    other = chunk_documents(docs, document_url="https://example.com/other.pdf", chunk_size=200, chunk_overlap=20)
    assert {c.chunk_id for c in chunks}.isdisjoint(c.chunk_id for c in other)


def test_pages_are_chunked_separately_and_numbered_globally() -> None:
    docs = [
        Document(page_content="a" * 150, metadata={"page": 0, "source": "local.pdf"}),
        Document(page_content="   ", metadata={"page": 1}),
        Document(page_content="b" * 150, metadata={"page": 2}),
    ]
    chunks = chunk_documents(docs, document_url=URL, chunk_size=100, chunk_overlap=10)
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert {c.metadata["page"] for c in chunks} == {0, 2}
    assert all(set(c.text) == {"a"} for c in chunks if c.metadata["page"] == 0)
    assert chunks[0].metadata["source"] == "local.pdf"
    assert chunks[-1].metadata["source"] == URL
    # overlap restarts at each page
    assert [c.overlap for c in chunks if c.start_index == 0] == [0, 0]


def test_store_metadata_is_flat() -> None:
    chunks = chunk_documents(
        [Document(page_content="hello world", metadata={"page": 3, "title": "T"})], document_url=URL
    )
    meta = chunks[0].store_metadata()
    assert meta["doc_id"] == document_id(URL)
    assert meta["page"] == 3
    assert all(isinstance(v, (str, int, float, bool)) for v in meta.values())


def test_empty_input() -> None:
    assert chunk_documents([], document_url=URL) == []
    assert split_spans("") == []


def test_overlap_must_be_smaller_than_size() -> None:
    with pytest.raises(ValueError, match="chunk_overlap"):
        split_spans("abc", chunk_size=100, chunk_overlap=100)
