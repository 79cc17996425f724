"""Deterministic overlapping text chunking.

Each page is cut into windows of at most ``chunk_size`` characters. A window
ends on the last paragraph, line, sentence or word break in its second half
when there is one, otherwise hard at ``chunk_size``. The next window starts
exactly ``chunk_overlap`` characters before the previous one ended, so::

    chunks[0].text + "".join(c.text[c.overlap:] for c in chunks[1:]) == page_text

for the chunks of one page. Output depends only on the input text and the
two size parameters, which keeps chunk ids stable across re-ingestion.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from docqa.retrieval.models import DocumentChunk, document_id

if TYPE_CHECKING:
    from langchain_core.documents import Document

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")


def _snap(text: str, lo: int, hi: int, separators: tuple[str, ...]) -> int:
    """Return the cut position just after the best separator in ``text[lo:hi]``."""
    for sep in separators:
        idx = text.rfind(sep, lo, hi)
        if idx != -1:
            return idx + len(sep)
    return hi


def split_spans(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    separators: tuple[str, ...] = DEFAULT_SEPARATORS,
) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of the chunks of *text*."""
    if chunk_overlap >= chunk_size:
        raise ValueError(f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})")
    if not text:
        return []

    spans: list[tuple[int, int]] = []
    start = 0
    n = len(text)
    while True:
        end = min(start + chunk_size, n)
        if end < n:
            lo = max(start + chunk_overlap + 1, start + chunk_size // 2)
            end = _snap(text, lo, end, separators)
        spans.append((start, end))
        if end >= n:
            return spans
        start = end - chunk_overlap


def chunk_documents(
    documents: list[Document],
    *,
    document_url: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[DocumentChunk]:
    """Split parsed *documents* (pages/sections of one source) into chunks.

    Parameters
    ----------
    documents:
        Pages produced by the loader, in document order.
    document_url:
        Source URL; hashed into ``doc_id`` and every ``chunk_id``.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of characters shared by consecutive chunks of a page.

    Returns
    -------
    list[DocumentChunk]
        Chunks numbered consecutively across the whole document.
    """
    doc_id = document_id(document_url)
    chunks: list[DocumentChunk] = []
    for doc in documents:
        text = doc.page_content
        if not text.strip():
            continue
        metadata = {k: v for k, v in doc.metadata.items() if k in ("source", "page", "title")}
        metadata.setdefault("source", document_url)
        for i, (start, end) in enumerate(split_spans(text, chunk_size, chunk_overlap)):
            idx = len(chunks)
            chunks.append(
                DocumentChunk(
                    chunk_id=f"{doc_id}_{idx}",
                    doc_id=doc_id,
                    text=text[start:end],
                    chunk_index=idx,
                    start_index=start,
                    overlap=0 if i == 0 else chunk_overlap,
                    metadata=metadata,
                )
            )
    return chunks
