"""Domain models for chunks, embeddings and retrieval results."""

from __future__ import annotations

import hashlib
from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"doc_id"``, ``"page"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class DocumentChunk(BaseModel):
    """A bounded slice of a parsed document.

    Attributes
    ----------
    chunk_id:
        Stable identity ``"<doc_id>_<chunk_index>"``; the vector-store key.
    doc_id:
        Hash of the originating document URL.
    text:
        The chunk content.
    chunk_index:
        Ordinal position of the chunk within the whole document.
    start_index:
        Character offset of ``text`` within its page/section.
    overlap:
        Number of leading characters shared with the preceding chunk of the
        same page (0 for the first chunk of a page).
    metadata:
        Source metadata: ``source`` URL, ``page`` number when known.
    """

    chunk_id: str
    doc_id: str
    text: str
    chunk_index: int
    start_index: int = 0
    overlap: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    def store_metadata(self) -> dict[str, str | int | float | bool]:
        """Flat metadata accepted by vector stores (scalar values only)."""
        meta: dict[str, str | int | float | bool] = {
            "doc_id": self.doc_id,
            "chunk_index": self.chunk_index,
            "start_index": self.start_index,
            "overlap": self.overlap,
        }
        for key, value in self.metadata.items():
            if isinstance(value, (str, int, float, bool)):
                meta.setdefault(key, value)
        return meta


class EmbeddedChunk(BaseModel):
    """A chunk paired with the vector computed for its text."""

    chunk: DocumentChunk
    vector: list[float]

    @property
    def dimension(self) -> int:
        return len(self.vector)


class RetrievedChunk(BaseModel):
    """One similarity-search hit; higher ``score`` means more similar."""

    chunk_id: str
    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        source = self.metadata.get("source", "unknown")
        chunk = self.metadata.get("chunk_index", "?")
        return f"[{source}§{chunk}]"

    def __str__(self) -> str:  # noqa: D105
        return f"{self.short_ref()} {self.content[:120]}…"


def document_id(document_url: str) -> str:
    """Stable identity of a source document: first 16 hex chars of sha256(url)."""
    return hashlib.sha256(document_url.encode("utf-8")).hexdigest()[:16]
