"""
Retrieval — vector index adapter and per-document similarity search.

This module wraps the vector store behind a clean interface so that
the ingestion and answering layers never need to know which DB is
backing retrieval.

Public surface
--------------
- :class:`SemanticRetriever` — top-K search scoped to one document.
- :class:`VectorStoreBase` — abstract backend with timeout guard.
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`DocumentChunk`, :class:`EmbeddedChunk`, :class:`RetrievedChunk`,
  :class:`MetadataFilter` — data models.
"""

from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import (
    DocumentChunk,
    EmbeddedChunk,
    MetadataFilter,
    RetrievedChunk,
    document_id,
)
from docqa.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "DocumentChunk",
    "EmbeddedChunk",
    "MetadataFilter",
    "RetrievedChunk",
    "SemanticRetriever",
    "VectorStoreBase",
    "document_id",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from docqa.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
