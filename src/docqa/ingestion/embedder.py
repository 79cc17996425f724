"""Embedding-service client and batched chunk embedding."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from docqa.config import Settings
from docqa.errors import EmbeddingDimensionMismatch, ModelServiceError
from docqa.retrieval.models import DocumentChunk, EmbeddedChunk

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(settings: Settings) -> Embeddings:
    """Return the configured embedding client.

    ``openai`` talks to the OpenAI embeddings API (or any compatible
    endpoint at ``llm_base_url``) with an explicit request timeout;
    ``huggingface`` runs a local sentence-transformer.
    """
    provider = settings.embedding_provider.lower()
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        kwargs: dict = {
            "model": settings.embedding_model,
            "api_key": settings.embedding_api_key or settings.openai_api_key or "EMPTY",
            "timeout": settings.embedding_timeout,
            "max_retries": 1,
        }
        if settings.llm_base_url:
            kwargs["base_url"] = settings.llm_base_url
        return OpenAIEmbeddings(**kwargs)
    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(
            model_name=settings.embedding_model,
            encode_kwargs={"normalize_embeddings": True},
        )
    raise ValueError(f"Unsupported embedding_provider={settings.embedding_provider!r}")


def embed_chunks(
    chunks: list[DocumentChunk],
    embedder: Embeddings,
    *,
    batch_size: int = 64,
    collection: str = "",
) -> list[EmbeddedChunk]:
    """Embed every chunk in batches, keeping chunk ↔ vector association.

    Raises
    ------
    ModelServiceError
        When the provider fails or returns the wrong number of vectors.
    EmbeddingDimensionMismatch
        When the provider returns vectors of differing dimensionality.
    """
    if not chunks:
        return []

    embedded: list[EmbeddedChunk] = []
    t0 = time.monotonic()
    for start in range(0, len(chunks), batch_size):
        batch = chunks[start : start + batch_size]
        try:
            vectors = embedder.embed_documents([c.text for c in batch])
        except Exception as exc:
            raise ModelServiceError(f"Embedding service failed on batch at {start}: {exc}") from exc
        if len(vectors) != len(batch):
            raise ModelServiceError(
                f"Embedding service returned {len(vectors)} vectors for {len(batch)} chunks"
            )
        embedded.extend(EmbeddedChunk(chunk=c, vector=v) for c, v in zip(batch, vectors))
        logger.debug("  embedded %d / %d", len(embedded), len(chunks))

    dim = embedded[0].dimension
    for item in embedded:
        if item.dimension != dim:
            raise EmbeddingDimensionMismatch(collection, dim, item.dimension)

    logger.info(
        "Embedded %d chunks (dim=%d) in %.1fs", len(embedded), dim, time.monotonic() - t0
    )
    return embedded
