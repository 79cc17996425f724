"""Abstract base class for vector-store backends.

Adding a new backend (Qdrant, Pinecone, …) only requires subclassing
:class:`VectorStoreBase` and implementing the ``_upsert`` / ``_query`` /
``_count`` primitives. The public methods wrap every backend call in a
timeout so an unreachable store surfaces as :class:`IndexUnavailable`
instead of hanging a worker or request handler.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from docqa.errors import (
    CollectionNotFound,
    ConfigurationError,
    EmbeddingDimensionMismatch,
    IndexUnavailable,
    ModelServiceError,
)
from docqa.retrieval.models import EmbeddedChunk, MetadataFilter, RetrievedChunk

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    embedder:
        Embedding client used to vectorise query text.
    timeout:
        Seconds allowed for any single backend call, connecting included.
    """

    def __init__(self, embedder: Embeddings, *, timeout: float = 10.0) -> None:
        self._embedder = embedder
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="vector-store")

    # -- public contract ------------------------------------------------------

    def upsert(self, collection: str, chunks: list[EmbeddedChunk]) -> None:
        """Insert or overwrite *chunks* keyed by ``chunk.chunk_id``."""
        if not chunks:
            return
        dim = chunks[0].dimension
        for item in chunks:
            if item.dimension != dim:
                raise EmbeddingDimensionMismatch(collection, dim, item.dimension)
        self._guarded("upsert", self._upsert, collection, chunks)

    def similarity_search(
        self,
        collection: str,
        query: str,
        *,
        k: int = 2,
        filters: list[MetadataFilter] | None = None,
    ) -> list[RetrievedChunk]:
        """Return at most *k* hits for *query*, most similar first.

        Raises :class:`CollectionNotFound` when *collection* has never been
        written, so callers can tell "no data yet" from "nothing relevant".
        """
        try:
            embedding = self._embedder.embed_query(query)
        except Exception as exc:
            raise ModelServiceError(f"Embedding service failed for query: {exc}") from exc
        hits = self._guarded("similarity_search", self._query, collection, embedding, k, filters)
        return sorted(hits, key=lambda h: h.score, reverse=True)[:k]

    def count(self, collection: str) -> int:
        """Number of entries stored in *collection*."""
        return self._guarded("count", self._count, collection)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def _upsert(self, collection: str, chunks: list[EmbeddedChunk]) -> None: ...

    @abstractmethod
    def _query(
        self,
        collection: str,
        embedding: list[float],
        k: int,
        filters: list[MetadataFilter] | None,
    ) -> list[RetrievedChunk]: ...

    @abstractmethod
    def _count(self, collection: str) -> int: ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- internals ------------------------------------------------------------

    def _guarded(self, action: str, fn: Callable[..., T], *args: Any) -> T:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            future.cancel()
            logger.warning("Vector store %s timed out after %.1fs", action, self.timeout)
            raise IndexUnavailable(
                f"Vector store did not complete {action} within {self.timeout:.1f}s"
            ) from exc
        except (CollectionNotFound, ConfigurationError):
            raise
        except Exception as exc:
            raise IndexUnavailable(f"Vector store {action} failed: {exc}") from exc
