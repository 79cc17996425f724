"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import chromadb

from docqa.config import Settings
from docqa.errors import CollectionNotFound, EmbeddingDimensionMismatch
from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import EmbeddedChunk, MetadataFilter, RetrievedChunk

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter] | None) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _distance_to_score(distance: float, metric: str) -> float:
    # Chroma reports distances; cosine and ip are 1 - similarity.
    if metric in ("cosine", "ip"):
        return 1.0 - distance
    return 1.0 / (1.0 + distance)


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    The HTTP client is created on first use, inside the timeout guard, so
    constructing the store never blocks on the network.

    Parameters
    ----------
    embedder:
        Embedding client used for query text.
    host / port:
        Chroma server location.
    timeout:
        Per-call timeout in seconds.
    distance_metric:
        ``cosine`` | ``l2`` | ``ip``, applied when a collection is created.
    upsert_batch_size:
        Max records per upsert call.
    """

    def __init__(
        self,
        embedder: Embeddings,
        *,
        host: str = "localhost",
        port: int = 8000,
        timeout: float = 10.0,
        distance_metric: str = "cosine",
        upsert_batch_size: int = 5000,
    ) -> None:
        super().__init__(embedder, timeout=timeout)
        self._host = host
        self._port = port
        self.distance_metric = distance_metric
        self.upsert_batch_size = upsert_batch_size
        self._client: Any = None

    @classmethod
    def from_settings(cls, settings: Settings, embedder: Embeddings) -> ChromaVectorStore:
        return cls(
            embedder,
            host=settings.chroma_host,
            port=settings.chroma_port,
            timeout=settings.vector_store_timeout,
            distance_metric=settings.distance_metric,
        )

    def _get_client(self) -> Any:
        client = self._client
        if client is None:
            logger.info("Connecting to Chroma at %s:%d", self._host, self._port)
            client = chromadb.HttpClient(host=self._host, port=self._port)
            self._client = client
        return client

    def _get_existing(self, collection: str) -> Any:
        client = self._get_client()
        # list_collections returns names on chromadb>=0.6 and Collection objects before.
        names = {getattr(c, "name", c) for c in client.list_collections()}
        if collection not in names:
            raise CollectionNotFound(collection)
        return client.get_collection(collection)

    # -- VectorStoreBase overrides --------------------------------------------

    def _upsert(self, collection: str, chunks: list[EmbeddedChunk]) -> None:
        dim = chunks[0].dimension
        coll = self._get_client().get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": self.distance_metric, "embedding_dim": dim},
        )
        stored_dim = (coll.metadata or {}).get("embedding_dim")
        if stored_dim is not None and int(stored_dim) != dim:
            raise EmbeddingDimensionMismatch(collection, int(stored_dim), dim)

        for start in range(0, len(chunks), self.upsert_batch_size):
            batch = chunks[start : start + self.upsert_batch_size]
            coll.upsert(
                ids=[item.chunk.chunk_id for item in batch],
                embeddings=[item.vector for item in batch],
                documents=[item.chunk.text for item in batch],
                metadatas=[item.chunk.store_metadata() for item in batch],
            )
        logger.info("Upserted %d vectors → collection '%s'", len(chunks), collection)

    def _query(
        self,
        collection: str,
        embedding: list[float],
        k: int,
        filters: list[MetadataFilter] | None,
    ) -> list[RetrievedChunk]:
        coll = self._get_existing(collection)
        results = coll.query(
            query_embeddings=[embedding],
            n_results=k,
            where=_build_chroma_where(filters),
            include=["documents", "metadatas", "distances"],
        )

        metric = (coll.metadata or {}).get("hnsw:space", self.distance_metric)
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        return [
            RetrievedChunk(
                chunk_id=chunk_id,
                content=content or "",
                score=_distance_to_score(dist, metric),
                metadata=dict(meta or {}),
            )
            for chunk_id, content, meta, dist in zip(ids, docs, metas, distances)
        ]

    def _count(self, collection: str) -> int:
        return self._get_existing(collection).count()

    def health_check(self) -> bool:
        try:
            self._guarded("heartbeat", lambda: self._get_client().heartbeat())
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
