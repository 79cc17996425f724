"""Explicit construction and lifecycle of the process's shared dependencies.

:func:`build_services` wires the queue, cache, vector store, answering stack,
and ingestion pipeline from a :class:`Settings` instance. Any piece can
be passed in pre-built, which is how tests substitute fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docqa.answering.orchestrator import QueryOrchestrator
from docqa.answering.synthesizer import AnswerSynthesizer
from docqa.cache import ResponseCache
from docqa.config import Settings
from docqa.ingestion.pipeline import IngestionPipeline
from docqa.jobs.queue import JobQueue
from docqa.redis_client import create_redis_client
from docqa.retrieval.retriever import SemanticRetriever

if TYPE_CHECKING:
    import redis
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models import BaseChatModel

    from docqa.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    queue: JobQueue
    cache: ResponseCache
    store: VectorStoreBase
    orchestrator: QueryOrchestrator
    pipeline: IngestionPipeline

    def close(self) -> None:
        """Release store and broker connections."""
        self.store.close()
        self.queue.close()


def build_services(
    settings: Settings,
    *,
    redis_client: redis.Redis | None = None,
    embedder: Embeddings | None = None,
    llm: BaseChatModel | None = None,
    store: VectorStoreBase | None = None,
) -> Services:
    if redis_client is None:
        redis_client = create_redis_client(settings)
    if embedder is None:
        from docqa.ingestion.embedder import get_embedding_function

        embedder = get_embedding_function(settings)
    if llm is None:
        from docqa.answering.llm import get_llm

        llm = get_llm(settings)
    if store is None:
        from docqa.retrieval.chroma_store import ChromaVectorStore

        store = ChromaVectorStore.from_settings(settings, embedder)

    queue = JobQueue.from_settings(settings, client=redis_client)
    cache = ResponseCache.from_settings(settings, client=redis_client)
    retriever = SemanticRetriever(store, collection=settings.chroma_collection, default_k=settings.top_k)
    orchestrator = QueryOrchestrator(
        retriever,
        AnswerSynthesizer(llm, max_context_chars=settings.max_context_chars),
        top_k=settings.top_k,
        max_workers=settings.query_concurrency,
    )
    pipeline = IngestionPipeline.from_settings(settings, store, embedder, orchestrator=orchestrator)
    logger.info("Services ready (queue=%s, collection=%s)", settings.queue_name, settings.chroma_collection)
    return Services(
        settings=settings,
        queue=queue,
        cache=cache,
        store=store,
        orchestrator=orchestrator,
        pipeline=pipeline,
    )
