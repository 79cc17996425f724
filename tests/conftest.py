"""Shared pytest configuration, fakes and fixtures.

Nothing here talks to a real Redis, Chroma, embedding or LLM service:

* Celery runs eagerly against in-memory transports; tasks execute inline
  in the submitting thread.
* ``fakeredis`` stands in for the job records and the cache store.
* :class:`FakeEmbeddings` produces deterministic letter-frequency vectors.
* :class:`InMemoryVectorStore` implements the vector-store contract in a dict.
* :class:`EchoChatModel` answers with the question it was asked.
"""

from __future__ import annotations

import math
import threading
import time
from pathlib import Path
from typing import Any, Iterator

import fakeredis
import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage

from docqa.config import Settings
from docqa.errors import CollectionNotFound
from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import EmbeddedChunk, MetadataFilter, RetrievedChunk
from docqa.jobs.celery_app import celery_app
from docqa.jobs.tasks import bind_services
from docqa.services import Services, build_services


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Letter-frequency vectors; counts every call."""

    def __init__(self, dim: int = 26) -> None:
        self.dim = dim
        self.document_calls = 0
        self.query_calls = 0
        self._lock = threading.Lock()

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for ch in text.lower():
            if "a" <= ch <= "z":
                vec[(ord(ch) - ord("a")) % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        with self._lock:
            self.document_calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        with self._lock:
            self.query_calls += 1
        return self._vector(text)

    @property
    def total_calls(self) -> int:
        return self.document_calls + self.query_calls


def _matches(meta: dict[str, Any], filters: list[MetadataFilter] | None) -> bool:
    for f in filters or []:
        value = meta.get(f.field)
        if f.operator == "eq" and value != f.value:
            return False
        if f.operator == "in" and value not in f.value:
            return False
    return True


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed store; ``delay`` makes every backend call sleep first."""

    def __init__(self, embedder: Embeddings, *, timeout: float = 10.0, delay: float = 0.0) -> None:
        super().__init__(embedder, timeout=timeout)
        self.delay = delay
        self.collections: dict[str, dict[str, tuple[list[float], str, dict[str, Any]]]] = {}

    def _pause(self) -> None:
        if self.delay:
            time.sleep(self.delay)

    def _upsert(self, collection: str, chunks: list[EmbeddedChunk]) -> None:
        self._pause()
        entries = self.collections.setdefault(collection, {})
        for item in chunks:
            entries[item.chunk.chunk_id] = (item.vector, item.chunk.text, item.chunk.store_metadata())

    def _query(
        self,
        collection: str,
        embedding: list[float],
        k: int,
        filters: list[MetadataFilter] | None,
    ) -> list[RetrievedChunk]:
        self._pause()
        if collection not in self.collections:
            raise CollectionNotFound(collection)
        hits = [
            RetrievedChunk(
                chunk_id=chunk_id,
                content=text,
                score=sum(a * b for a, b in zip(vector, embedding)),
                metadata=meta,
            )
            for chunk_id, (vector, text, meta) in self.collections[collection].items()
            if _matches(meta, filters)
        ]
        return hits

    def _count(self, collection: str) -> int:
        self._pause()
        if collection not in self.collections:
            raise CollectionNotFound(collection)
        return len(self.collections[collection])

    def health_check(self) -> bool:
        return True


class EchoChatModel:
    """Chat-model stub: replies ``"Answer: <question>"``.

    ``latencies`` maps a question to a sleep in seconds, to make answers
    finish out of order; ``fail_on`` makes the given question raise.
    """

    def __init__(self, latencies: dict[str, float] | None = None, fail_on: str | None = None) -> None:
        self.latencies = latencies or {}
        self.fail_on = fail_on
        self.calls = 0
        self.prompts: list[Any] = []
        self._lock = threading.Lock()

    def invoke(self, messages: list[Any]) -> AIMessage:
        with self._lock:
            self.calls += 1
            self.prompts.append(messages)
        question = messages[-1].content.rsplit("Question: ", 1)[-1]
        time.sleep(self.latencies.get(question, 0.0))
        if question == self.fail_on:
            raise RuntimeError("rate limited")
        return AIMessage(content=f"Answer: {question}")


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True, scope="session")
def eager_celery() -> None:
    celery_app.conf.update(
        broker_url="memory://",
        result_backend="cache+memory://",
        task_always_eager=True,
        task_eager_propagates=False,
        task_store_eager_result=True,
    )


@pytest.fixture()
def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        uploads_dir=str(tmp_path / "uploads"),
        job_poll_interval=0.01,
        job_wait_timeout=2.0,
        chunk_size=200,
        chunk_overlap=40,
        query_concurrency=2,
        environment="production",
    )


@pytest.fixture()
def embedder() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def store(embedder: FakeEmbeddings) -> InMemoryVectorStore:
    return InMemoryVectorStore(embedder)


@pytest.fixture()
def llm() -> EchoChatModel:
    return EchoChatModel()


@pytest.fixture()
def services(
    settings: Settings,
    fake_redis: fakeredis.FakeRedis,
    embedder: FakeEmbeddings,
    llm: EchoChatModel,
    store: InMemoryVectorStore,
) -> Iterator[Services]:
    svc = build_services(settings, redis_client=fake_redis, embedder=embedder, llm=llm, store=store)
    bind_services(svc)
    yield svc
    bind_services(None)


@pytest.fixture()
def sample_text() -> str:
    return (
        "The policy covers hospitalisation expenses for a period of one year. "
        "A grace period of thirty days is provided for premium payment. "
        "Pre-existing diseases are covered after thirty-six months of continuous coverage. "
        "Maternity expenses are covered after the insured has been enrolled for twenty-four months. "
    ) * 4


@pytest.fixture()
def document_file(tmp_path: Path, sample_text: str) -> Path:
    path = tmp_path / "policy.txt"
    path.write_text(sample_text, encoding="utf-8")
    return path


@pytest.fixture()
def make_store(embedder: FakeEmbeddings):
    """Factory for stores with custom ``timeout`` / ``delay``."""

    def _make(**kwargs: Any) -> InMemoryVectorStore:
        return InMemoryVectorStore(embedder, **kwargs)

    return _make


@pytest.fixture()
def make_llm():
    """Factory for :class:`EchoChatModel` with custom latencies / failures."""

    def _make(**kwargs: Any) -> EchoChatModel:
        return EchoChatModel(**kwargs)

    return _make
