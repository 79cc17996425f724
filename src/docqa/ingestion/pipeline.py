"""The per-job ingestion pipeline: download → parse → chunk → embed → index.

Re-running a job for the same document is safe: chunking is deterministic
and chunks are upserted under ``"<doc_id>_<chunk_index>"`` keys, so a repeat
overwrites the previous entries instead of duplicating them. Two jobs for the
same URL running at the same time are not mutually excluded; their upserts
may interleave, which is harmless for identical input.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from docqa.config import Settings
from docqa.errors import SourceMissing, UnrecoverableJobError
from docqa.ingestion.chunker import chunk_documents
from docqa.ingestion.embedder import embed_chunks
from docqa.ingestion.loader import download_document, load_document
from docqa.jobs.models import IngestionJob, IngestionPayload
from docqa.retrieval.models import document_id

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from docqa.answering.orchestrator import QueryOrchestrator
    from docqa.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Index one document and, when the job carries questions, answer them.

    Parameters
    ----------
    store:
        Vector index the chunks are written to.
    embedder:
        Embedding-service client.
    collection:
        Collection every document is indexed into.
    orchestrator:
        Answers the job's questions after indexing (async submissions).
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: Embeddings,
        *,
        collection: str,
        uploads_dir: str | Path = "uploads",
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        embedding_batch_size: int = 64,
        download_timeout: float = 60.0,
        download_retries: int = 3,
        orchestrator: QueryOrchestrator | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.collection = collection
        self.uploads_dir = Path(uploads_dir)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.embedding_batch_size = embedding_batch_size
        self.download_timeout = download_timeout
        self.download_retries = download_retries
        self._orchestrator = orchestrator

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: VectorStoreBase,
        embedder: Embeddings,
        orchestrator: QueryOrchestrator | None = None,
    ) -> IngestionPipeline:
        return cls(
            store,
            embedder,
            collection=settings.chroma_collection,
            uploads_dir=settings.uploads_dir,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            embedding_batch_size=settings.embedding_batch_size,
            download_timeout=settings.download_timeout,
            download_retries=settings.download_retries,
            orchestrator=orchestrator,
        )

    def resolve_source(self, payload: IngestionPayload) -> Path:
        """Return the local copy of the document, downloading it if needed."""
        if payload.saved_path:
            path = Path(payload.saved_path)
            if not path.is_file():
                raise SourceMissing(f"Document file not found at path: {path}")
            return path
        return download_document(
            payload.document_url,
            self.uploads_dir,
            timeout=self.download_timeout,
            max_retries=self.download_retries,
        )

    def run(self, job: IngestionJob) -> dict[str, Any]:
        """Execute the pipeline for *job* and return its result payload.

        Any unrecovered error propagates so the queue's retry policy applies.
        """
        payload = IngestionPayload.from_job_data(job.data)
        url = payload.document_url
        t0 = time.monotonic()

        path = self.resolve_source(payload)
        docs = load_document(path, source=url)

        chunks = chunk_documents(
            docs,
            document_url=url,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )
        if not chunks:
            raise UnrecoverableJobError(f"No extractable text in {url}")
        logger.info("Split %s into %d chunks", url, len(chunks))

        embedded = embed_chunks(
            chunks, self._embedder, batch_size=self.embedding_batch_size, collection=self.collection
        )
        self._store.upsert(self.collection, embedded)
        stored = self._store.count(self.collection)
        logger.info(
            "Indexed %d chunks of %s into '%s' (%d entries total) in %.1fs",
            len(embedded), url, self.collection, stored, time.monotonic() - t0,
        )

        result: dict[str, Any] = {
            "success": True,
            "doc_id": document_id(url),
            "chunks": len(chunks),
            "collection": self.collection,
        }
        if payload.questions and self._orchestrator is not None:
            result["answers"] = self._orchestrator.answer_all(url, payload.questions)
        return result
