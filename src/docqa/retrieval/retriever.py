"""Semantic retriever — per-document similarity search.

Usage::

    from docqa.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(store, collection="langchainjs-testing", default_k=2)
    for hit in retriever.search("What is the grace period?", document_url=url):
        print(hit.short_ref(), hit.score)
"""

from __future__ import annotations

import logging

from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import MetadataFilter, RetrievedChunk, document_id

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    collection:
        Collection every document is indexed into.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        *,
        collection: str,
        default_k: int = 2,
        score_threshold: float | None = None,
    ) -> None:
        self._store = store
        self.collection = collection
        self.default_k = default_k
        self.score_threshold = score_threshold

    def search(
        self,
        query: str,
        *,
        document_url: str | None = None,
        k: int | None = None,
    ) -> list[RetrievedChunk]:
        """Run a similarity search, optionally restricted to one document.

        Returns
        -------
        list[RetrievedChunk]
            At most *k* hits ordered by descending score.
        """
        k = k or self.default_k
        filters = [MetadataFilter.equals("doc_id", document_id(document_url))] if document_url else None
        hits = self._store.similarity_search(self.collection, query, k=k, filters=filters)
        if self.score_threshold is not None:
            hits = [h for h in hits if h.score >= self.score_threshold]
        logger.debug("Retrieved %d chunks for %.60r", len(hits), query)
        return hits
