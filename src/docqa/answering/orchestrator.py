"""Query orchestration — answer a batch of questions about one document.

Questions are independent: each runs the retrieve → generate graph on its
own. They may run concurrently, but answers are always returned in the order
the questions were given. If any question fails the whole batch fails with
:class:`AnswerGenerationError`; a partial answer list is never returned.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from docqa.answering.graph import build_answer_graph
from docqa.answering.synthesizer import AnswerSynthesizer
from docqa.errors import AnswerGenerationError
from docqa.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """Run similarity search + synthesis for every question in a batch.

    Parameters
    ----------
    retriever:
        Document-scoped similarity search.
    synthesizer:
        Generates the answer text from retrieved chunks.
    top_k:
        Chunks retrieved per question.
    max_workers:
        Questions answered in parallel; ``1`` processes them sequentially.
    """

    def __init__(
        self,
        retriever: SemanticRetriever,
        synthesizer: AnswerSynthesizer,
        *,
        top_k: int = 2,
        max_workers: int = 4,
    ) -> None:
        self._graph = build_answer_graph(retriever, synthesizer, top_k=top_k)
        self.max_workers = max_workers

    def answer_question(self, document_url: str, question: str) -> str:
        result = self._graph.invoke({"question": question, "document_url": document_url})
        return result["answer"]

    def answer_all(self, document_url: str, questions: list[str]) -> list[str]:
        """Return one answer per question, aligned positionally with *questions*."""
        if not questions:
            return []

        def _answer(indexed: tuple[int, str]) -> str:
            index, question = indexed
            try:
                return self.answer_question(document_url, question)
            except Exception as exc:
                logger.error("Question #%d failed for %s: %s", index, document_url, exc)
                raise AnswerGenerationError(index, question, exc) from exc

        t0 = time.monotonic()
        workers = min(self.max_workers, len(questions))
        if workers <= 1:
            answers = [_answer(item) for item in enumerate(questions)]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="answer") as pool:
                answers = list(pool.map(_answer, enumerate(questions)))

        logger.info(
            "Answered %d question(s) for %s in %.1fs", len(answers), document_url, time.monotonic() - t0
        )
        return answers
