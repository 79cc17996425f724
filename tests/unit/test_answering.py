"""Unit tests for prompts, answer synthesis, the answer graph and query orchestration."""

from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from docqa.answering.graph import build_answer_graph
from docqa.answering.orchestrator import QueryOrchestrator
from docqa.answering.prompts import ANSWER_SYSTEM, build_answer_prompt
from docqa.answering.synthesizer import AnswerSynthesizer
from docqa.errors import AnswerGenerationError, ModelServiceError
from docqa.retrieval.models import DocumentChunk, EmbeddedChunk, RetrievedChunk, document_id
from docqa.retrieval.retriever import SemanticRetriever

URL = "https://example.com/policy.pdf"
TEXTS = [
    "A grace period of thirty days is provided for premium payment.",
    "Maternity expenses are covered after twenty-four months.",
    "Cataract surgery has a waiting period of two years.",
]


def _hit(content: str, index: int = 0) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=f"d_{index}", content=content, score=0.9, metadata={"source": URL, "chunk_index": index}
    )


@pytest.fixture()
def retriever(store, embedder) -> SemanticRetriever:
    doc_id = document_id(URL)
    chunks = [DocumentChunk(chunk_id=f"{doc_id}_{i}", doc_id=doc_id, text=t, chunk_index=i) for i, t in enumerate(TEXTS)]
    vectors = embedder.embed_documents(TEXTS)
    store.upsert("docs", [EmbeddedChunk(chunk=c, vector=v) for c, v in zip(chunks, vectors)])
    return SemanticRetriever(store, collection="docs", default_k=2)


# ── Prompt tests ───────────────────────────────────────────────────────


class TestPrompt:
    def test_system_rules(self) -> None:
        assert "ONLY" in ANSWER_SYSTEM
        assert "based on the\n   context" in ANSWER_SYSTEM
        assert "yes or no AND give the reason" in ANSWER_SYSTEM
        assert "does\n   not specify" in ANSWER_SYSTEM

    def test_question_is_verbatim(self) -> None:
        question = "  Does it cover   knee surgery?? "
        messages = build_answer_prompt(question, [_hit(TEXTS[0])])
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content.endswith(f"Question: {question}")
        assert TEXTS[0] in messages[1].content

    def test_context_budget(self) -> None:
        chunks = [_hit("x" * 500, i) for i in range(5)]
        content = build_answer_prompt("q", chunks, max_context_chars=800)[1].content
        context = content.split("Context:\n", 1)[1].split("\n\nQuestion:", 1)[0]
        assert len(context) <= 800 + 2 * len(chunks)
        assert "[3]" not in context

    def test_empty_context(self) -> None:
        content = build_answer_prompt("q", [])[1].content
        assert "(no relevant excerpts found)" in content


# ── Synthesizer tests ──────────────────────────────────────────────────


class TestAnswerSynthesizer:
    def test_returns_model_output_unmodified(self, llm) -> None:
        answer = AnswerSynthesizer(llm).synthesize("What is the grace period?", [_hit(TEXTS[0])])
        assert answer == "Answer: What is the grace period?"

    def test_joins_multipart_content(self) -> None:
        class MultiPart:
            def invoke(self, messages):
                return AIMessage(content=["Thirty ", {"type": "text", "text": "days."}])

        assert AnswerSynthesizer(MultiPart()).synthesize("q", []) == "Thirty days."

    def test_model_failure(self, make_llm) -> None:
        with pytest.raises(ModelServiceError, match="rate limited"):
            AnswerSynthesizer(make_llm(fail_on="q")).synthesize("q", [])


# ── Graph tests ────────────────────────────────────────────────────────


class TestAnswerGraph:
    def test_retrieve_then_generate(self, retriever, llm) -> None:
        graph = build_answer_graph(retriever, AnswerSynthesizer(llm), top_k=1)
        state = graph.invoke({"question": "What is the grace period?", "document_url": URL})

        assert len(state["chunks"]) == 1
        assert state["answer"] == "Answer: What is the grace period?"
        assert state["chunks"][0].content in llm.prompts[0][1].content


# ── Orchestrator tests ─────────────────────────────────────────────────


class TestQueryOrchestrator:
    def test_answers_follow_question_order(self, retriever, make_llm) -> None:
        questions = ["first?", "second?", "third?"]
        llm = make_llm(latencies={"first?": 0.3, "second?": 0.0, "third?": 0.1})
        orchestrator = QueryOrchestrator(retriever, AnswerSynthesizer(llm), max_workers=3)

        assert orchestrator.answer_all(URL, questions) == [f"Answer: {q}" for q in questions]

    def test_sequential_mode(self, retriever, llm) -> None:
        orchestrator = QueryOrchestrator(retriever, AnswerSynthesizer(llm), max_workers=1)
        assert orchestrator.answer_all(URL, ["a?", "b?"]) == ["Answer: a?", "Answer: b?"]
        assert llm.calls == 2

    def test_single_failure_fails_whole_batch(self, retriever, make_llm) -> None:
        llm = make_llm(fail_on="second?")
        orchestrator = QueryOrchestrator(retriever, AnswerSynthesizer(llm), max_workers=2)

        with pytest.raises(AnswerGenerationError) as exc_info:
            orchestrator.answer_all(URL, ["first?", "second?", "third?"])
        assert exc_info.value.index == 1
        assert exc_info.value.question == "second?"
        assert isinstance(exc_info.value.__cause__, ModelServiceError)

    def test_no_questions(self, retriever, llm) -> None:
        assert QueryOrchestrator(retriever, AnswerSynthesizer(llm)).answer_all(URL, []) == []
        assert llm.calls == 0
