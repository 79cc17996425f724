"""LangGraph flow for answering one question.

Graph topology::

    START → retrieve → generate → END

``retrieve`` runs a top-K similarity search scoped to the question's
document; ``generate`` calls the :class:`AnswerSynthesizer`. Both
collaborators are injected, so the graph runs against fakes in tests.
"""

from __future__ import annotations

from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from docqa.answering.synthesizer import AnswerSynthesizer
from docqa.retrieval.models import RetrievedChunk
from docqa.retrieval.retriever import SemanticRetriever


class QuestionState(TypedDict, total=False):
    """State flowing through the answer graph."""

    question: str
    document_url: str | None
    chunks: list[RetrievedChunk]
    answer: str


def build_answer_graph(
    retriever: SemanticRetriever,
    synthesizer: AnswerSynthesizer,
    *,
    top_k: int = 2,
) -> Any:
    """Construct and return the compiled per-question graph."""

    def retrieve(state: QuestionState) -> dict[str, Any]:
        chunks = retriever.search(state["question"], document_url=state.get("document_url"), k=top_k)
        return {"chunks": chunks}

    def generate(state: QuestionState) -> dict[str, Any]:
        return {"answer": synthesizer.synthesize(state["question"], state.get("chunks", []))}

    workflow = StateGraph(QuestionState)
    workflow.add_node("retrieve", retrieve)
    workflow.add_node("generate", generate)
    workflow.set_entry_point("retrieve")
    workflow.add_edge("retrieve", "generate")
    workflow.add_edge("generate", END)
    return workflow.compile()
