"""Prompt template for document question answering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from docqa.retrieval.models import RetrievedChunk

ANSWER_SYSTEM = """\
You answer questions about a single document using ONLY the context
excerpts supplied with each question.

Rules:
1. Give a direct, factual answer. Do not add phrases such as "based on the
   context", "according to the provided text" or any other commentary about
   the excerpts themselves.
2. For yes/no questions, state yes or no AND give the reason, conditions or
   clause from the context that supports it. Never reply with a bare
   "yes" or "no".
3. If the context does not contain the answer, say that the document does
   not specify it. Do not use outside knowledge.
"""


def build_answer_prompt(
    question: str,
    chunks: list[RetrievedChunk],
    *,
    max_context_chars: int = 8000,
) -> list[BaseMessage]:
    """Assemble the messages for one answer-generation call.

    The context block is capped at *max_context_chars*; excerpts beyond the
    budget are dropped and the last one that fits partially is truncated.
    The question is passed through verbatim.
    """
    context = _format_context(chunks, max_context_chars)
    return [
        SystemMessage(content=ANSWER_SYSTEM),
        HumanMessage(content=f"Context:\n{context}\n\nQuestion: {question}"),
    ]


def _format_context(chunks: list[RetrievedChunk], budget: int) -> str:
    parts: list[str] = []
    used = 0
    for i, chunk in enumerate(chunks, 1):
        header = f"[{i}] {chunk.short_ref()}\n"
        remaining = budget - used - len(header)
        if remaining <= 0:
            break
        body = chunk.content[:remaining]
        parts.append(header + body)
        used += len(header) + len(body)
    return "\n\n".join(parts) if parts else "(no relevant excerpts found)"
