"""
Answering — retrieval-augmented answer generation for question batches.

Public API
----------
- :class:`QueryOrchestrator` — ``answer_all(document_url, questions)``.
- :class:`AnswerSynthesizer` — one generative-model call per question.
- :func:`build_answer_graph` — the per-question retrieve → generate flow.
"""

from docqa.answering.graph import build_answer_graph
from docqa.answering.orchestrator import QueryOrchestrator
from docqa.answering.synthesizer import AnswerSynthesizer

__all__ = [
    "AnswerSynthesizer",
    "QueryOrchestrator",
    "build_answer_graph",
]
