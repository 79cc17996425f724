"""Answer synthesis — one generative-model call per question."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docqa.answering.prompts import build_answer_prompt
from docqa.errors import ModelServiceError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from docqa.retrieval.models import RetrievedChunk

logger = logging.getLogger(__name__)


class AnswerSynthesizer:
    """Turn a question plus retrieved chunks into answer text.

    The generated text is returned unmodified.
    """

    def __init__(self, llm: BaseChatModel, *, max_context_chars: int = 8000) -> None:
        self._llm = llm
        self.max_context_chars = max_context_chars

    def synthesize(self, question: str, chunks: list[RetrievedChunk]) -> str:
        prompt = build_answer_prompt(question, chunks, max_context_chars=self.max_context_chars)
        try:
            response = self._llm.invoke(prompt)
        except Exception as exc:
            raise ModelServiceError(f"Generation failed: {exc}") from exc

        content = response.content
        if isinstance(content, list):
            # Multi-part responses: keep the text parts in order.
            content = "".join(
                part if isinstance(part, str) else part.get("text", "") for part in content
            )
        return content
