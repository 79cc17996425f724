"""LLM initialisation — single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` (vLLM, Ollama,
   a gateway, …); ``ChatOpenAI`` works unchanged.

Every request carries ``LLM_TIMEOUT`` so a stalled provider surfaces as an
error instead of hanging the caller.
"""

from __future__ import annotations

import logging

from langchain_openai import ChatOpenAI

from docqa.config import Settings

logger = logging.getLogger(__name__)


def get_llm(settings: Settings) -> ChatOpenAI:
    """Return the configured chat model."""
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature,
        "timeout": settings.llm_timeout,
        "max_retries": 1,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # Self-hosted servers don't need a real key; LangChain requires a non-empty value.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)
