"""Factory returning configured LLM client implementation."""

from __future__ import annotations

from config.settings import Settings, get_settings
from llm.base import BaseLLMClient
from llm.openai_client import OpenAIClient
from llm.sse_client import SSEChatClient


def build_llm_client(settings: Settings | None = None) -> BaseLLMClient:
    """Instantiate the configured LLM connector.

    Called once per call so every session owns its own connection pool.
    """

    settings = settings or get_settings()
    if settings.llm_provider == "openclaw":
        return SSEChatClient(settings)
    if settings.llm_provider == "openai":
        return OpenAIClient(settings)
    raise ValueError(f"Unsupported llm_provider: {settings.llm_provider}")
