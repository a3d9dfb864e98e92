"""OpenAI (or any OpenAI-compatible base URL) client wrapper."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable

from openai import AsyncOpenAI, OpenAIError

from config.settings import Settings
from llm.base import BaseLLMClient, LLMFailedError, with_system_prompt

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API."""

    def __init__(self, settings: Settings, *, client: AsyncOpenAI | None = None) -> None:
        if client is None:
            if not settings.llm_api_key:
                raise ValueError("LLM API key must be configured for OpenAI client.")
            client = AsyncOpenAI(
                api_key=settings.llm_api_key,
                base_url=settings.llm_endpoint or None,
                timeout=settings.llm_timeout_seconds,
            )

        self._client = client
        self._model = settings.llm_model
        self._max_tokens = settings.llm_max_tokens
        self._temperature = settings.llm_temperature

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=with_system_prompt(messages, system_prompt),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except OpenAIError as exc:
            raise LLMFailedError(f"OpenAI request failed: {exc}") from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream_chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=with_system_prompt(messages, system_prompt),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                stream=True,
            )

            async for event in stream:
                if not event.choices:
                    continue
                chunk = getattr(event.choices[0].delta, "content", None)
                if chunk:
                    yield chunk
        except OpenAIError as exc:
            raise LLMFailedError(f"OpenAI stream failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.close()
