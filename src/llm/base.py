"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable


class LLMFailedError(Exception):
    """Raised by a backend when the upstream request or stream fails."""

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class BaseLLMClient(ABC):
    """Abstract base class for LLM providers.

    Messages are plain ``{"role", "content"}`` dicts in conversation order;
    the instruction text is passed separately so each backend can place it
    where its wire format expects it.
    """

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> str:
        """Return the whole reply in one piece."""

    @abstractmethod
    def stream_chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> AsyncIterator[str]:
        """Yield text deltas as the backend produces them."""

    async def aclose(self) -> None:
        return None


def with_system_prompt(
    messages: Iterable[dict[str, str]], system_prompt: str
) -> list[dict[str, str]]:
    history: list[dict[str, str]] = []
    if system_prompt:
        history.append({"role": "system", "content": system_prompt})
    history.extend({"role": msg["role"], "content": msg["content"]} for msg in messages)
    return history
