"""Client for OpenAI-compatible gateways that stream server-sent events.

Gateways in front of different model vendors do not agree on the shape of a
streamed delta. :func:`extract_delta_text` recognizes the shapes seen in
practice and ignores everything else, so a keep-alive or usage frame never
aborts a reply.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from config.settings import Settings
from llm.base import BaseLLMClient, LLMFailedError, with_system_prompt

LOGGER = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class ServerSentEvent:
    data: str
    event: str = "message"


def parse_event(lines: Iterable[str]) -> ServerSentEvent:
    event_name: str | None = None
    data_lines: list[str] = []
    for line in lines:
        field, _, value = line.partition(":")
        value = value.lstrip(" ")
        if field == "event":
            event_name = value or None
        elif field == "data":
            data_lines.append(value)
    return ServerSentEvent(data="\n".join(data_lines), event=event_name or "message")


async def iter_events(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    buffer: list[str] = []
    async for line in lines:
        if not line:
            if buffer:
                yield parse_event(buffer)
                buffer.clear()
            continue
        if line.startswith(":"):
            continue
        buffer.append(line)
    if buffer:
        yield parse_event(buffer)


def extract_delta_text(payload: Any) -> str | None:
    """Return the text carried by one streamed event, or None to skip it.

    Recognized shapes:

    * ``{"delta": "text"}``
    * ``{"delta": {"text": "text"}}`` (content block deltas)
    * ``{"choices": [{"delta": {"content": "text"}}]}``
    * ``{"choices": [{"text": "text"}]}`` (legacy completion chunks)
    """

    if not isinstance(payload, dict):
        return None

    delta = payload.get("delta")
    if isinstance(delta, str):
        return delta
    if isinstance(delta, dict):
        text = delta.get("text")
        if isinstance(text, str):
            return text

    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        choice_delta = choice.get("delta")
        if isinstance(choice_delta, dict):
            content = choice_delta.get("content")
            if isinstance(content, str):
                return content
        text = choice.get("text")
        if isinstance(text, str):
            return text

    return None


class SSEChatClient(BaseLLMClient):
    """Minimal client for a chat completion gateway speaking SSE."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.llm_endpoint:
            raise ValueError("LLM endpoint must be configured for the openclaw provider.")

        self._endpoint = settings.llm_endpoint.rstrip("/")
        self._api_key = settings.llm_api_key
        self._model = settings.llm_model
        self._max_tokens = settings.llm_max_tokens
        self._temperature = settings.llm_temperature
        self._client = httpx.AsyncClient(
            timeout=settings.llm_timeout_seconds,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return f"{self._endpoint}/v1/chat/completions"

    def _headers(self, *, stream: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if stream:
            headers["Accept"] = "text/event-stream"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _payload(
        self, messages: Iterable[dict[str, str]], system_prompt: str, *, stream: bool
    ) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": with_system_prompt(messages, system_prompt),
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": stream,
        }

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> str:
        try:
            response = await self._client.post(
                self.url,
                json=self._payload(messages, system_prompt, stream=False),
                headers=self._headers(stream=False),
            )
        except httpx.HTTPError as exc:
            raise LLMFailedError(f"LLM request failed: {exc}") from exc

        if response.status_code >= 400:
            raise LLMFailedError(
                f"LLM request returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMFailedError("LLM response has no message content.") from exc

    async def stream_chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        system_prompt: str,
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, system_prompt, stream=True)
        try:
            async with self._client.stream(
                "POST", self.url, json=payload, headers=self._headers(stream=True)
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise LLMFailedError(
                        f"LLM stream returned HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                async for event in iter_events(response.aiter_lines()):
                    data = event.data.strip()
                    if not data:
                        continue
                    if data == DONE_SENTINEL:
                        break
                    try:
                        parsed = json.loads(data)
                    except json.JSONDecodeError:
                        LOGGER.debug("Skipping malformed stream frame: %.80s", data)
                        continue
                    text = extract_delta_text(parsed)
                    if text:
                        yield text
        except httpx.HTTPError as exc:
            raise LLMFailedError(f"LLM stream failed: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
