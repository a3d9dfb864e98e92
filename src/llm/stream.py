"""Backend-agnostic fragment stream consumed by call sessions."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass

from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)

APOLOGY_TEXT = "I'm sorry, I encountered an error. Could you please try again?"
EMPTY_RESPONSE_TEXT = "I'm sorry, I couldn't generate a response."


@dataclass(frozen=True, slots=True)
class StreamFragment:
    text: str
    is_final: bool = False


class ResponseStream:
    """One generation as an async iterator of :class:`StreamFragment`.

    The stream is lazy (nothing is requested until iteration starts), finite
    and single-use. It always ends with exactly one final fragment: empty on
    success, or carrying an apology when the backend failed or produced no
    text. :attr:`text` holds the reply to persist once iteration is done.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        messages: Sequence[dict[str, str]],
        *,
        system_prompt: str,
        streaming: bool = True,
    ) -> None:
        self._client = client
        self._messages = list(messages)
        self._system_prompt = system_prompt
        self._streaming = streaming
        self._started = False
        self.text = ""
        self.failed = False

    def __aiter__(self) -> AsyncIterator[StreamFragment]:
        if self._started:
            raise RuntimeError("ResponseStream can only be iterated once.")
        self._started = True
        return self._generate()

    async def _deltas(self) -> AsyncIterator[str]:
        if self._streaming:
            async for delta in self._client.stream_chat(
                self._messages, system_prompt=self._system_prompt
            ):
                yield delta
            return

        yield await self._client.chat(self._messages, system_prompt=self._system_prompt)

    async def _generate(self) -> AsyncIterator[StreamFragment]:
        parts: list[str] = []
        try:
            async for delta in self._deltas():
                if not delta:
                    continue
                parts.append(delta)
                yield StreamFragment(delta)
        except Exception as exc:
            LOGGER.error("LLM generation failed: %s", exc)
            self.failed = True
            self.text = APOLOGY_TEXT
            yield StreamFragment(APOLOGY_TEXT, is_final=True)
            return

        full_text = "".join(parts)
        if not full_text.strip():
            LOGGER.warning("LLM returned an empty response.")
            self.text = EMPTY_RESPONSE_TEXT
            yield StreamFragment(EMPTY_RESPONSE_TEXT, is_final=True)
            return

        self.text = full_text
        yield StreamFragment("", is_final=True)


class StreamAdapter:
    """Binds a backend client to the instruction text and delivery mode."""

    def __init__(
        self,
        client: BaseLLMClient,
        *,
        system_prompt: str,
        streaming: bool = True,
    ) -> None:
        self._client = client
        self._system_prompt = system_prompt
        self._streaming = streaming

    def stream_response(self, messages: Iterable[dict[str, str]]) -> ResponseStream:
        return ResponseStream(
            self._client,
            list(messages),
            system_prompt=self._system_prompt,
            streaming=self._streaming,
        )

    async def generate_response(self, messages: Iterable[dict[str, str]]) -> str:
        try:
            text = await self._client.chat(list(messages), system_prompt=self._system_prompt)
        except Exception as exc:
            LOGGER.error("LLM request failed: %s", exc)
            return APOLOGY_TEXT
        return text.strip() or EMPTY_RESPONSE_TEXT

    async def aclose(self) -> None:
        await self._client.aclose()
