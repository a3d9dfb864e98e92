"""Protocol state machine for a single call.

A session consumes inbound transcript frames, keeps the conversation log in
sync, runs generations against the LLM and streams the reply back as small
normalized chunks. Frames of one generation share a ``response_id`` taken
from a per-session counter; exactly one of them has ``content_complete``.

Generations of one session never overlap: a response-required frame that
arrives while a reply is still streaming waits for the previous terminal
chunk. Keepalive and update frames are handled as soon as they arrive.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Protocol

from calls.conversation import Conversation
from calls.errors import FrameParseError
from calls.schemas import (
    CallMetadata,
    InboundFrame,
    PongFrame,
    ResponseFrame,
    parse_inbound_frame,
)
from llm.stream import EMPTY_RESPONSE_TEXT, StreamAdapter
from speech.normalizer import DEFAULT_MAX_LENGTH, is_question, normalize_for_tts

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 20
DEFAULT_FAREWELL = "Goodbye!"


class MessageChannel(Protocol):
    async def send_text(self, data: str) -> None:  # pragma: no cover - protocol stub
        ...


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_MESSAGE = "awaiting_message"
    PONGING = "ponging"
    SYNCING_ONLY = "syncing_only"
    RESPONDING = "responding"
    CLOSED = "closed"


class CallSession:
    """Drives one call from connect to hang-up."""

    def __init__(
        self,
        call_id: str,
        channel: MessageChannel,
        adapter: StreamAdapter,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_tts_length: int = DEFAULT_MAX_LENGTH,
        farewell_message: str = DEFAULT_FAREWELL,
        begin_message: str = "",
    ) -> None:
        self.call_id = call_id
        self.conversation = Conversation(call_id)
        self.response_counter = 0
        self.state = SessionState.IDLE
        self._channel = channel
        self._adapter = adapter
        self._chunk_size = chunk_size
        self._max_tts_length = max_tts_length
        self._farewell_message = farewell_message
        self._begin_message = begin_message
        self._generation_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @property
    def start_time(self) -> datetime:
        return self.conversation.start_time

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def metadata(self) -> CallMetadata:
        return self.conversation.metadata()

    async def start(self) -> None:
        if self.state is not SessionState.IDLE:
            return
        self.state = SessionState.AWAITING_MESSAGE
        if self._begin_message.strip():
            await self._send(
                ResponseFrame(
                    response_id=0,
                    content=normalize_for_tts(self._begin_message, self._max_tts_length),
                    content_complete=True,
                )
            )
            self.conversation.add_assistant_message(self._begin_message)

    async def handle_frame(self, raw: str | bytes) -> None:
        """Parse and dispatch one inbound frame; bad frames are dropped."""

        if self.closed:
            LOGGER.debug("[%s] Ignoring frame for closed session", self.call_id)
            return
        try:
            frame = parse_inbound_frame(raw)
        except FrameParseError as exc:
            LOGGER.warning("[%s] Error parsing message: %s", self.call_id, exc.detail)
            return
        await self.handle(frame)

    async def handle(self, frame: InboundFrame) -> None:
        kind = frame.interaction_type
        if kind == "ping_pong":
            LOGGER.debug("[%s] Received: ping_pong", self.call_id)
            self.state = SessionState.PONGING
            await self._send(PongFrame(timestamp=frame.response_id))
            self._settle()
            return

        LOGGER.info("[%s] Received: %s", self.call_id, kind)
        if kind == "update_only":
            self.state = SessionState.SYNCING_ONLY
            if frame.transcript is not None:
                self.conversation.sync_from_transcript(frame.transcript)
            self._settle()
        elif frame.requires_response:
            self._schedule_generation(frame)
        else:
            LOGGER.debug("[%s] Ignoring unsupported interaction type %r", self.call_id, kind)

    def _schedule_generation(self, frame: InboundFrame) -> None:
        self.state = SessionState.RESPONDING
        task = asyncio.create_task(
            self._respond(frame), name=f"generation-{self.call_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_generation_done)

    def _on_generation_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error(
                "[%s] Generation failed: %s", self.call_id, task.exception()
            )
        self._settle()

    def _settle(self) -> None:
        if self.closed:
            return
        self.state = SessionState.RESPONDING if self._tasks else SessionState.AWAITING_MESSAGE

    async def drain(self) -> None:
        """Wait until every scheduled generation has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _respond(self, frame: InboundFrame) -> None:
        async with self._generation_lock:
            if self.closed:
                LOGGER.info("[%s] Skipping queued response, call closed", self.call_id)
                return

            if frame.transcript is not None:
                self.conversation.sync_from_transcript(frame.transcript)

            user_message = self.conversation.latest_user_message()
            if user_message:
                LOGGER.info(
                    "[%s] User%s: %s...",
                    self.call_id,
                    " (question)" if is_question(user_message) else "",
                    user_message[:100],
                )

            self.response_counter += 1
            await self.generate(self.response_counter)

    async def generate(self, response_id: int) -> str:
        """Stream one reply to the channel and record it in the log.

        A reply that normalizes to nothing speakable is replaced by the
        empty-response text so the caller never gets silence.
        """

        stream = self._adapter.stream_response(self.conversation.llm_messages())
        buffer = ""
        spoken = False
        reply = ""
        async for fragment in stream:
            if fragment.is_final:
                if buffer:
                    spoken = await self._send_chunk(response_id, buffer) or spoken
                    buffer = ""
                content = normalize_for_tts(fragment.text, self._max_tts_length)
                if not content and not spoken:
                    LOGGER.warning(
                        "[%s] Response %d has no speakable text", self.call_id, response_id
                    )
                    content = reply = EMPTY_RESPONSE_TEXT
                await self._send(
                    ResponseFrame(
                        response_id=response_id,
                        content=content,
                        content_complete=True,
                    )
                )
                continue

            buffer += fragment.text
            if len(buffer) >= self._chunk_size:
                spoken = await self._send_chunk(response_id, buffer) or spoken
                buffer = ""

        reply = reply or stream.text
        self.conversation.add_assistant_message(reply)
        LOGGER.info("[%s] Response %d complete", self.call_id, response_id)
        return reply

    async def _send_chunk(self, response_id: int, raw: str) -> bool:
        content = normalize_for_tts(raw, self._max_tts_length)
        if not content:
            return False
        # Keep word boundaries between consecutive chunks.
        if raw[:1].isspace():
            content = " " + content
        if raw[-1:].isspace():
            content = content + " "
        await self._send(ResponseFrame(response_id=response_id, content=content))
        return True

    async def _send(self, frame: PongFrame | ResponseFrame) -> None:
        if self.closed:
            LOGGER.debug("[%s] Dropping outbound frame, session closed", self.call_id)
            return
        try:
            await self._channel.send_text(frame.to_json())
        except Exception as exc:
            LOGGER.error("[%s] Error sending response: %s", self.call_id, exc)

    async def end_call(self) -> None:
        """Say goodbye and ask the provider to hang up."""

        if self.closed:
            return
        await self._send(
            ResponseFrame(
                response_id=self.response_counter,
                content=self._farewell_message,
                content_complete=True,
                end_call=True,
            )
        )
        self.state = SessionState.CLOSED
        LOGGER.info("[%s] Call ended", self.call_id)

    def close(self) -> None:
        if not self.closed:
            LOGGER.info("[%s] Connection closed", self.call_id)
        self.state = SessionState.CLOSED

    async def aclose(self) -> None:
        """Close the session and release the LLM client once generations finish."""

        self.close()
        await self.drain()
        await self._adapter.aclose()
