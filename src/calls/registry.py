"""In-memory registry of live call sessions.

Note: This is a single-process registry. Every entry is touched only from
the event loop, so individual operations need no locking.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from calls.errors import CallNotFoundError, DuplicateCallError
from calls.schemas import CallMetadata
from calls.session import CallSession, MessageChannel
from config.settings import Settings
from llm.base import BaseLLMClient
from llm.factory import build_llm_client
from llm.stream import StreamAdapter

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], BaseLLMClient]


class SessionRegistry:
    """Maps call ids to their :class:`CallSession`."""

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: ClientFactory = build_llm_client,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self._system_prompt = settings.resolved_system_prompt()
        self._sessions: dict[str, CallSession] = {}

    @staticmethod
    def new_call_id() -> str:
        return uuid.uuid4().hex

    def _build_session(self, call_id: str, channel: MessageChannel) -> CallSession:
        adapter = StreamAdapter(
            self._client_factory(self._settings),
            system_prompt=self._system_prompt,
            streaming=self._settings.llm_streaming,
        )
        return CallSession(
            call_id,
            channel,
            adapter,
            chunk_size=self._settings.response_chunk_size,
            max_tts_length=self._settings.max_tts_length,
            farewell_message=self._settings.farewell_message,
            begin_message=self._settings.begin_message,
        )

    async def open(self, call_id: str, channel: MessageChannel) -> CallSession:
        """Create, register and start a session for ``call_id``."""

        if call_id in self._sessions:
            raise DuplicateCallError(f"Call {call_id} is already active.")

        session = self._build_session(call_id, channel)
        self._sessions[call_id] = session
        LOGGER.info("[%s] New connection established", call_id)
        await session.start()
        return session

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    async def close(self, call_id: str) -> None:
        session = self._sessions.pop(call_id, None)
        if session is None:
            return
        await session.aclose()
        LOGGER.info("[%s] Connection removed. Active calls: %d", call_id, len(self._sessions))

    async def end_call(self, call_id: str) -> CallSession:
        """Hang up a live call; the provider closes the socket afterwards."""

        session = self._sessions.get(call_id)
        if session is None:
            raise CallNotFoundError(f"Call {call_id} is not active.")
        await session.end_call()
        return session

    def count(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> list[CallMetadata]:
        return [session.metadata() for session in self._sessions.values()]

    async def shutdown_all(self) -> None:
        """End every live call, then forget all sessions."""

        sessions = list(self._sessions.items())
        for call_id, session in sessions:
            LOGGER.info("[%s] Ending call for shutdown", call_id)
            await session.end_call()
        self._sessions.clear()
        for _, session in sessions:
            await session.aclose()
