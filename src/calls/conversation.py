"""Per-call conversation log rebuilt from the provider's transcript."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from calls.schemas import CallMetadata, ConversationMessage, TranscriptEntry


def role_for_transcript(role: str) -> str:
    return "assistant" if role == "agent" else "user"


def latest_user_message(transcript: Iterable[TranscriptEntry]) -> str | None:
    for entry in reversed(list(transcript)):
        if entry.role == "user" and entry.content.strip():
            return entry.content.strip()
    return None


class Conversation:
    """Ordered message history of a single call.

    Blank messages are never stored. The log is either replaced wholesale
    from a transcript snapshot or extended with a single message.
    """

    def __init__(self, call_id: str) -> None:
        self._messages: list[ConversationMessage] = []
        self.call_id = call_id
        self.start_time = datetime.now(timezone.utc)

    def add_user_message(self, content: str) -> None:
        self._append("user", content)

    def add_assistant_message(self, content: str) -> None:
        self._append("assistant", content)

    def _append(self, role: str, content: str) -> None:
        text = content.strip()
        if text:
            self._messages.append(ConversationMessage(role=role, content=text))

    def sync_from_transcript(self, transcript: Iterable[TranscriptEntry]) -> None:
        """Replace the log with the non-blank entries of ``transcript``."""

        messages: list[ConversationMessage] = []
        for entry in transcript:
            text = entry.content.strip()
            if text:
                messages.append(
                    ConversationMessage(role=role_for_transcript(entry.role), content=text)
                )
        self._messages = messages

    def latest_user_message(self) -> str | None:
        for message in reversed(self._messages):
            if message.role == "user":
                return message.content
        return None

    def messages(self) -> list[ConversationMessage]:
        return list(self._messages)

    def llm_messages(self) -> list[dict[str, str]]:
        return [message.as_llm_message() for message in self._messages]

    def metadata(self) -> CallMetadata:
        return CallMetadata(
            call_id=self.call_id,
            start_time=self.start_time,
            message_count=len(self._messages),
        )

    def __len__(self) -> int:
        return len(self._messages)
