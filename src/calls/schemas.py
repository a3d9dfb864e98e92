"""Pydantic models for the transcript protocol spoken over the call WebSocket."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from calls.errors import FrameParseError

InteractionType = Literal[
    "ping_pong",
    "update_only",
    "response_required",
    "reminder_required",
]

RESPONSE_INTERACTIONS = frozenset({"response_required", "reminder_required"})


class TranscriptEntry(BaseModel):
    """One utterance of the provider's authoritative transcript."""

    model_config = ConfigDict(extra="ignore")

    role: Literal["agent", "user"]
    content: str = ""


class InboundFrame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interaction_type: str
    transcript: list[TranscriptEntry] | None = None
    response_id: int | None = None

    @property
    def requires_response(self) -> bool:
        return self.interaction_type in RESPONSE_INTERACTIONS


class PongFrame(BaseModel):
    response_type: Literal["pong"] = "pong"
    timestamp: int | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class ResponseFrame(BaseModel):
    response_id: int = Field(ge=0)
    content: str
    content_complete: bool = False
    end_call: bool = False

    def to_json(self) -> str:
        return self.model_dump_json()


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str

    def as_llm_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class CallMetadata(BaseModel):
    call_id: str
    start_time: datetime
    message_count: int = 0


def parse_inbound_frame(raw: str | bytes) -> InboundFrame:
    try:
        return InboundFrame.model_validate_json(raw)
    except ValidationError as exc:
        raise FrameParseError(f"Invalid inbound frame: {exc.error_count()} error(s)") from exc
