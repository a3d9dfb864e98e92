"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    active_calls: int = Field(description="Number of calls with an open WebSocket.")


class ActiveCallResponse(BaseModel):
    call_id: str
    start_time: datetime
    message_count: int
