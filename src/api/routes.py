"""HTTP routes exposing bridge status."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_registry
from api.schemas import ActiveCallResponse, HealthResponse
from calls.errors import BridgeError
from calls.registry import SessionRegistry
from calls.schemas import CallMetadata

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _call_response(meta: CallMetadata) -> ActiveCallResponse:
    return ActiveCallResponse(
        call_id=meta.call_id,
        start_time=meta.start_time,
        message_count=meta.message_count,
    )


@router.get("/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(active_calls=registry.count())


@router.get("/calls", response_model=list[ActiveCallResponse])
async def list_active_calls(
    registry: SessionRegistry = Depends(get_registry),
) -> list[ActiveCallResponse]:
    return [_call_response(meta) for meta in registry.snapshot()]


@router.post("/calls/{call_id}/end", response_model=ActiveCallResponse)
async def end_call(
    call_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> ActiveCallResponse:
    try:
        session = await registry.end_call(call_id)
    except BridgeError as exc:
        LOGGER.warning("Ending call %s failed: %s", call_id, exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return _call_response(session.metadata())
