"""WebSocket endpoint the telephony provider connects to, one socket per call.

The provider opens ``/llm-websocket/{call_id}``; clients that cannot put the
id in the path may pass ``?call_id=`` instead, and a random id is generated
when neither is given.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from api.dependencies import get_ws_registry
from calls.errors import DuplicateCallError
from calls.registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["calls"])


async def _serve_call(websocket: WebSocket, call_id: str, registry: SessionRegistry) -> None:
    await websocket.accept()
    try:
        session = await registry.open(call_id, websocket)
    except DuplicateCallError as exc:
        LOGGER.error("[%s] Rejecting connection: %s", call_id, exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.detail)
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            # Binary frames carry the same JSON payload as text frames.
            payload = message.get("text") or message.get("bytes")
            if payload is None:
                continue
            await session.handle_frame(payload)
    except WebSocketDisconnect:
        pass
    finally:
        if registry.get(call_id) is session:
            await registry.close(call_id)
        else:
            await session.aclose()


@router.websocket("/llm-websocket/{call_id}")
async def call_websocket(
    websocket: WebSocket,
    call_id: str,
    registry: SessionRegistry = Depends(get_ws_registry),
) -> None:
    await _serve_call(websocket, call_id, registry)


@router.websocket("/llm-websocket")
async def call_websocket_query(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_ws_registry),
) -> None:
    call_id = websocket.query_params.get("call_id") or registry.new_call_id()
    await _serve_call(websocket, call_id, registry)
