"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from fastapi import Request, WebSocket

from calls.registry import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_ws_registry(websocket: WebSocket) -> SessionRegistry:
    return websocket.app.state.registry
