"""Domain-specific exceptions for call handling.

These exceptions are safe to import from API layers without pulling in LLM clients.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class FrameParseError(BridgeError):
    status_code = 400
    default_detail = "Inbound frame could not be parsed."


class DuplicateCallError(BridgeError):
    status_code = 409
    default_detail = "A session with this call id is already registered."


class CallNotFoundError(BridgeError):
    status_code = 404
    default_detail = "No active call with this id."
