"""Entry point for the voice transcript bridge service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.routes import router as api_router
from api.websocket_routes import router as ws_router
from calls.registry import ClientFactory, SessionRegistry
from config.settings import Settings, get_settings
from llm.factory import build_llm_client

LOGGER = logging.getLogger(__name__)


async def _log_active_calls(registry: SessionRegistry, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        count = registry.count()
        if count > 0:
            LOGGER.info("Active calls: %d", count)


def create_app(
    settings: Settings | None = None,
    *,
    client_factory: ClientFactory = build_llm_client,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Fail at startup, not on the first call, when the backend is misconfigured.
        probe = client_factory(settings)
        await probe.aclose()

        registry = SessionRegistry(settings, client_factory=client_factory)
        app.state.registry = registry
        reporter = asyncio.create_task(
            _log_active_calls(registry, settings.active_call_log_interval_seconds)
        )
        LOGGER.info("Ready to accept connections (provider=%s)", settings.llm_provider)
        try:
            yield
        finally:
            reporter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reporter
            LOGGER.info("Shutting down, ending %d active call(s)", registry.count())
            await registry.shutdown_all()

    app = FastAPI(
        title="Voice Transcript Bridge",
        description="Streams LLM replies to a telephony transcript WebSocket.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    app.include_router(ws_router)
    return app


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = create_app(settings)


def run() -> None:
    """Run the ASGI server."""

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    run()
