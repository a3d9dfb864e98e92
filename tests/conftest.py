from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fakes import FakeLLMClient  # noqa: E402


@pytest.fixture()
def settings():
    from config.settings import Settings

    return Settings(
        _env_file=None,
        llm_provider="openclaw",
        llm_endpoint="http://llm.test",
        llm_api_key="test-key",
        system_prompt="SYS",
    )


@pytest.fixture()
def llm_clients():
    """Every fake client handed out by the app, in creation order."""

    return []


@pytest.fixture()
def app(settings, llm_clients):
    from main import create_app

    def factory(_settings):
        client = FakeLLMClient(["Hello there, ", "how are you ", "doing today? ", "I hope well."])
        llm_clients.append(client)
        return client

    return create_app(settings, client_factory=factory)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
