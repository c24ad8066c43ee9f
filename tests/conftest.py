"""Pytest configuration and fixtures."""

from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from src.api.dependencies import get_http_client, get_storage
from src.api.main import create_app
from src.core.config import settings
from src.models import Connection, ConnectionStatus, ProviderConfig, ProviderName
from src.storage.memory import InMemoryStorage

WORKSPACE_ID = "ws-1"
EVOLUTION_URL = "http://evolution.test"
ZAPI_URL = "http://zapi.test"
FORWARD_URL = "http://n8n.test/webhook/events"


class FakeUpstream:
    """Stands in for every HTTP service the gateway talks to.

    Routes are matched in registration order on method and URL substring.
    A route's reply may be an ``httpx.Response``, an exception to raise, or a
    callable taking the request. Unmatched requests get a 200 ``{}``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, Any]] = []

    def on(self, method: str, fragment: str, reply: Any) -> None:
        self._routes.append((method.upper(), fragment, reply))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, fragment, reply in self._routes:
            if request.method == method and fragment in str(request.url):
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    return reply(request)
                return reply
        return httpx.Response(200, json={})

    def calls(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in str(r.url)]


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No real waiting between retries, no env-provided forward targets."""
    monkeypatch.setattr(settings, "media_download_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "status_forward_url", "")
    monkeypatch.setattr(settings, "default_forward_url", "")
    monkeypatch.setattr(settings, "default_forward_token", "")
    monkeypatch.setattr(settings, "media_processor_url", "")


@pytest.fixture
def upstream():
    """Fake upstream HTTP services."""
    return FakeUpstream()


@pytest_asyncio.fixture
async def http_client(upstream):
    """HTTP client wired to the fake upstream."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def storage():
    """Create in-memory storage for tests."""
    return InMemoryStorage()


@pytest.fixture
def app(storage, http_client):
    """Create test application."""
    app = create_app()
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_http_client] = lambda: http_client
    return app


@pytest_asyncio.fixture
async def client(app):
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def workspace(storage):
    """A workspace with an active Evolution config, a Z-API config and one connection."""
    evolution = await storage.save_provider_config(
        ProviderConfig(
            id="evo",
            workspace_id=WORKSPACE_ID,
            provider=ProviderName.EVOLUTION,
            is_active=True,
            base_url=EVOLUTION_URL,
            token="evo-key",
            forward_url=FORWARD_URL,
        )
    )
    zapi = await storage.save_provider_config(
        ProviderConfig(
            id="zapi",
            workspace_id=WORKSPACE_ID,
            provider=ProviderName.ZAPI,
            base_url=ZAPI_URL,
            token="zapi-account",
            client_token="zapi-client",
        )
    )
    connection = await storage.save_connection(
        Connection(
            id="conn-1",
            workspace_id=WORKSPACE_ID,
            instance_name="shop1",
            status=ConnectionStatus.CONNECTED,
            provider_id=evolution.id,
            metadata={"instanceId": "3C0FFEE", "token": "inst-token"},
        )
    )
    return {"evolution": evolution, "zapi": zapi, "connection": connection}
