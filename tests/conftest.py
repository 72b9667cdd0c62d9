"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("OWO_DEFAULT_HOST", "127.0.0.1")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from httpx import ASGITransport, AsyncClient

from owonero_gateway.config import Settings
from owonero_gateway.services.gateway import CommandGateway
from tests.mock_daemon import FakeDaemon


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings() -> Settings:
    """Production idle window, but a short overall ceiling to keep tests fast."""
    return Settings(owo_tcp_timeout_ms=1000)


@pytest.fixture
async def fake_daemon():
    """Factory: ``await fake_daemon(script, close=..., expect_lines=...)``."""
    started: list[FakeDaemon] = []

    async def _start(script=(), **kwargs) -> FakeDaemon:
        daemon = await FakeDaemon(script, **kwargs).start()
        started.append(daemon)
        return daemon

    yield _start

    for daemon in started:
        await daemon.stop()


@pytest.fixture
async def client(test_settings, monkeypatch):
    """Async test client with a gateway built from the test settings."""
    import owonero_gateway.routers.tcp as rt

    test_gateway = CommandGateway(test_settings)
    monkeypatch.setattr(rt, "gateway", test_gateway)

    from owonero_gateway.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
