from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from orgguard.api.deps import get_cache_provider, session_dependency
from orgguard.api.main import create_app
from orgguard.cache import MemoryCache


class FailingSession:
    async def execute(self, query: Any) -> Any:
        raise OperationalError("SELECT 1", {}, ConnectionError("db down"))


class UnreachableCache(MemoryCache):
    async def set(self, key: str, value: Any, ttl: int | None = 3600) -> None:
        raise ConnectionError("redis down")


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health() -> None:
    async with _client(create_app()) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ready_with_database_and_cache(session) -> None:
    app = create_app()
    app.dependency_overrides[session_dependency] = lambda: session
    app.dependency_overrides[get_cache_provider] = lambda: MemoryCache()

    async with _client(app) as client:
        response = await client.get("/ready")

    assert response.json() == {"status": "ready", "database": "connected", "cache": "connected"}


@pytest.mark.asyncio
async def test_ready_with_cache_disabled(session) -> None:
    app = create_app()
    app.dependency_overrides[session_dependency] = lambda: session
    app.dependency_overrides[get_cache_provider] = lambda: None

    async with _client(app) as client:
        response = await client.get("/ready")

    assert response.json()["status"] == "ready"
    assert response.json()["cache"] == "disabled"


@pytest.mark.asyncio
async def test_not_ready_when_dependencies_down() -> None:
    app = create_app()
    app.dependency_overrides[session_dependency] = lambda: FailingSession()
    app.dependency_overrides[get_cache_provider] = lambda: UnreachableCache()

    async with _client(app) as client:
        response = await client.get("/ready")

    assert response.json() == {
        "status": "not_ready",
        "database": "disconnected",
        "cache": "disconnected",
    }
