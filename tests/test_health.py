"""
Tests for the app shell: health reporting and the routes that sit outside auth.
"""

import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport

from ghoste_manager.main import app


@pytest.fixture
def client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
@pytest.mark.parametrize("db_ok, status, database", [
    (True, "healthy", "connected"),
    (False, "degraded", "disconnected"),
])
async def test_health_reflects_database(client, db_ok, status, database):
    with patch("ghoste_manager.main.check_db_connection", new_callable=AsyncMock, return_value=db_ok):
        async with client:
            response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": status, "service": "Ghoste AI Manager", "database": database}


@pytest.mark.anyio
async def test_health_needs_no_identity_but_manager_routes_do(client):
    with patch("ghoste_manager.main.check_db_connection", new_callable=AsyncMock, return_value=True):
        async with client:
            health = await client.get("/api/health")
            manager = await client.get("/api/manager/connection-status")

    assert health.status_code == 200
    assert manager.status_code == 401
    assert manager.json()["code"] == "Unauthorized"


@pytest.mark.anyio
async def test_unknown_route_uses_error_envelope(client):
    async with client:
        response = await client.get("/api/manager/nope")

    assert response.status_code == 404
    assert response.json()["ok"] is False
