import pytest

from src.routers.healthz.router import get_database_ping


async def _reachable() -> bool:
    return True


async def _unreachable() -> bool:
    return False


@pytest.mark.asyncio
async def test_health_check(client_factory):
    """Test the health check endpoint returns healthy status."""
    async with client_factory({get_database_ping: lambda: _reachable}) as client:
        response = await client.get("/healthz/")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["version"] == "0.1.0"


@pytest.mark.asyncio
async def test_health_check_database_down(client_factory):
    async with client_factory({get_database_ping: lambda: _unreachable}) as client:
        response = await client.get("/healthz/")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == "unreachable"


@pytest.mark.asyncio
async def test_root_endpoint(client_factory):
    """Test the root endpoint returns welcome message."""
    async with client_factory({}) as client:
        response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Welcome to the Wedding Automation API"
