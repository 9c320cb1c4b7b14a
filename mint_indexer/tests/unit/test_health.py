"""
Unit tests for health endpoint.
"""

import pytest
from unittest.mock import MagicMock
from httpx import AsyncClient, ASGITransport

from mint_indexer.app.main import app
from mint_indexer.app.routes.health import clear_health_checks, register_health_check


@pytest.fixture(autouse=True)
def reset_checks():
    clear_health_checks()
    app.state.aggregator = None
    yield
    clear_health_checks()


@pytest.mark.asyncio
async def test_health_endpoint():
    """Test that health endpoint returns expected structure."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert "status" in data
    assert "service" in data
    assert "version" in data
    assert "environment" in data
    assert "timestamp" in data
    assert "components" in data

    assert data["service"] == "mint-indexer"


@pytest.mark.asyncio
async def test_health_aggregates_component_status():
    """Worst component status wins."""
    async def db_ok():
        return {"status": "healthy", "message": "Connected"}

    async def scheduler_degraded():
        return {"status": "degraded", "message": "Scheduler disabled"}

    register_health_check("database", db_ok)
    register_health_check("scheduler", scheduler_degraded)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        data = (await client.get("/health")).json()

    assert data["status"] == "degraded"
    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["scheduler"]["message"] == "Scheduler disabled"


@pytest.mark.asyncio
async def test_health_check_exception_is_unhealthy():
    async def broken():
        raise RuntimeError("pool closed")

    register_health_check("database", broken)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        data = (await client.get("/health")).json()

    assert data["status"] == "unhealthy"
    assert data["components"]["database"]["message"] == "pool closed"


@pytest.mark.asyncio
async def test_liveness_endpoint():
    """Test that liveness probe returns ok."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_not_ready_without_engines():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


@pytest.mark.asyncio
async def test_readiness_endpoint():
    """Ready once engines are wired and nothing is unhealthy."""
    app.state.aggregator = MagicMock()

    async def db_ok():
        return {"status": "healthy"}

    register_health_check("database", db_ok)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


@pytest.mark.asyncio
async def test_metrics_endpoint():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "mint_indexer_service_info" in response.text


@pytest.mark.asyncio
async def test_root_endpoint():
    """Test that root endpoint returns service info."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert data["service"] == "mint-indexer"
    assert "version" in data
    assert "docs" in data
    assert "health" in data
