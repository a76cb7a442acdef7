"""Tests for the health check endpoint."""

import pytest
from httpx import ASGITransport, AsyncClient

from taxlens import __version__
from taxlens.main import app


@pytest.mark.asyncio
async def test_health_check() -> None:
    """Health check reports status, version and loaded rule years."""
    client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    try:
        response = await client.get("/api/health")
    finally:
        await client.aclose()

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "version": __version__,
        "supported_years": [2021, 2022, 2023, 2024],
    }
    assert response.headers["X-Request-ID"]
