"""
Tests for health and utility endpoints.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.unit
class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient) -> None:
        """Test basic health check endpoint returns 200."""
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

    async def test_service_status_reports_ledger_backend(self, client: AsyncClient) -> None:
        """In-memory ledgers and a disabled IP lookup report a degraded deployment."""
        response = await client.get("/health/services")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["services"]["ledger_storage"]["details"]["backend"] == "in_memory"
        assert data["services"]["ledger_storage"]["configured"] is False

    async def test_root_endpoint(self, client: AsyncClient) -> None:
        """Test root endpoint returns API info."""
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Luminex Guard"


@pytest.mark.unit
class TestResponseHeaders:
    """Security and correlation headers on every response."""

    async def test_security_headers(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"

    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    async def test_request_id_is_generated(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 32


@pytest.mark.unit
class TestAPIDocumentation:
    """Test API documentation endpoints."""

    async def test_openapi_schema_available(self, client: AsyncClient) -> None:
        """Test OpenAPI schema is accessible (only in debug mode)."""
        from core.config import settings
        response = await client.get("/openapi.json")
        if settings.DEBUG:
            assert response.status_code == 200
            data = response.json()
            assert "openapi" in data
            assert "/api/v1/game/actions" in data["paths"]
        else:
            assert response.status_code == 404
