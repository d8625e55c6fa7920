"""Tests for health endpoints and request middleware."""

import logging

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration


class TestHealth:
    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_database(self, client: AsyncClient):
        response = await client.get("/health/db")
        assert response.json() == {"status": "healthy", "database": "connected"}

    async def test_cache_disabled(self, client: AsyncClient, mocker):
        mocker.patch(
            "portfolio_ledger.api.routes.health.get_cache_stats", return_value={"enabled": False}
        )

        response = await client.get("/health/cache")

        assert response.json() == {"status": "disabled", "cache": {"enabled": False}}

    async def test_cache_enabled(self, client: AsyncClient, mocker):
        stats = {"enabled": True, "backend": "RedisCache", "size": 12}
        mocker.patch("portfolio_ledger.api.routes.health.get_cache_stats", return_value=stats)

        response = await client.get("/health/cache")

        assert response.json() == {"status": "healthy", "cache": stats}


class TestRequestLogging:
    async def test_headers_are_added(self, client: AsyncClient):
        response = await client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 32
        float(response.headers["X-Process-Time"])

    async def test_request_id_is_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    async def test_requests_are_logged(self, client: AsyncClient, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("portfolio_ledger"), "propagate", True)

        with caplog.at_level(logging.INFO, logger="portfolio_ledger.core.middleware"):
            await client.get("/api/v1/portfolios/", headers={"X-Request-ID": "req-1"})

        messages = [r.getMessage() for r in caplog.records]
        assert any("→ GET /api/v1/portfolios/" in m and "[req-1]" in m for m in messages)
        finished = [r for r in caplog.records if "← GET /api/v1/portfolios/ - 401" in r.getMessage()]
        assert finished and finished[0].levelno == logging.WARNING

    async def test_health_checks_are_not_logged(self, client: AsyncClient, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("portfolio_ledger"), "propagate", True)

        with caplog.at_level(logging.INFO, logger="portfolio_ledger.core.middleware"):
            await client.get("/health")

        assert not [r for r in caplog.records if r.name == "portfolio_ledger.core.middleware"]
