"""Unit tests for the health endpoint."""

from unittest.mock import AsyncMock, patch


class TestHealth:
    def test_healthy_database(self, client):
        with patch("vidtube.api.health.db_health_check", new_callable=AsyncMock, return_value=True):
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert "timestamp" in body
        assert response.headers["X-Correlation-Id"]

    def test_unreachable_database(self, client):
        with patch("vidtube.api.health.db_health_check", new_callable=AsyncMock, return_value=False):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "unhealthy"
