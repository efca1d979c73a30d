"""Integration tests for health check endpoints."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError


class TestHealthAPI:
    """Test cases for health endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["version"] == "1.0.0"

    def test_root_health(self, client):
        response = client.get("/health")

        assert response.json() == {"status": "healthy", "service": "obanet-auth"}

    def test_basic_health(self, client, frozen_clock):
        response = client.get("/api/v1/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["timestamp"] == frozen_clock().isoformat()

    def test_detailed_health(self, client, frozen_clock):
        frozen_clock.advance(seconds=42)

        response = client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"] == {"database": "healthy", "redis": "healthy"}
        assert body["cache"]["connected"] is True
        assert body["uptime_seconds"] == 42
        assert body["environment"] == "development"

    def test_detailed_health_redis_down(self, client, fake_redis):
        """Test that a Redis outage only degrades the service."""
        fake_redis.fail = True

        response = client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["services"]["redis"] == "unhealthy"

    def test_detailed_health_database_down(self, client):
        with patch(
            "sqlalchemy.ext.asyncio.AsyncSession.execute",
            side_effect=OperationalError("SELECT 1", {}, Exception("unable to open database file")),
        ):
            response = client.get("/api/v1/health/detailed")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_readiness(self, client):
        response = client.get("/api/v1/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["ready"] is True
        assert body["checks"]["database"]["status"] == "ready"
        assert body["checks"]["redis"]["status"] == "ready"

    def test_readiness_redis_down(self, client, fake_redis):
        fake_redis.fail = True

        response = client.get("/api/v1/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"]["redis"]["status"] == "degraded"

    def test_liveness(self, client):
        response = client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json()["alive"] is True
