"""
Tests for application-level endpoints and error handling.
"""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError


class TestRootEndpoints:
    """Tests for root and metrics endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert "version" in body

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "devclip_" in response.text


class TestHealth:
    """Tests for the load balancer health check."""

    def test_healthy(self, unauthenticated_client):
        response = unauthenticated_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"

    def test_database_unreachable_is_503(self, unauthenticated_client, db_session):
        db_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception()))

        response = unauthenticated_client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"


class TestErrorHandling:
    """Tests for the uniform error body."""

    def test_unknown_route_is_404(self, client):
        response = client.get("/v1/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Not Found"}

    def test_wrong_method(self, client):
        response = client.get("/v1/format")

        assert response.status_code == 405
        assert response.json()["error"] == "validation_error"

    def test_unexpected_exception_is_500_and_persisted(
        self, app, authenticated_client, mock_pipeline
    ):
        mock_pipeline.execute.side_effect = RuntimeError("secret internals")

        response = TestClient(app, raise_server_exceptions=False).post(
            "/v1/format",
            json={"text": "{}", "operation": "json", "api_key": "devclip_leak"},
        )

        assert response.status_code == 500
        assert response.json() == {
            "error": "internal_error",
            "message": "Internal server error",
        }
        entry = app.state.error_logger.log_error.call_args[0][0]
        assert entry.endpoint == "/v1/format"
        assert entry.method == "POST"
        assert entry.error_kind == "internal_error"
        assert entry.request_context["body"]["text"] == "{}"
        assert "RuntimeError" in entry.stack
