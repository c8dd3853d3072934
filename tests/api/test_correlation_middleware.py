"""Correlation id propagation and health checks."""

import pytest

from tests.api.conftest import auth

pytestmark = pytest.mark.integration


class TestCorrelationId:
    def test_generates_request_id(self, api_client):
        response = api_client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "formrelay"}
        assert len(response.headers["X-Request-ID"]) == 36

    def test_echoes_client_request_id(self, api_client):
        response = api_client.get("/api/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

    def test_error_responses_carry_request_id(self, api_client):
        response = api_client.get("/api/forms/missing", headers={**auth("user_trace"), "X-Request-ID": "trace-404"})

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "trace-404"
        assert response.json()["debug_id"]


class TestReadiness:
    def test_ready_with_database(self, api_client):
        response = api_client.get("/api/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "checks": {"database": True}}
