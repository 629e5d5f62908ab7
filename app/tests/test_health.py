# app/tests/test_health.py
"""Tests for the liveness endpoint, startup wiring and security middleware."""
import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig
from app.main import create_app
from generation.backends.mock import MockBackend
from generation.registry import BackendRegistry


@pytest.fixture
def client():
    """Create test client with a small request size limit."""
    registry = BackendRegistry()
    registry.register("mock", MockBackend(seed=1))
    config = AppConfig(environment="test", max_request_size_bytes=1024)
    return TestClient(create_app(config, registry))


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_contains_required_keys(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["service"] == "parlay-builder"
        assert data["version"] == "0.1.0"
        assert data["environment"] == "test"
        assert isinstance(data["started_at"], str)

    def test_module_level_app_serves_health(self):
        from app.main import app

        assert TestClient(app).get("/health").status_code == 200


class TestStartupRegistry:
    """Backends registered when the app builds its own registry."""

    def test_openai_registered_when_key_present(self):
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True):
            app = create_app(AppConfig(environment="test"))

        assert app.state.registry.list_names() == {"openai", "mock"}
        assert app.state.registry.get("openai").call_timeout == 12.0

    def test_mock_only_without_key(self):
        with patch.dict(os.environ, {}, clear=True):
            app = create_app(AppConfig(environment="test"))

        assert app.state.registry.list_names() == {"mock"}


class TestRequestSizeLimit:
    """Tests for request size limit middleware."""

    def test_small_request_allowed(self, client):
        assert client.get("/health").status_code == 200

    def test_large_body_rejected(self, client):
        response = client.post(
            "/generateParlay",
            content=b"x" * 2048,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert error["message"] == "Request entity too large"


class TestSecurityHeaders:
    """Tests for security headers middleware."""

    @pytest.mark.parametrize("path", ["/health", "/healthCheck", "/getRateLimitStatus"])
    def test_security_headers_present(self, client, path):
        response = client.get(path)

        assert response.headers.get("X-Content-Type-Options") == "nosniff"
        assert response.headers.get("X-Frame-Options") == "DENY"
        assert response.headers.get("Referrer-Policy") == "strict-origin-when-cross-origin"
        assert response.headers.get("X-XSS-Protection") == "1; mode=block"
        assert response.headers.get("Cache-Control") == "no-store"

    def test_rate_limit_headers_exposed_for_cors(self, client):
        response = client.get("/health", headers={"Origin": "https://example.com"})

        exposed = response.headers.get("access-control-expose-headers", "")
        assert "X-RateLimit-Remaining" in exposed
