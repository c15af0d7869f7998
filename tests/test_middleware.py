"""Middleware tests for security headers and request ID."""

from fastapi.testclient import TestClient

from mediahub.main import create_app


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    def test_security_headers_present(self, client):
        """Test that security headers are present in response."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Content-Security-Policy"] == "default-src 'self'"

    def test_csp_allows_swagger_ui(self, client):
        """Test that CSP allows the Swagger UI assets on /docs."""
        response = client.get("/docs")
        csp = response.headers.get("Content-Security-Policy", "")
        assert "'unsafe-inline'" in csp
        assert "https://cdn.jsdelivr.net" in csp

    def test_no_hsts_over_http(self, client):
        response = client.get("/")
        assert "Strict-Transport-Security" not in response.headers

    def test_hsts_over_https(self, test_settings, episode_provider):
        app = create_app(test_settings, episode_provider=episode_provider)
        with TestClient(app, base_url="https://testserver") as https_client:
            response = https_client.get("/")
        assert response.headers["Strict-Transport-Security"].startswith("max-age=31536000")

    def test_headers_can_be_disabled(self, test_settings):
        app = create_app(test_settings.model_copy(update={"enable_security_headers": False}))
        with TestClient(app) as plain_client:
            response = plain_client.get("/")
        assert "X-Frame-Options" not in response.headers
        assert "X-Request-ID" in response.headers


class TestRequestIdMiddleware:
    """Tests for RequestIdMiddleware."""

    def test_request_id_generated(self, client):
        """Test that X-Request-ID header is present in response."""
        response = client.get("/")

        assert response.status_code == 200
        # UUID format: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
        assert len(response.headers["X-Request-ID"]) == 36

    def test_request_id_from_header(self, client):
        """Test that X-Request-ID header from request is used if provided."""
        custom_id = "custom-request-id-12345"
        response = client.get("/", headers={"X-Request-ID": custom_id})
        assert response.headers["X-Request-ID"] == custom_id

    def test_request_ids_differ_between_requests(self, client):
        first = client.get("/").headers["X-Request-ID"]
        second = client.get("/").headers["X-Request-ID"]
        assert first != second
