"""Tests for the application factory and startup checks."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from shared.config import Settings
from shared.exceptions import ConfigurationMissingError


COMPLETE = {
    "stripe_secret_key": "sk_test_123",
    "stripe_webhook_secret": "whsec_123",
    "supabase_url": "https://example.supabase.co",
    "supabase_service_role_key": "service-role",
    "supabase_jwt_secret": "jwt-secret",
}


class TestStartup:
    def test_refuses_to_start_without_secrets(self):
        settings = Settings(_env_file=None, **dict(COMPLETE, stripe_webhook_secret=""))

        with patch("api.app.get_settings", return_value=settings), patch("api.app.configure_logging"):
            app = create_app()
            with pytest.raises(ConfigurationMissingError) as exc_info:
                with TestClient(app):
                    pass

        assert exc_info.value.missing == ["STRIPE_WEBHOOK_SECRET"]

    def test_starts_with_complete_configuration(self):
        settings = Settings(_env_file=None, **COMPLETE)

        with patch("api.app.get_settings", return_value=settings), patch("api.app.configure_logging"):
            app = create_app()
            with TestClient(app) as client:
                assert client.get("/api/health").status_code == 200


class TestRoutes:
    def _paths(self, **overrides) -> set[str]:
        settings = Settings(_env_file=None, **overrides)
        with patch("api.app.get_settings", return_value=settings):
            app = create_app()
        return {route.path for route in app.routes}

    def test_billing_routes(self):
        paths = self._paths()
        assert "/webhook" in paths
        assert "/api/billing/webhook" in paths
        assert "/api/billing/checkout" in paths
        assert "/api/otp/send" in paths

    def test_billing_disabled(self):
        paths = self._paths(enable_billing=False)
        assert "/webhook" not in paths
        assert "/api/billing/checkout" not in paths
        assert "/api/health" in paths

    def test_docs_only_in_debug(self):
        assert "/api/docs" not in self._paths()
        assert "/api/docs" in self._paths(debug=True)
