"""
Tests for JWT authentication middleware.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from api import create_app
from api.dependencies import get_auth_service
from api.middleware.auth import AuthError, get_current_user, get_optional_user, require_admin
from modules.auth.exceptions import InsufficientPermissionsError
from modules.auth.service import AuthService
from shared.models import AuthenticatedUser

# Test JWT secret (only for testing)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"


@pytest.fixture
def auth_service():
    service = AuthService(jwt_secret=TEST_JWT_SECRET, db=MagicMock())
    service.get_user_by_id = AsyncMock(return_value=None)
    return service


@pytest.fixture
def client(auth_service):
    app = create_app()
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestAuthentication:

    def test_missing_auth_header(self, client):
        """Request without auth header should return 401."""
        response = client.get("/api/users/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing authorization header"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_protected_route_with_valid_token(self, client, auth_headers):
        """Protected route should work with valid token."""
        response = client.get("/api/users/me", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "test-user-123"
        assert data["email"] == "test@example.com"

    def test_protected_route_with_expired_token(self, client, make_token):
        """Protected route should return 401 with expired token."""
        token = make_token(expired=True)
        response = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert "expired" in response.json()["detail"].lower()

    def test_wrong_secret(self, client, make_token):
        token = make_token(secret="this-is-not-the-real-secret")
        response = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestDependencies:

    @pytest.mark.asyncio
    async def test_current_user(self, auth_service, auth_token):
        user = await get_current_user(credentials=_bearer(auth_token), auth=auth_service)
        assert user.id == "test-user-123"

    @pytest.mark.asyncio
    async def test_current_user_missing(self, auth_service):
        with pytest.raises(AuthError) as exc_info:
            await get_current_user(credentials=None, auth=auth_service)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_optional_user_without_token(self, auth_service):
        assert await get_optional_user(credentials=None, auth=auth_service) is None

    @pytest.mark.asyncio
    async def test_optional_user_with_bad_token(self, auth_service):
        """An invalid token is treated like no token."""
        assert await get_optional_user(credentials=_bearer("not-a-jwt"), auth=auth_service) is None

    @pytest.mark.asyncio
    async def test_optional_user_with_token(self, auth_service, auth_token):
        user = await get_optional_user(credentials=_bearer(auth_token), auth=auth_service)
        assert user.email == "test@example.com"

    @pytest.mark.asyncio
    async def test_require_admin(self):
        admin = AuthenticatedUser(id="admin-1", role="admin")
        assert await require_admin(user=admin) is admin

    @pytest.mark.asyncio
    async def test_require_admin_rejects_user(self):
        with pytest.raises(InsufficientPermissionsError):
            await require_admin(user=AuthenticatedUser(id="user-1"))


# Integration test that uses real JWT secret from environment
@pytest.mark.skipif(
    not os.environ.get("SUPABASE_JWT_SECRET"),
    reason="SUPABASE_JWT_SECRET not set"
)
class TestAuthIntegration:
    """Integration tests using real Supabase JWT secret from environment."""

    def test_real_jwt_secret_decodes_valid_token(self, make_token):
        """Token signed with real JWT secret should decode successfully."""
        service = AuthService(jwt_secret=os.environ["SUPABASE_JWT_SECRET"], db=MagicMock())
        service.get_user_by_id = AsyncMock(return_value=None)
        app = create_app()
        app.dependency_overrides[get_auth_service] = lambda: service

        token = make_token(
            user_id="integration-test-user",
            email="integration@test.com",
            secret=os.environ["SUPABASE_JWT_SECRET"],
        )
        response = TestClient(app).get("/api/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["email_verified"] is True
