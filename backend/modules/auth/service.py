"""
Authentication service implementation.

Validates Supabase JWT tokens, looks up user profiles and lets admins
change a user's role.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional
import jwt
from supabase import AuthApiError

from shared.config import get_settings
from shared.database import get_supabase_client
from shared.exceptions import PersistenceError
from shared.models import AuthenticatedUser
from shared.repository import BaseRepository

from .interfaces import IAuthService
from .models import UserProfile, UserRole, JWTPayload
from .exceptions import (
    InvalidTokenError,
    ExpiredTokenError,
    MissingTokenError,
    ProfileNotFoundError,
)

logger = logging.getLogger(__name__)


class ProfileRepository(BaseRepository[UserProfile]):
    """The public ``profiles`` table and the role claim on the auth user."""

    TABLE = "profiles"

    async def find_one(self, column: str, value: str) -> Optional[UserProfile]:
        result = await self._run(
            f"profiles_by_{column}",
            lambda: self._db.table(self.TABLE).select("*").eq(column, value).limit(1).execute(),
        )
        if not result.data:
            return None
        return UserProfile(**result.data[0])

    async def update_role(self, user_id: str, role: str) -> Optional[UserProfile]:
        result = await self._run(
            "profiles_update_role",
            lambda: self._db.table(self.TABLE).update({"role": role}).eq("id", user_id).execute(),
        )
        if not result.data:
            return None
        return UserProfile(**result.data[0])

    async def set_app_role(self, user_id: str, role: str) -> None:
        """Write the role into app_metadata, where tokens pick it up."""
        try:
            await asyncio.to_thread(
                self._db.auth.admin.update_user_by_id,
                user_id,
                {"app_metadata": {"role": role}},
            )
        except AuthApiError as e:
            if e.status == 404:
                raise ProfileNotFoundError(user_id) from e
            logger.error("Supabase auth role update failed for %s: %s", user_id, e.message)
            raise PersistenceError("update_user_role", e.message) from e


class AuthService(IAuthService):
    """
    Implementation of the authentication service.

    Uses Supabase JWT tokens for authentication and the Supabase
    ``profiles`` table for user lookups.
    """

    def __init__(self, jwt_secret: Optional[str] = None, db: Any = None):
        self._jwt_secret = jwt_secret if jwt_secret is not None else get_settings().supabase_jwt_secret
        self._db = db
        self._profiles: Optional[ProfileRepository] = None

    @property
    def profiles(self) -> ProfileRepository:
        if self._profiles is None:
            self._profiles = ProfileRepository(self._db or get_supabase_client())
        return self._profiles

    async def validate_token(self, token: str) -> AuthenticatedUser:
        """
        Validate a JWT token and return the authenticated user.

        This implementation validates Supabase JWTs using the JWT secret.
        """
        if not token:
            raise MissingTokenError()

        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=["HS256"],
                audience="authenticated",
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError()
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(str(e))

        jwt_payload = JWTPayload(**payload)

        return AuthenticatedUser(
            id=jwt_payload.sub,
            email=jwt_payload.email or None,
            phone=jwt_payload.phone or None,
            email_verified=jwt_payload.email_confirmed_at is not None,
            last_sign_in=datetime.fromtimestamp(jwt_payload.iat, tz=timezone.utc),
            role=jwt_payload.app_role,
        )

    async def get_user_by_id(self, user_id: str) -> Optional[UserProfile]:
        """Get a user's profile by their ID."""
        return await self.profiles.find_one("id", user_id)

    async def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        """Get a user's profile by their email."""
        return await self.profiles.find_one("email", email.lower())

    async def update_user_role(self, user_id: str, role: UserRole) -> UserProfile:
        """
        Set a user's application role.

        The auth user's app_metadata is written first since it is what
        tokens carry; the profile row mirrors it for queries. The new role
        reaches the user's token on its next refresh.

        Raises:
            ProfileNotFoundError: The user has no profile or auth record
            PersistenceError: Supabase failed (retryable)
        """
        if await self.profiles.find_one("id", user_id) is None:
            raise ProfileNotFoundError(user_id)

        await self.profiles.set_app_role(user_id, role)
        profile = await self.profiles.update_role(user_id, role)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        logger.info("Role of user %s set to %s", user_id, role)
        return profile


# Module-level instance getter
_service_instance: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """Get the auth service singleton."""
    global _service_instance
    if _service_instance is None:
        _service_instance = AuthService()
    return _service_instance


def reset_auth_service() -> None:
    """Reset the auth service singleton (for testing)."""
    global _service_instance
    _service_instance = None
