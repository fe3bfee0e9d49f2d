"""
Authentication module data models.

These models define the data structures used by the auth module
and exposed to other modules through the interface.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from shared.models import AuthenticatedUser


UserRole = Literal["user", "instructor", "admin"]


class JWTPayload(BaseModel):
    """
    Decoded JWT token payload from Supabase.

    This matches the structure of Supabase Auth JWTs.
    """

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[str] = Field(None, description="User's email")
    phone: Optional[str] = Field(None, description="User's phone number")
    email_confirmed_at: Optional[str] = Field(None, description="Email confirmation time")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    aud: str = Field(default="authenticated", description="Audience")
    role: str = Field(default="authenticated", description="Postgres role")

    # Supabase-specific claims
    app_metadata: dict = Field(default_factory=dict)
    user_metadata: dict = Field(default_factory=dict)

    @property
    def app_role(self) -> str:
        """Application role stored by admins in app_metadata."""
        return self.app_metadata.get("role") or "user"


class UserProfile(BaseModel):
    """
    A row of the public ``profiles`` table.

    Profiles are created by a Supabase trigger when a user signs up,
    so their existence is the marketplace's definition of "user exists".
    """

    id: str = Field(..., description="User ID (UUID)")
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    full_name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    role: str = Field(default="user", description="Application role")
    created_at: Optional[datetime] = Field(None, description="Account creation time")
    updated_at: Optional[datetime] = Field(None, description="Last update time")


__all__ = ["AuthenticatedUser", "JWTPayload", "UserProfile", "UserRole"]
