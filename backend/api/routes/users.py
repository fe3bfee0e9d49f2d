"""
User-related endpoints.

Provides endpoints for user profile and account management, and the
admin endpoint that changes a user's role.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from modules.auth.interfaces import IAuthService
from modules.auth.models import UserRole
from shared.models import AuthenticatedUser
from ..dependencies import get_auth_service
from ..models import error_responses
from ..middleware.auth import get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter()


class UserProfileResponse(BaseModel):
    """User profile response model."""

    id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    email_verified: bool
    full_name: Optional[str] = None
    role: str


@router.get("/me", response_model=UserProfileResponse)
async def get_current_user_profile(
    user: AuthenticatedUser = Depends(get_current_user),
    auth: IAuthService = Depends(get_auth_service),
) -> UserProfileResponse:
    """
    Get the current user's profile.

    Requires authentication. Falls back to the token claims when the
    profile row has not been created yet.
    """
    profile = await auth.get_user_by_id(user.id)
    return UserProfileResponse(
        id=user.id,
        email=user.email or (profile.email if profile else None),
        phone=user.phone or (profile.phone if profile else None),
        email_verified=user.email_verified,
        full_name=profile.full_name if profile else None,
        role=user.role,
    )


class UpdateRoleRequest(BaseModel):
    role: UserRole


class UpdateRoleResponse(BaseModel):
    success: bool = True
    user_id: str
    role: str
    message: str


@router.post(
    "/{user_id}/role",
    response_model=UpdateRoleResponse,
    responses=error_responses(401, 403, 404, 503),
)
async def update_user_role(
    user_id: str,
    body: UpdateRoleRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    auth: IAuthService = Depends(get_auth_service),
) -> UpdateRoleResponse:
    """Set a user's role. Admin only."""
    profile = await auth.update_user_role(user_id, body.role)
    logger.info("Admin %s changed role of user %s to %s", admin.id, user_id, body.role)
    return UpdateRoleResponse(
        user_id=profile.id,
        role=profile.role,
        message=f"User role updated to {profile.role}",
    )
