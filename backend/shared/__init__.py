"""
Shared infrastructure for the marketplace backend.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management
- database: Supabase client factory
- exceptions: Base exception classes
- logging: Root logger setup

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings, validate_required_settings
from .database import get_supabase_client, get_supabase_user_client, reset_client_cache
from .exceptions import (
    MarketplaceError,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    RateLimitError,
    ExternalServiceError,
    PersistenceError,
    ConfigurationMissingError,
)
from .models import AuthenticatedUser

__all__ = [
    "Settings",
    "get_settings",
    "validate_required_settings",
    "get_supabase_client",
    "get_supabase_user_client",
    "reset_client_cache",
    "MarketplaceError",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "RateLimitError",
    "ExternalServiceError",
    "PersistenceError",
    "ConfigurationMissingError",
    "AuthenticatedUser",
]
