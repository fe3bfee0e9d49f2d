"""
Database client factory for Supabase.

Provides both service-role clients (for backend operations bypassing RLS)
and user-authenticated clients (for operations respecting RLS).
"""

from typing import Optional
from supabase import create_client, Client, ClientOptions

from .config import get_settings
from .exceptions import ConfigurationMissingError

# Module-level client cache
_service_client: Optional[Client] = None


def _client_options() -> ClientOptions:
    settings = get_settings()
    return ClientOptions(
        postgrest_client_timeout=settings.supabase_timeout_seconds,
        auto_refresh_token=False,
        persist_session=False,
    )


def get_supabase_client() -> Client:
    """
    Get Supabase client with service role (bypasses RLS).

    Use this for backend operations that need full database access,
    such as writing ledger rows on behalf of a paying user.

    Returns:
        Supabase client configured with service role key

    Raises:
        ConfigurationMissingError: If the URL or service role key is not set
    """
    global _service_client

    if _service_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise ConfigurationMissingError(["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
            options=_client_options(),
        )

    return _service_client


def get_supabase_user_client(access_token: str) -> Client:
    """
    Get Supabase client authenticated as a specific user.

    Use this for operations that should respect Row Level Security (RLS).

    Args:
        access_token: JWT access token from Supabase Auth

    Returns:
        Supabase client configured with user's access token
    """
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise ConfigurationMissingError(["SUPABASE_URL", "SUPABASE_ANON_KEY"])

    client = create_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        options=_client_options(),
    )
    client.postgrest.auth(access_token)
    return client


def reset_client_cache() -> None:
    """
    Reset the cached database client.

    Useful for testing or when configuration changes.
    """
    global _service_client
    _service_client = None
