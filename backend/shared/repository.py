"""
Base repository class for database access.

Provides a common abstraction layer for all repositories, encapsulating
Supabase client access and translating client failures into
PersistenceError so callers can treat them as retryable.
"""

import asyncio
import logging
from typing import Any, Callable, TypeVar, Generic

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for database operations:
    - Supabase client access via self._db
    - Generic type parameter for model type hints
    - _execute() wrapper that maps client/network errors to PersistenceError
    - _run(), the same wrapper off the event loop for async callers

    Subclasses should implement domain-specific data access methods
    and handle dict-to-Pydantic model mapping internally.

    Example:
        class MembershipRepository(BaseRepository[Membership]):
            def get_active(self, user_id: str) -> Optional[Membership]:
                result = self._execute(
                    "get_active_membership",
                    lambda: self._db.table("memberships")
                        .select("*").eq("user_id", user_id).eq("is_active", True)
                        .execute(),
                )
                ...
    """

    def __init__(self, db: Client) -> None:
        """
        Initialize the repository with a Supabase client.

        Args:
            db: Supabase client instance for database operations.
        """
        self._db = db

    def _execute(self, operation: str, call: Callable[[], Any]) -> Any:
        """Run a Supabase call, converting failures to PersistenceError."""
        try:
            return call()
        except APIError as e:
            logger.error("Supabase %s failed: %s", operation, e.message)
            raise PersistenceError(operation, str(e.message)) from e
        except httpx.HTTPError as e:
            logger.error("Supabase %s failed: %s", operation, e)
            raise PersistenceError(operation, str(e)) from e

    async def _run(self, operation: str, call: Callable[[], Any]) -> Any:
        """_execute() in a worker thread; the sync client blocks on HTTP."""
        return await asyncio.to_thread(self._execute, operation, call)
