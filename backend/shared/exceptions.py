"""
Base exception classes for the marketplace backend.

Each module should define its own exceptions that inherit from these bases.
This enables consistent error handling across the application.
"""

from typing import Optional, Any


class MarketplaceError(Exception):
    """
    Base exception for all marketplace errors.

    All custom exceptions should inherit from this class.
    Subclasses that represent transient failures set ``retryable = True``
    so the API layer can answer with a status the caller will retry.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(MarketplaceError):
    """Resource not found."""

    pass


class ValidationError(MarketplaceError):
    """Input validation failed."""

    pass


class AuthenticationError(MarketplaceError):
    """Authentication failed (invalid or missing credentials)."""

    pass


class AuthorizationError(MarketplaceError):
    """Authorization failed (insufficient permissions)."""

    pass


class RateLimitError(MarketplaceError):
    """Too many requests for the same resource."""

    pass


class ExternalServiceError(MarketplaceError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service


class PersistenceError(ExternalServiceError):
    """
    A database call failed or timed out.

    Transient: the operation may be retried safely because every ledger
    write is idempotent.
    """

    retryable = True

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation failed: {operation}",
            service="supabase",
            code="PERSISTENCE_FAILURE",
            details={"operation": operation, "reason": reason},
        )


class ConfigurationMissingError(MarketplaceError):
    """Required configuration is absent. Fatal at startup."""

    def __init__(self, missing: list[str]):
        super().__init__(
            "Missing required configuration: " + ", ".join(missing),
            code="CONFIGURATION_MISSING",
            details={"missing": missing},
        )
        self.missing = missing
