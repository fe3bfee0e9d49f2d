"""
Billing module exceptions.

These exceptions are raised by the billing module and can be caught
by API error handlers to return appropriate HTTP responses.
"""

from decimal import Decimal
from typing import Optional

from shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ExternalServiceError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)


class BillingError(MarketplaceError):
    """Base exception for billing-related errors."""

    pass


class InsufficientCreditsError(BillingError):
    """
    Raised when a user doesn't have enough credits for an operation.

    The UI handles this by offering the credit packages.
    """

    def __init__(
        self,
        required: int,
        available: int,
        user_id: Optional[str] = None,
    ):
        message = f"Insufficient credits. Required: {required}, available: {available}"
        super().__init__(
            message,
            code="INSUFFICIENT_CREDITS",
            details={
                "required": required,
                "available": available,
                "shortfall": required - available,
            },
        )
        if user_id:
            self.details["user_id"] = user_id


class InvalidAmountError(ValidationError):
    """Raised when a credit amount is invalid."""

    def __init__(self, amount: int, reason: str):
        super().__init__(
            f"Invalid amount: {amount}. {reason}",
            code="INVALID_AMOUNT",
            details={"amount": amount, "reason": reason},
        )


class InvalidIntentError(ValidationError):
    """Raised when a checkout request cannot be turned into a purchase."""

    def __init__(self, reason: str, item_id: Optional[str] = None):
        super().__init__(
            f"Invalid purchase: {reason}",
            code="INVALID_INTENT",
            details={"reason": reason, "item_id": item_id},
        )


class SignatureInvalidError(AuthenticationError):
    """Raised when Stripe webhook signature verification fails."""

    def __init__(self, reason: str = "Webhook signature verification failed"):
        super().__init__(reason, code="SIGNATURE_INVALID")


class MalformedEventError(ValidationError):
    """Raised when a known provider event is missing fields we rely on."""

    def __init__(self, event_type: str, reason: str):
        super().__init__(
            f"Malformed {event_type} event: {reason}",
            code="MALFORMED_EVENT",
            details={"event_type": event_type, "reason": reason},
        )


class UnmappedPriceError(ValidationError):
    """Raised when a paid price ID is not in the catalog."""

    def __init__(self, price_id: Optional[str], session_id: Optional[str] = None):
        super().__init__(
            f"Price is not mapped to a credit package or membership tier: {price_id}",
            code="UNMAPPED_PRICE",
            details={"price_id": price_id, "session_id": session_id},
        )


class ProviderUnavailableError(ExternalServiceError):
    """Network error, timeout or 5xx from the payment provider. Retryable."""

    retryable = True

    def __init__(self, operation: str, provider_error: Optional[str] = None):
        super().__init__(
            f"Payment provider unavailable during {operation}",
            service="stripe",
            code="PROVIDER_UNAVAILABLE",
            details={"operation": operation, "provider_error": provider_error},
        )


class ProviderRequestError(ExternalServiceError):
    """The payment provider rejected a request. Not retryable."""

    def __init__(self, operation: str, provider_error: Optional[str] = None):
        super().__init__(
            f"Payment provider rejected {operation}",
            service="stripe",
            code="PROVIDER_REQUEST_FAILED",
            details={"operation": operation, "provider_error": provider_error},
        )


class SessionNotFoundError(NotFoundError):
    """Raised when a checkout session ID is unknown to the provider."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Checkout session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            details={"session_id": session_id},
        )


class UserNotFoundError(NotFoundError):
    """Raised when a payment references a user with no profile."""

    def __init__(self, user_id: str):
        super().__init__(
            f"User not found: {user_id}",
            code="USER_NOT_FOUND",
            details={"user_id": user_id},
        )


class ClaimNotFoundError(NotFoundError):
    """Raised when no pending claim exists for a session."""

    def __init__(self, session_id: str):
        super().__init__(
            f"No pending purchase for session: {session_id}",
            code="CLAIM_NOT_FOUND",
            details={"session_id": session_id},
        )


class ClaimAlreadyRedeemedError(AuthorizationError):
    """Raised when a claim was redeemed by a different user."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Purchase already redeemed by another account: {session_id}",
            code="CLAIM_ALREADY_REDEEMED",
            details={"session_id": session_id},
        )


class ClaimEmailMismatchError(AuthorizationError):
    """Raised when the redeeming user is not the checkout email's owner."""

    def __init__(self, session_id: str):
        super().__init__(
            "This purchase was made with a different email address",
            code="CLAIM_EMAIL_MISMATCH",
            details={"session_id": session_id},
        )


def format_price(amount: Decimal) -> str:
    """Two-decimal rendering used in error details and descriptions."""
    return f"{amount.quantize(Decimal('0.01'))}"
