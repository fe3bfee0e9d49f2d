"""
FastAPI exception handlers for converting MarketplaceError to HTTP responses.

Status mapping:
- 400 Bad Request: validation failures, bad webhook signatures, unmapped prices
- 401 Unauthorized: authentication required or failed
- 402 Payment Required: not enough credits
- 403 Forbidden: authorization failures
- 404 Not Found: unknown session, user or claim
- 429 Too Many Requests: rate limiting
- 503 Service Unavailable: retryable failures of Stripe or the database

Usage:
    from api.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ExternalServiceError,
    MarketplaceError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Codes whose status differs from their base class
ERROR_CODE_TO_HTTP_STATUS: dict[str, int] = {
    "SIGNATURE_INVALID": HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_CREDITS": HTTP_402_PAYMENT_REQUIRED,
}

# Checked in order; the first matching base class wins
ERROR_CLASS_TO_HTTP_STATUS: list[tuple[type[MarketplaceError], int]] = [
    (ValidationError, HTTP_400_BAD_REQUEST),
    (AuthenticationError, HTTP_401_UNAUTHORIZED),
    (AuthorizationError, HTTP_403_FORBIDDEN),
    (NotFoundError, HTTP_404_NOT_FOUND),
    (RateLimitError, HTTP_429_TOO_MANY_REQUESTS),
    (ExternalServiceError, HTTP_502_BAD_GATEWAY),
]


def get_http_status_for_error(exc: MarketplaceError) -> int:
    """
    Get the HTTP status code for a domain error.

    Retryable errors always map to 503 so webhook senders and clients
    retry. Unmapped errors are server errors.
    """
    if exc.retryable:
        return HTTP_503_SERVICE_UNAVAILABLE
    if exc.code in ERROR_CODE_TO_HTTP_STATUS:
        return ERROR_CODE_TO_HTTP_STATUS[exc.code]
    for error_class, status_code in ERROR_CLASS_TO_HTTP_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Convert a MarketplaceError into a JSON error response."""
    status_code = get_http_status_for_error(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    else:
        logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)

    body = exc.to_dict()
    body["code"] = exc.code
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the domain error handler with the FastAPI app."""
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)  # type: ignore[arg-type]
