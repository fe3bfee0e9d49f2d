"""
Error response models.

Documents the body produced by api.errors.marketplace_error_handler so
it shows up in the OpenAPI schema.
"""

from pydantic import BaseModel
from typing import Any, Optional, Union


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: str
    code: Optional[str] = None
    details: dict[str, Any] = {}


def error_responses(*status_codes: int) -> dict[Union[int, str], dict[str, Any]]:
    """``responses=`` entries for routes that can fail with a domain error."""
    return {status_code: {"model": ErrorResponse} for status_code in status_codes}
