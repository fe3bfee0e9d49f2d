"""
OTP module.

Six-digit phone codes with hashed storage, expiry, attempt limits and a
resend cooldown. Delivery is behind IOtpSender.

Public API:
- IOtpService: Interface for send/verify
- OtpChannel, OtpResponse: Models
- OTP exceptions: OtpExpiredError, OtpInvalidError, etc.
"""

from .interfaces import IOtpSender, IOtpService, IOtpStore
from .models import OtpChannel, OtpResponse
from .exceptions import (
    OtpError,
    InvalidPhoneError,
    OtpRateLimitedError,
    OtpExpiredError,
    OtpInvalidError,
    OtpAttemptsExceededError,
)

__all__ = [
    # Interfaces
    "IOtpSender",
    "IOtpService",
    "IOtpStore",
    # Models
    "OtpChannel",
    "OtpResponse",
    # Exceptions
    "OtpError",
    "InvalidPhoneError",
    "OtpRateLimitedError",
    "OtpExpiredError",
    "OtpInvalidError",
    "OtpAttemptsExceededError",
]
