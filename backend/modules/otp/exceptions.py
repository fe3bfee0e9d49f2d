"""
OTP module exceptions.
"""

from shared.exceptions import AuthenticationError, MarketplaceError, RateLimitError, ValidationError


class OtpError(MarketplaceError):
    """Base exception for OTP errors."""

    pass


class InvalidPhoneError(OtpError, ValidationError):
    def __init__(self, phone: str):
        super().__init__(
            "Phone number must be in international format, e.g. +14155550123",
            code="INVALID_PHONE",
            details={"phone": phone},
        )


class OtpRateLimitedError(OtpError, RateLimitError):
    """A code was sent to this phone too recently."""

    def __init__(self, retry_after_seconds: int):
        super().__init__(
            f"Please wait {retry_after_seconds} seconds before requesting a new code",
            code="OTP_RATE_LIMITED",
            details={"retry_after_seconds": retry_after_seconds},
        )


class OtpExpiredError(OtpError, AuthenticationError):
    def __init__(self):
        super().__init__("Verification code has expired", code="OTP_EXPIRED")


class OtpInvalidError(OtpError, AuthenticationError):
    def __init__(self, attempts_remaining: int):
        super().__init__(
            "Invalid verification code",
            code="OTP_INVALID",
            details={"attempts_remaining": attempts_remaining},
        )


class OtpAttemptsExceededError(OtpError, RateLimitError):
    def __init__(self):
        super().__init__(
            "Too many incorrect attempts. Request a new code.",
            code="OTP_ATTEMPTS_EXCEEDED",
        )
