"""
OTP module interfaces.

IOtpSender is the seam to the SMS/WhatsApp vendor; IOtpStore keeps the
hashed codes.
"""

from typing import Optional, Protocol, runtime_checkable

from .models import OtpChannel, OtpRecord, OtpResponse


@runtime_checkable
class IOtpSender(Protocol):
    """Delivers a code to a phone."""

    async def send(self, phone: str, code: str, channel: OtpChannel) -> None:
        ...


@runtime_checkable
class IOtpStore(Protocol):
    """Persistence for pending codes, one per phone."""

    async def get(self, phone: str) -> Optional[OtpRecord]:
        ...

    async def save(self, record: OtpRecord) -> None:
        """Insert or replace the record for record.phone."""
        ...

    async def increment_attempts(self, phone: str) -> Optional[int]:
        """
        Atomically add one attempt and return the new count.

        Returns None when no code is stored for the phone.
        """
        ...

    async def delete(self, phone: str) -> None:
        ...


@runtime_checkable
class IOtpService(Protocol):
    """Interface for phone-based one-time codes."""

    async def send_code(self, phone: str, channel: OtpChannel = OtpChannel.SMS) -> OtpResponse:
        """
        Send a new six-digit code to a phone.

        Raises:
            InvalidPhoneError: Phone is not E.164
            OtpRateLimitedError: A code was sent within the cooldown
        """
        ...

    async def verify_code(self, phone: str, code: str) -> OtpResponse:
        """
        Check a code. A correct code is consumed.

        Raises:
            OtpExpiredError, OtpInvalidError, OtpAttemptsExceededError
        """
        ...
