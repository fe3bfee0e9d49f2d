"""
OTP service implementation.

Six-digit codes for phone login. Only an HMAC-SHA256 of (phone, code)
is stored, with an expiry, an attempt counter and the time of the last
send for the resend cooldown. Delivery goes through IOtpSender; the
default LoggingOtpSender only logs that a code was dispatched.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from supabase import Client

from shared.exceptions import ConfigurationMissingError
from shared.repository import BaseRepository

from .exceptions import (
    InvalidPhoneError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    OtpInvalidError,
    OtpRateLimitedError,
)
from .interfaces import IOtpSender, IOtpService, IOtpStore
from .models import E164_PATTERN, OtpChannel, OtpRecord, OtpResponse, normalize_phone

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


def _mask(phone: str) -> str:
    return f"{phone[:3]}***{phone[-2:]}" if len(phone) > 5 else "***"


class LoggingOtpSender:
    """Sender that logs the dispatch without contacting a vendor."""

    async def send(self, phone: str, code: str, channel: OtpChannel) -> None:
        logger.info("OTP dispatched to %s via %s", _mask(phone), channel.value)


class InMemoryOtpStore:
    """Dict-backed store for tests and local development."""

    def __init__(self) -> None:
        self._records: dict[str, OtpRecord] = {}

    async def get(self, phone: str) -> Optional[OtpRecord]:
        return self._records.get(phone)

    async def save(self, record: OtpRecord) -> None:
        self._records[record.phone] = record

    async def increment_attempts(self, phone: str) -> Optional[int]:
        record = self._records.get(phone)
        if record is None:
            return None
        updated = record.model_copy(update={"attempts": record.attempts + 1})
        self._records[phone] = updated
        return updated.attempts

    async def delete(self, phone: str) -> None:
        self._records.pop(phone, None)


class SupabaseOtpStore(BaseRepository[OtpRecord]):
    """Store backed by the ``otp_codes`` table."""

    TABLE = "otp_codes"

    def __init__(self, db: Client):
        super().__init__(db)

    async def get(self, phone: str) -> Optional[OtpRecord]:
        result = await self._run(
            "otp_get",
            lambda: self._db.table(self.TABLE).select("*").eq("phone", phone).limit(1).execute(),
        )
        if not result.data:
            return None
        return OtpRecord(**result.data[0])

    async def save(self, record: OtpRecord) -> None:
        row: dict[str, Any] = record.model_dump(mode="json")
        await self._run(
            "otp_save",
            lambda: self._db.table(self.TABLE).upsert(row, on_conflict="phone").execute(),
        )

    async def increment_attempts(self, phone: str) -> Optional[int]:
        # Single UPDATE ... RETURNING, see migrations/004_otp_attempts.sql
        result = await self._run(
            "otp_increment_attempts",
            lambda: self._db.rpc("increment_otp_attempts", {"p_phone": phone}).execute(),
        )
        return int(result.data) if result.data is not None else None

    async def delete(self, phone: str) -> None:
        await self._run(
            "otp_delete",
            lambda: self._db.table(self.TABLE).delete().eq("phone", phone).execute(),
        )


class OtpService(IOtpService):
    """Issues and checks one-time phone codes."""

    def __init__(
        self,
        store: IOtpStore,
        sender: IOtpSender,
        hash_secret: str,
        ttl_seconds: int = 600,
        resend_cooldown_seconds: int = 60,
        max_attempts: int = 5,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not hash_secret:
            raise ConfigurationMissingError(["OTP_HASH_SECRET"])
        self._store = store
        self._sender = sender
        self._secret = hash_secret.encode()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._cooldown = timedelta(seconds=resend_cooldown_seconds)
        self._max_attempts = max_attempts
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _hash(self, phone: str, code: str) -> str:
        return hmac.new(self._secret, f"{phone}:{code}".encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def _validate_phone(phone: str) -> str:
        normalized = normalize_phone(phone)
        if not E164_PATTERN.match(normalized):
            raise InvalidPhoneError(phone)
        return normalized

    async def send_code(self, phone: str, channel: OtpChannel = OtpChannel.SMS) -> OtpResponse:
        phone = self._validate_phone(phone)
        now = self._clock()

        existing = await self._store.get(phone)
        if existing is not None:
            wait = existing.last_sent_at + self._cooldown - now
            if wait.total_seconds() > 0:
                raise OtpRateLimitedError(int(wait.total_seconds()) + 1)

        code = "".join(secrets.choice("0123456789") for _ in range(CODE_LENGTH))
        await self._store.save(
            OtpRecord(
                phone=phone,
                code_hash=self._hash(phone, code),
                channel=channel,
                attempts=0,
                expires_at=now + self._ttl,
                last_sent_at=now,
            )
        )
        await self._sender.send(phone, code, channel)
        return OtpResponse(success=True, message=f"Verification code sent via {channel.value}")

    async def verify_code(self, phone: str, code: str) -> OtpResponse:
        phone = self._validate_phone(phone)
        record = await self._store.get(phone)
        if record is None:
            raise OtpExpiredError()

        if self._clock() >= record.expires_at:
            await self._store.delete(phone)
            raise OtpExpiredError()

        if record.attempts >= self._max_attempts:
            raise OtpAttemptsExceededError()

        # Each guess claims an attempt before the comparison.
        attempts = await self._store.increment_attempts(phone)
        if attempts is None:
            raise OtpExpiredError()
        if attempts > self._max_attempts:
            raise OtpAttemptsExceededError()

        if hmac.compare_digest(self._hash(phone, code), record.code_hash):
            await self._store.delete(phone)
            logger.info("OTP verified for %s", _mask(phone))
            return OtpResponse(success=True, message="Phone number verified")

        logger.info("Wrong OTP for %s (attempt %d)", _mask(phone), attempts)
        if attempts >= self._max_attempts:
            await self._store.delete(phone)
            raise OtpAttemptsExceededError()
        raise OtpInvalidError(attempts_remaining=self._max_attempts - attempts)
