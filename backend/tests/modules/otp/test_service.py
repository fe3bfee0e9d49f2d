"""Tests for the OTP service."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from modules.otp.exceptions import (
    InvalidPhoneError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    OtpInvalidError,
    OtpRateLimitedError,
)
from modules.otp.interfaces import IOtpSender, IOtpService, IOtpStore
from modules.otp.models import OtpChannel, OtpResponse
from modules.otp.service import InMemoryOtpStore, LoggingOtpSender, OtpService, SupabaseOtpStore
from shared.exceptions import ConfigurationMissingError


PHONE = "+14155550123"


class RecordingSender:
    """Keeps the last code sent to each phone."""

    def __init__(self):
        self.sent: dict[str, tuple[str, OtpChannel]] = {}

    async def send(self, phone: str, code: str, channel: OtpChannel) -> None:
        self.sent[phone] = (code, channel)


class SlowOtpStore(InMemoryOtpStore):
    """Yields on every read like a network-backed store."""

    async def get(self, phone):
        await asyncio.sleep(0)
        return await super().get(phone)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock(datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryOtpStore()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def service(store, sender, clock):
    return OtpService(store, sender, hash_secret="otp-test-secret", clock=clock)


class TestSendCode:
    @pytest.mark.asyncio
    async def test_sends_six_digit_code(self, service, sender, store):
        response = await service.send_code(PHONE)

        assert response.success is True
        assert response.message == "Verification code sent via sms"
        code, channel = sender.sent[PHONE]
        assert len(code) == 6 and code.isdigit()
        assert channel == OtpChannel.SMS

        record = await store.get(PHONE)
        assert code not in record.code_hash
        assert record.attempts == 0

    @pytest.mark.asyncio
    async def test_whatsapp_channel(self, service, sender):
        response = await service.send_code(PHONE, OtpChannel.WHATSAPP)
        assert response.message == "Verification code sent via whatsapp"
        assert sender.sent[PHONE][1] == OtpChannel.WHATSAPP

    @pytest.mark.asyncio
    async def test_normalizes_phone(self, service, sender):
        await service.send_code("+1 (415) 555-0123")
        assert PHONE in sender.sent

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone", ["4155550123", "+0123456789", "+1415", "not-a-phone", ""])
    async def test_invalid_phone(self, service, phone):
        with pytest.raises(InvalidPhoneError):
            await service.send_code(phone)

    @pytest.mark.asyncio
    async def test_resend_cooldown(self, service, clock):
        await service.send_code(PHONE)
        clock.advance(20)

        with pytest.raises(OtpRateLimitedError) as exc_info:
            await service.send_code(PHONE)
        assert exc_info.value.details["retry_after_seconds"] == 41

    @pytest.mark.asyncio
    async def test_resend_after_cooldown(self, service, store, clock):
        await service.send_code(PHONE)
        clock.advance(61)

        await service.send_code(PHONE)

        record = await store.get(PHONE)
        assert record.last_sent_at == clock.now
        assert record.expires_at == clock.now + timedelta(seconds=600)

    def test_requires_hash_secret(self, store, sender):
        with pytest.raises(ConfigurationMissingError):
            OtpService(store, sender, hash_secret="")


class TestVerifyCode:
    @pytest.mark.asyncio
    async def test_correct_code(self, service, sender, store):
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]

        response = await service.verify_code(PHONE, code)

        assert response.success is True
        assert await store.get(PHONE) is None

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, service, sender):
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]
        await service.verify_code(PHONE, code)

        with pytest.raises(OtpExpiredError):
            await service.verify_code(PHONE, code)

    @pytest.mark.asyncio
    async def test_no_code_sent(self, service):
        with pytest.raises(OtpExpiredError):
            await service.verify_code(PHONE, "123456")

    @pytest.mark.asyncio
    async def test_expired_code(self, service, sender, clock, store):
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]
        clock.advance(600)

        with pytest.raises(OtpExpiredError):
            await service.verify_code(PHONE, code)
        assert await store.get(PHONE) is None

    @pytest.mark.asyncio
    async def test_wrong_code_counts_attempts(self, service, sender):
        await service.send_code(PHONE)
        wrong = "000000" if sender.sent[PHONE][0] != "000000" else "111111"

        with pytest.raises(OtpInvalidError) as exc_info:
            await service.verify_code(PHONE, wrong)
        assert exc_info.value.details["attempts_remaining"] == 4

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, service, sender, store):
        """The fifth wrong guess burns the code, even for the right code afterwards."""
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(4):
            with pytest.raises(OtpInvalidError):
                await service.verify_code(PHONE, wrong)
        with pytest.raises(OtpAttemptsExceededError):
            await service.verify_code(PHONE, wrong)

        assert await store.get(PHONE) is None
        with pytest.raises(OtpExpiredError):
            await service.verify_code(PHONE, code)

    @pytest.mark.asyncio
    async def test_concurrent_guesses_share_attempt_budget(self, sender, clock):
        """Guesses sent together cannot exceed five comparisons between them."""
        store = SlowOtpStore()
        service = OtpService(store, sender, hash_secret="otp-test-secret", clock=clock)
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]
        wrong = "000000" if code != "000000" else "111111"

        results = await asyncio.gather(
            *[service.verify_code(PHONE, wrong) for _ in range(9)],
            service.verify_code(PHONE, code),
            return_exceptions=True,
        )

        assert not any(isinstance(r, OtpResponse) for r in results)
        assert sum(isinstance(r, OtpInvalidError) for r in results) == 4
        assert sum(isinstance(r, OtpAttemptsExceededError) for r in results) == 1
        assert await store.get(PHONE) is None

    @pytest.mark.asyncio
    async def test_right_code_on_last_attempt(self, service, sender):
        await service.send_code(PHONE)
        code = sender.sent[PHONE][0]
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(4):
            with pytest.raises(OtpInvalidError):
                await service.verify_code(PHONE, wrong)

        assert (await service.verify_code(PHONE, code)).success is True


class TestLoggingOtpSender:
    @pytest.mark.asyncio
    async def test_does_not_log_code(self, caplog):
        with caplog.at_level("INFO", logger="modules.otp.service"):
            await LoggingOtpSender().send(PHONE, "987654", OtpChannel.SMS)

        assert "987654" not in caplog.text
        assert PHONE not in caplog.text
        assert "via sms" in caplog.text


class TestSupabaseOtpStore:
    @pytest.mark.asyncio
    async def test_get_missing(self):
        db = MagicMock()
        query = db.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value.data = []

        assert await SupabaseOtpStore(db).get(PHONE) is None
        db.table.assert_called_with("otp_codes")

    @pytest.mark.asyncio
    async def test_save_upserts_by_phone(self, clock):
        db = MagicMock()
        store = SupabaseOtpStore(db)
        service = OtpService(store, RecordingSender(), hash_secret="s", clock=clock)
        lookup = db.table.return_value.select.return_value.eq.return_value.limit.return_value
        lookup.execute.return_value.data = []

        await service.send_code(PHONE)

        upsert = db.table.return_value.upsert
        row = upsert.call_args.args[0]
        assert row["phone"] == PHONE
        assert row["channel"] == "sms"
        assert upsert.call_args.kwargs == {"on_conflict": "phone"}


    @pytest.mark.asyncio
    async def test_increment_attempts_is_one_statement(self):
        db = MagicMock()
        db.rpc.return_value.execute.return_value.data = 3

        assert await SupabaseOtpStore(db).increment_attempts(PHONE) == 3
        db.rpc.assert_called_once_with("increment_otp_attempts", {"p_phone": PHONE})
        db.table.return_value.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_increment_attempts_without_code(self):
        db = MagicMock()
        db.rpc.return_value.execute.return_value.data = None

        assert await SupabaseOtpStore(db).increment_attempts(PHONE) is None


class TestInterfaces:
    def test_implementations(self, service, store):
        assert isinstance(service, IOtpService)
        assert isinstance(store, IOtpStore)
        assert isinstance(LoggingOtpSender(), IOtpSender)
