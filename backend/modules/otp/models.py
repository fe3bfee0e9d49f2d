"""
OTP module data models.
"""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


class OtpChannel(str, Enum):
    """How the code reaches the user."""

    SMS = "sms"
    WHATSAPP = "whatsapp"


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and brackets; the result must be E.164."""
    return re.sub(r"[\s\-()]", "", phone or "")


class OtpRecord(BaseModel):
    """A stored one-time code. The code itself is never stored."""

    phone: str
    code_hash: str
    channel: OtpChannel
    attempts: int = 0
    expires_at: datetime
    last_sent_at: datetime


class SendCodeRequest(BaseModel):
    phone: str = Field(..., description="Phone number in E.164 format, e.g. +14155550123")
    channel: OtpChannel = OtpChannel.SMS

    @field_validator("phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        return normalize_phone(value)


class VerifyCodeRequest(BaseModel):
    phone: str
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")

    @field_validator("phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        return normalize_phone(value)


class OtpResponse(BaseModel):
    success: bool
    message: str
