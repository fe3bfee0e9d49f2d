"""
OTP API endpoints.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_otp_service

from .interfaces import IOtpService
from .models import OtpResponse, SendCodeRequest, VerifyCodeRequest

router = APIRouter()


@router.post("/send", response_model=OtpResponse)
async def send_code(
    request: SendCodeRequest,
    service: IOtpService = Depends(get_otp_service),
) -> OtpResponse:
    """Send a six-digit login code by SMS or WhatsApp."""
    return await service.send_code(request.phone, request.channel)


@router.post("/verify", response_model=OtpResponse)
async def verify_code(
    request: VerifyCodeRequest,
    service: IOtpService = Depends(get_otp_service),
) -> OtpResponse:
    return await service.verify_code(request.phone, request.code)
