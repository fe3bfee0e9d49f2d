"""
Health check endpoints.

Provides endpoints for monitoring application health and readiness.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.config import Settings, get_settings, validate_required_settings
from shared.exceptions import ConfigurationMissingError

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    configuration: str
    missing: list[str] = []


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns 200 if the API is running.
    """
    return HealthResponse(status="healthy", version=settings.app_version)


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(settings: Settings = Depends(get_settings)):
    """
    Readiness check endpoint.

    Returns 503 until every required secret is configured.
    """
    try:
        validate_required_settings(settings)
    except ConfigurationMissingError as e:
        body = ReadinessResponse(status="not_ready", configuration="incomplete", missing=e.missing)
        return JSONResponse(status_code=503, content=body.model_dump())
    return ReadinessResponse(status="ready", configuration="complete")
