"""
FastAPI application factory.

Creates and configures the FastAPI application instance.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import get_settings, validate_required_settings
from shared.logging_config import configure_logging

from .errors import register_exception_handlers
from .routes import health, users
from modules.billing.routes import router as billing_router, webhook_router
from modules.otp.routes import router as otp_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Refuses to start when a required secret is missing.
    """
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    validate_required_settings(settings)
    logger.info("Starting %s on %s:%s", settings.app_name, settings.host, settings.port)
    yield
    # Shutdown
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Credits, memberships and payments for the yoga marketplace",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    register_exception_handlers(app)

    # Register routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(otp_router, prefix="/api/otp", tags=["otp"])
    if settings.enable_billing:
        app.include_router(billing_router, prefix="/api/billing", tags=["billing"])
        app.include_router(webhook_router, tags=["webhooks"])

    return app


# Application instance for uvicorn
app = create_app()
