"""
Dependency injection setup for FastAPI.

This module provides the "container" that wires together all module
implementations. Each module exposes its service through an interface,
and this file creates the concrete implementations.

Billing components never look up settings or clients themselves; the
container builds them with explicit collaborators.
"""

from typing import TYPE_CHECKING

from shared.config import get_settings

# Type checking imports for interfaces (avoids circular imports)
if TYPE_CHECKING:
    from modules.auth.interfaces import IAuthService
    from modules.billing.applier import LedgerApplier
    from modules.billing.catalog import PriceCatalog
    from modules.billing.checkout import CheckoutInitiator
    from modules.billing.interfaces import (
        IBillingService,
        ILedgerRepository,
        IPaymentProvider,
    )
    from modules.billing.verification import PaymentVerifier
    from modules.billing.webhooks import WebhookReceiver
    from modules.otp.interfaces import IOtpService


class ServiceContainer:
    """
    Container for all service instances.

    This class manages the lifecycle of service instances and their
    dependencies. Services are created lazily on first access.

    All services are cached as singletons within the container.
    Use reset() to clear all cached services for testing.
    """

    def __init__(self) -> None:
        self._auth_service: "IAuthService | None" = None
        self._catalog: "PriceCatalog | None" = None
        self._payment_provider: "IPaymentProvider | None" = None
        self._ledger_repository: "ILedgerRepository | None" = None
        self._applier: "LedgerApplier | None" = None
        self._checkout: "CheckoutInitiator | None" = None
        self._webhooks: "WebhookReceiver | None" = None
        self._verifier: "PaymentVerifier | None" = None
        self._billing_service: "IBillingService | None" = None
        self._otp_service: "IOtpService | None" = None

    @property
    def auth(self) -> "IAuthService":
        """Get the auth service instance."""
        if self._auth_service is None:
            from modules.auth.service import AuthService
            self._auth_service = AuthService()
        return self._auth_service

    @property
    def catalog(self) -> "PriceCatalog":
        if self._catalog is None:
            from modules.billing.catalog import PriceCatalog
            self._catalog = PriceCatalog.from_settings(get_settings())
        return self._catalog

    @property
    def payment_provider(self) -> "IPaymentProvider":
        """Get the Stripe payment provider."""
        if self._payment_provider is None:
            from modules.billing.provider import StripePaymentProvider
            settings = get_settings()
            self._payment_provider = StripePaymentProvider(
                api_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                timeout_seconds=settings.stripe_timeout_seconds,
                max_network_retries=settings.stripe_max_network_retries,
            )
        return self._payment_provider

    @property
    def ledger_repository(self) -> "ILedgerRepository":
        """Get the ledger repository instance."""
        if self._ledger_repository is None:
            from modules.billing.repository import SupabaseLedgerRepository
            from shared.database import get_supabase_client
            self._ledger_repository = SupabaseLedgerRepository(get_supabase_client())
        return self._ledger_repository

    @property
    def applier(self) -> "LedgerApplier":
        if self._applier is None:
            from modules.billing.applier import LedgerApplier
            self._applier = LedgerApplier(self.ledger_repository)
        return self._applier

    @property
    def checkout(self) -> "CheckoutInitiator":
        if self._checkout is None:
            from modules.billing.checkout import CheckoutInitiator
            self._checkout = CheckoutInitiator(
                provider=self.payment_provider,
                catalog=self.catalog,
                frontend_url=get_settings().frontend_url,
            )
        return self._checkout

    @property
    def webhooks(self) -> "WebhookReceiver":
        if self._webhooks is None:
            from modules.billing.webhooks import WebhookReceiver
            self._webhooks = WebhookReceiver(
                provider=self.payment_provider,
                catalog=self.catalog,
                applier=self.applier,
            )
        return self._webhooks

    @property
    def verifier(self) -> "PaymentVerifier":
        if self._verifier is None:
            from modules.billing.verification import PaymentVerifier
            self._verifier = PaymentVerifier(
                provider=self.payment_provider,
                catalog=self.catalog,
                applier=self.applier,
            )
        return self._verifier

    @property
    def billing(self) -> "IBillingService":
        """Get the billing service instance."""
        if self._billing_service is None:
            from modules.billing.service import BillingService
            self._billing_service = BillingService(
                repository=self.ledger_repository,
                applier=self.applier,
            )
        return self._billing_service

    @property
    def otp(self) -> "IOtpService":
        """Get the OTP service instance."""
        if self._otp_service is None:
            from modules.otp.service import LoggingOtpSender, OtpService, SupabaseOtpStore
            from shared.database import get_supabase_client
            settings = get_settings()
            self._otp_service = OtpService(
                store=SupabaseOtpStore(get_supabase_client()),
                sender=LoggingOtpSender(),
                hash_secret=settings.otp_hash_secret or settings.supabase_jwt_secret,
                ttl_seconds=settings.otp_ttl_seconds,
                resend_cooldown_seconds=settings.otp_resend_cooldown_seconds,
                max_attempts=settings.otp_max_attempts,
            )
        return self._otp_service

    def reset(self) -> None:
        """
        Reset all cached services.

        This is primarily for testing - allows tests to get fresh
        service instances with different mock dependencies.
        """
        self._auth_service = None
        self._catalog = None
        self._payment_provider = None
        self._ledger_repository = None
        self._applier = None
        self._checkout = None
        self._webhooks = None
        self._verifier = None
        self._billing_service = None
        self._otp_service = None


# Module-level container singleton
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Get the singleton service container."""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container() -> None:
    """
    Reset the service container.

    This clears the cached container, so the next call to get_container()
    will create a fresh container with new service instances.

    Primarily used for testing.
    """
    global _container
    _container = None


# FastAPI dependency functions
# These are the functions that should be used in route Depends() calls


def get_auth_service() -> "IAuthService":
    """FastAPI dependency for auth service."""
    return get_container().auth


def get_billing_service() -> "IBillingService":
    """FastAPI dependency for billing service."""
    return get_container().billing


def get_price_catalog() -> "PriceCatalog":
    return get_container().catalog


def get_checkout_initiator() -> "CheckoutInitiator":
    return get_container().checkout


def get_webhook_receiver() -> "WebhookReceiver":
    return get_container().webhooks


def get_payment_verifier() -> "PaymentVerifier":
    return get_container().verifier


def get_otp_service() -> "IOtpService":
    """FastAPI dependency for OTP service."""
    return get_container().otp
