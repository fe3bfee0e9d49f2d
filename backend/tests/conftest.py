"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import MagicMock

import jwt  # PyJWT
import pytest

from api.dependencies import reset_container
from modules.auth.service import reset_auth_service
from modules.billing.applier import LedgerApplier
from modules.billing.catalog import PriceCatalog
from modules.billing.exceptions import SessionNotFoundError
from modules.billing.models import CheckoutSession, CustomCreditPrice, ProviderSession
from modules.billing.provider import StripePaymentProvider
from modules.billing.repository import InMemoryLedgerRepository


# Test secrets (only for testing)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"
TEST_WEBHOOK_SECRET = "whsec_test_secret"
CUSTOM_PRICE_ID = "price_custom_credit"


def create_test_token(
    user_id: str = "test-user-123",
    email: Optional[str] = "test@example.com",
    expired: bool = False,
    email_verified: bool = True,
    role: Optional[str] = None,
    secret: str = TEST_JWT_SECRET,
) -> str:
    """
    Create a test JWT token for authentication.

    Args:
        user_id: User ID to include in the token
        email: Email to include in the token
        expired: If True, creates an expired token
        email_verified: Whether the email should be marked as verified
        role: Application role written to app_metadata
        secret: Signing secret

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload = {
        "sub": user_id,
        "email": email,
        "email_confirmed_at": now.isoformat() if email_verified else None,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(exp.timestamp()),
        "iat": int(now.timestamp()),
        "app_metadata": {"role": role} if role else {},
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}"
    signature = hmac.new(secret.encode(), signed.encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(
    session_id: str = "cs_test_1",
    event_id: str = "evt_1",
    price_id: Optional[str] = "price_credits_standard",
    quantity: int = 1,
    client_reference_id: Optional[str] = "user-1",
    customer_email: Optional[str] = "buyer@example.com",
    payment_status: str = "paid",
    subscription_id: Optional[str] = None,
) -> dict[str, Any]:
    """A checkout.session.completed envelope as Stripe sends it."""
    session: dict[str, Any] = {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription" if subscription_id else "payment",
        "status": "complete",
        "payment_status": payment_status,
        "client_reference_id": client_reference_id,
        "customer_email": customer_email,
        "metadata": {},
        "subscription": subscription_id,
    }
    if price_id is not None:
        session["line_items"] = {
            "object": "list",
            "data": [{"price": {"id": price_id}, "quantity": quantity}],
        }
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": session},
    }


class FakePaymentProvider:
    """
    IPaymentProvider backed by dicts.

    Signature checks are delegated to the real StripePaymentProvider so
    webhook tests exercise Stripe's verification.
    """

    def __init__(self, webhook_secret: str = TEST_WEBHOOK_SECRET):
        self.sessions: dict[str, ProviderSession] = {}
        self.created: list[dict[str, Any]] = []
        self.idempotency_keys: list[Optional[str]] = []
        self._by_idempotency_key: dict[str, CheckoutSession] = {}
        self.line_item_calls: list[str] = []
        self._stripe = StripePaymentProvider(
            api_key="sk_test_fake",
            webhook_secret=webhook_secret,
            client=MagicMock(),
        )

    def add_session(self, session_id: str, **fields: Any) -> ProviderSession:
        defaults: dict[str, Any] = {
            "status": "complete",
            "payment_status": "paid",
            "mode": "payment",
            "price_id": "price_credits_standard",
            "quantity": 1,
        }
        defaults.update(fields)
        session = ProviderSession(id=session_id, **defaults)
        self.sessions[session_id] = session
        return session

    async def create_checkout_session(
        self,
        params: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        self.idempotency_keys.append(idempotency_key)
        if idempotency_key in self._by_idempotency_key:
            return self._by_idempotency_key[idempotency_key]
        self.created.append(params)
        session_id = f"cs_test_{len(self.created)}"
        session = CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.stripe.com/c/pay/{session_id}",
        )
        if idempotency_key:
            self._by_idempotency_key[idempotency_key] = session
        return session

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        if session_id not in self.sessions:
            raise SessionNotFoundError(session_id)
        return self.sessions[session_id]

    async def get_line_item(self, session_id: str) -> tuple[Optional[str], int]:
        self.line_item_calls.append(session_id)
        session = await self.retrieve_session(session_id)
        return session.price_id, session.quantity

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        return self._stripe.construct_event(payload, signature)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the auth service and service container before and after each test."""
    reset_auth_service()
    reset_container()
    yield
    reset_auth_service()
    reset_container()


@pytest.fixture
def test_user_id() -> str:
    """Provide a consistent test user ID."""
    return "test-user-123"


@pytest.fixture
def test_user_email() -> str:
    """Provide a consistent test user email."""
    return "test@example.com"


@pytest.fixture
def make_token():
    """The token factory, for tests that need non-default claims."""
    return create_test_token


@pytest.fixture
def auth_token(test_user_id: str, test_user_email: str) -> str:
    """Create a valid auth token for testing."""
    return create_test_token(user_id=test_user_id, email=test_user_email)


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    """Create authorization headers with a valid token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    token = create_test_token(user_id="admin-1", email="admin@example.com", role="admin")
    return {"Authorization": f"Bearer {token}"}


# --- Billing ---------------------------------------------------------------


@pytest.fixture
def catalog() -> PriceCatalog:
    """Default packages and tiers plus a $1.00 per-credit custom price."""
    return PriceCatalog(
        custom_price=CustomCreditPrice(
            stripe_price_id=CUSTOM_PRICE_ID,
            unit_price=Decimal("1.00"),
        )
    )


@pytest.fixture
def ledger() -> InMemoryLedgerRepository:
    """In-memory ledger that knows user-1, user-2 and the default test user."""
    return InMemoryLedgerRepository(known_users=["user-1", "user-2", "test-user-123"])


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def applier(ledger, fixed_now) -> LedgerApplier:
    return LedgerApplier(ledger, clock=lambda: fixed_now)


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def stripe_signature():
    """The Stripe-Signature header builder."""
    return sign_payload


@pytest.fixture
def signed_event():
    """Serialize an envelope and sign it like Stripe does."""

    def _signed(envelope: dict[str, Any], secret: str = TEST_WEBHOOK_SECRET) -> tuple[bytes, str]:
        payload = json.dumps(envelope).encode()
        return payload, sign_payload(payload, secret)

    return _signed


@pytest.fixture
def completed_event():
    """Factory for checkout.session.completed envelopes."""
    return checkout_completed_event
