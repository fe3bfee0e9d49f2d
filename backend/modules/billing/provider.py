"""
Stripe payment provider.

Provides integration with Stripe using the StripeClient pattern. This is
the only module that imports ``stripe``; everything else sees
IPaymentProvider and our own exceptions.

StripeClient is synchronous, so each call runs in a worker thread with a
bounded HTTP timeout.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import stripe
from stripe import StripeClient

from .exceptions import (
    ProviderRequestError,
    ProviderUnavailableError,
    SessionNotFoundError,
    SignatureInvalidError,
)
from .models import CheckoutSession, ProviderSession

logger = logging.getLogger(__name__)


def _translate(operation: str, error: stripe.StripeError) -> Exception:
    """Map a Stripe error to a retryable or terminal billing error."""
    if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError)):
        return ProviderUnavailableError(operation, str(error))
    status = getattr(error, "http_status", None)
    if isinstance(error, stripe.APIError) or (status is not None and status >= 500):
        return ProviderUnavailableError(operation, str(error))
    return ProviderRequestError(operation, str(error))


class StripePaymentProvider:
    """
    Payment provider backed by the Stripe API.

    Usage:
        provider = StripePaymentProvider(api_key="sk_test_...", webhook_secret="whsec_...")
        session = await provider.create_checkout_session(params)
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout_seconds: float = 15.0,
        max_network_retries: int = 2,
        client: Optional[StripeClient] = None,
    ):
        self._webhook_secret = webhook_secret
        self._client = client or StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
            max_network_retries=max_network_retries,
        )

    async def create_checkout_session(
        self,
        params: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        options: dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        try:
            session = await asyncio.to_thread(
                self._client.checkout.sessions.create,
                params=params,
                options=options,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout session creation failed: %s", e)
            raise _translate("create_checkout_session", e) from e

        logger.info("Created checkout session %s (mode=%s)", session.id, params.get("mode"))
        return CheckoutSession(session_id=session.id, url=session.url)

    async def get_line_item(self, session_id: str) -> tuple[Optional[str], int]:
        try:
            items = await asyncio.to_thread(
                self._client.checkout.sessions.line_items.list,
                session_id,
                params={"limit": 1},
            )
        except stripe.InvalidRequestError as e:
            if getattr(e, "http_status", None) == 404:
                raise SessionNotFoundError(session_id) from e
            raise _translate("list_line_items", e) from e
        except stripe.StripeError as e:
            logger.error("Stripe line item lookup failed for %s: %s", session_id, e)
            raise _translate("list_line_items", e) from e

        if not items.data:
            return None, 1
        item = items.data[0]
        price_id = item.price.id if item.price else None
        return price_id, item.quantity or 1

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        try:
            session = await asyncio.to_thread(
                self._client.checkout.sessions.retrieve,
                session_id,
            )
        except stripe.InvalidRequestError as e:
            if getattr(e, "http_status", None) == 404:
                raise SessionNotFoundError(session_id) from e
            raise _translate("retrieve_session", e) from e
        except stripe.StripeError as e:
            logger.error("Stripe session retrieval failed for %s: %s", session_id, e)
            raise _translate("retrieve_session", e) from e

        price_id, quantity = await self.get_line_item(session_id)
        subscription = session.subscription
        subscription_id = subscription if isinstance(subscription, str) else getattr(subscription, "id", None)
        customer_email = session.customer_email
        if not customer_email and session.customer_details:
            customer_email = session.customer_details.email

        return ProviderSession(
            id=session.id,
            status=session.status,
            payment_status=session.payment_status,
            mode=session.mode,
            client_reference_id=session.client_reference_id,
            customer_email=customer_email,
            price_id=price_id,
            quantity=quantity,
            subscription_id=subscription_id,
            metadata=dict(session.metadata or {}),
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        if not signature:
            logger.warning("Webhook request missing Stripe-Signature header")
            raise SignatureInvalidError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise SignatureInvalidError() from e
        except ValueError as e:
            logger.warning("Webhook payload is not valid JSON: %s", e)
            raise SignatureInvalidError("Invalid webhook payload") from e

        logger.info("Webhook signature verified for event: %s", event.id)
        return json.loads(payload)
