"""
Stripe webhook receiver.

Verifies the signature, parses the event into a PaymentEvent, resolves
the paid price through the catalog and hands the result to the
LedgerApplier. Stripe delivers at least once, so every branch here must
be safe to run again for the same event.

Errors propagate to the route, which maps them to status codes: terminal
errors (bad signature, malformed event, unmapped price) become 4xx,
retryable ones (ProviderUnavailableError, PersistenceError) become 503
so Stripe retries.
"""

import logging
from typing import Optional

from .applier import LedgerApplier
from .catalog import PriceCatalog
from .events import parse_event
from .interfaces import IPaymentProvider
from .models import (
    ApplyOutcome,
    CheckoutCompletedEvent,
    IgnoredEvent,
    SubscriptionCancelledEvent,
    WebhookResult,
)

logger = logging.getLogger(__name__)


class WebhookReceiver:
    """Handles Stripe webhook deliveries."""

    def __init__(
        self,
        provider: IPaymentProvider,
        catalog: PriceCatalog,
        applier: LedgerApplier,
    ):
        self._provider = provider
        self._catalog = catalog
        self._applier = applier

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        """
        Process one webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature_header: Value of the Stripe-Signature header

        Returns:
            WebhookResult describing what was done

        Raises:
            SignatureInvalidError: Signature missing or wrong
            MalformedEventError: Known event type with an unexpected shape
            UnmappedPriceError: Paid price is not in the catalog
            UserNotFoundError: Payer reference has no profile
            ProviderUnavailableError, PersistenceError: Transient, retryable
        """
        envelope = self._provider.construct_event(raw_body, signature_header)
        event = parse_event(envelope)
        event_type = envelope["type"]

        if isinstance(event, IgnoredEvent):
            logger.debug("Ignoring webhook event %s (%s)", event.event_id, event_type)
            return WebhookResult(
                event_id=event.event_id,
                event_type=event_type,
                outcome=ApplyOutcome.IGNORED,
            )

        if isinstance(event, SubscriptionCancelledEvent):
            return await self._handle_cancellation(event, event_type)

        return await self._handle_checkout(event, event_type)

    async def _handle_checkout(
        self,
        event: CheckoutCompletedEvent,
        event_type: str,
    ) -> WebhookResult:
        if event.payment_status != "paid":
            logger.info(
                "Checkout session %s completed with payment_status=%s, waiting for payment",
                event.session_id,
                event.payment_status,
            )
            return WebhookResult(
                event_id=event.event_id,
                event_type=event_type,
                outcome=ApplyOutcome.IGNORED,
                message=f"payment_status is {event.payment_status}",
            )

        price_id, quantity = event.price_id, event.quantity
        if price_id is None:
            price_id, quantity = await self._provider.get_line_item(event.session_id)

        purchase = self._catalog.resolve(price_id, quantity, session_id=event.session_id)

        if event.payer_reference:
            result = await self._applier.apply(
                event.session_id, event.payer_reference, purchase, event.subscription_id
            )
        else:
            logger.warning("Checkout session %s has no client reference", event.session_id)
            result = await self._applier.defer(
                event.session_id, purchase, event.customer_email, event.subscription_id
            )

        logger.info(
            "Webhook %s for session %s: %s",
            event.event_id,
            event.session_id,
            result.outcome.value,
        )
        return WebhookResult(
            event_id=event.event_id,
            event_type=event_type,
            outcome=result.outcome,
        )

    async def _handle_cancellation(
        self,
        event: SubscriptionCancelledEvent,
        event_type: str,
    ) -> WebhookResult:
        if not event.payer_reference:
            logger.warning(
                "Subscription %s cancelled without a user_id in its metadata",
                event.subscription_id,
            )
            return WebhookResult(
                event_id=event.event_id,
                event_type=event_type,
                outcome=ApplyOutcome.IGNORED,
                message="subscription has no user reference",
            )

        result = await self._applier.cancel_membership(
            event.payer_reference, event.subscription_id
        )
        return WebhookResult(
            event_id=event.event_id,
            event_type=event_type,
            outcome=result.outcome,
        )
