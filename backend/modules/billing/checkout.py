"""
Checkout initiation.

Validates a purchase intent against the catalog and creates a Stripe
Checkout session. Nothing is written locally: the intent travels in the
session metadata and the ledger is only touched once payment is
confirmed by the webhook or the verifier.
"""

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from shared.models import AuthenticatedUser

from .catalog import PriceCatalog
from .exceptions import InvalidIntentError, format_price
from .interfaces import IPaymentProvider
from .models import (
    CheckoutSession,
    CreateCheckoutRequest,
    PurchaseIntent,
    PurchaseKind,
    ReturnUrls,
)

logger = logging.getLogger(__name__)

CUSTOM_PACKAGE_ID = "custom"


def default_return_urls(frontend_url: str, kind: PurchaseKind) -> ReturnUrls:
    """Success and cancel pages of the web client for a purchase kind."""
    base = frontend_url.rstrip("/")
    page = "membership-success" if kind.is_membership else "payment-success"
    return ReturnUrls(
        success_url=f"{base}/{page}?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}/pricing",
    )


def intent_from_request(
    request: CreateCheckoutRequest,
    catalog: PriceCatalog,
    currency: str = "usd",
) -> PurchaseIntent:
    """
    Build a PurchaseIntent from the web client's checkout body.

    The client sends a total price; for custom amounts it is converted
    to a per-credit price so it can be compared with the catalog.
    """
    if request.tier_id or request.mode == "subscription":
        return PurchaseIntent(
            package_or_tier_id=request.tier_id or request.package_id or "",
            kind=PurchaseKind.MEMBERSHIP_TIER,
            unit_price=request.price,
            currency=currency,
        )

    if request.package_id in (None, "", CUSTOM_PACKAGE_ID):
        amount = request.credit_amount or 0
        if amount <= 0:
            raise InvalidIntentError("credit amount must be positive", item_id=CUSTOM_PACKAGE_ID)
        try:
            unit_price = request.price / amount
        except (InvalidOperation, ZeroDivisionError):
            raise InvalidIntentError("price is not a valid amount", item_id=CUSTOM_PACKAGE_ID)
        return PurchaseIntent(
            package_or_tier_id=CUSTOM_PACKAGE_ID,
            kind=PurchaseKind.CUSTOM_CREDIT_AMOUNT,
            quantity_or_amount=amount,
            unit_price=unit_price,
            currency=currency,
        )

    package = catalog.get_package(request.package_id)
    if request.credit_amount is not None and request.credit_amount != package.credits:
        raise InvalidIntentError(
            f"package {package.id} grants {package.credits} credits, not {request.credit_amount}",
            item_id=package.id,
        )
    return PurchaseIntent(
        package_or_tier_id=package.id,
        kind=PurchaseKind.CREDIT_PACKAGE,
        unit_price=request.price,
        currency=currency,
    )


def checkout_idempotency_key(params: dict[str, Any], request_key: Optional[str]) -> Optional[str]:
    if not request_key:
        return None
    body = json.dumps(params, sort_keys=True, default=str)
    digest = hashlib.sha256(f"{request_key}:{body}".encode()).hexdigest()
    return f"checkout-{digest}"


class CheckoutInitiator:
    """Creates Stripe Checkout sessions for catalog purchases."""

    def __init__(
        self,
        provider: IPaymentProvider,
        catalog: PriceCatalog,
        frontend_url: str,
    ):
        self._provider = provider
        self._catalog = catalog
        self._frontend_url = frontend_url

    def _check_price(self, intent: PurchaseIntent, expected: Decimal) -> None:
        if intent.unit_price.quantize(Decimal("0.01")) != expected.quantize(Decimal("0.01")):
            raise InvalidIntentError(
                f"price {format_price(intent.unit_price)} does not match "
                f"catalog price {format_price(expected)}",
                item_id=intent.package_or_tier_id,
            )

    def build_session_params(
        self,
        intent: PurchaseIntent,
        return_urls: ReturnUrls,
        user: Optional[AuthenticatedUser] = None,
    ) -> dict[str, Any]:
        """
        Validate the intent and produce Stripe ``checkout.sessions.create`` params.

        Raises:
            InvalidIntentError: If the intent is empty, non-positive, unknown
                to the catalog, or priced differently from the catalog
        """
        if not intent.package_or_tier_id:
            raise InvalidIntentError("package or tier id is required")
        if intent.quantity_or_amount <= 0:
            raise InvalidIntentError("quantity must be positive", item_id=intent.package_or_tier_id)
        if intent.unit_price <= 0:
            raise InvalidIntentError("price must be positive", item_id=intent.package_or_tier_id)

        metadata = {
            "package_id": intent.package_or_tier_id,
            "kind": intent.kind.value,
            "quantity": str(intent.quantity_or_amount),
        }

        if intent.kind is PurchaseKind.MEMBERSHIP_TIER:
            tier = self._catalog.get_tier(intent.package_or_tier_id)
            self._check_price(intent, tier.price)
            mode = "subscription"
            line_item = {"price": tier.stripe_price_id, "quantity": 1}
            metadata["type"] = "membership_purchase"
        elif intent.kind is PurchaseKind.CUSTOM_CREDIT_AMOUNT:
            custom = self._catalog.require_custom_price()
            if not custom.min_credits <= intent.quantity_or_amount <= custom.max_credits:
                raise InvalidIntentError(
                    f"credit amount must be between {custom.min_credits} and {custom.max_credits}",
                    item_id=intent.package_or_tier_id,
                )
            self._check_price(intent, custom.unit_price)
            mode = "payment"
            line_item = {"price": custom.stripe_price_id, "quantity": intent.quantity_or_amount}
            metadata["type"] = "credit_purchase"
            metadata["credit_amount"] = str(intent.quantity_or_amount)
        else:
            package = self._catalog.get_package(intent.package_or_tier_id)
            self._check_price(intent, package.price)
            mode = "payment"
            line_item = {"price": package.stripe_price_id, "quantity": 1}
            metadata["type"] = "credit_purchase"
            metadata["credit_amount"] = str(package.credits)

        params: dict[str, Any] = {
            "mode": mode,
            "line_items": [line_item],
            "success_url": return_urls.success_url,
            "cancel_url": return_urls.cancel_url,
            "metadata": metadata,
        }
        if user is not None:
            metadata["user_id"] = user.id
            params["client_reference_id"] = user.id
            if user.email:
                params["customer_email"] = user.email
            if mode == "subscription":
                params["subscription_data"] = {"metadata": {"user_id": user.id}}
        return params

    async def create_checkout_session(
        self,
        intent: PurchaseIntent,
        return_urls: Optional[ReturnUrls] = None,
        user: Optional[AuthenticatedUser] = None,
        request_key: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a hosted checkout session for the intent.

        When the client sends a ``request_key`` the Stripe idempotency key is
        derived from it and the session params, so a double submit gets the
        first session back and a reused key with a different body does not
        collide.

        Raises:
            InvalidIntentError: If the intent fails validation
            ProviderUnavailableError: On Stripe network failure or timeout
        """
        urls = return_urls or default_return_urls(self._frontend_url, intent.kind)
        params = self.build_session_params(intent, urls, user)
        session = await self._provider.create_checkout_session(
            params, idempotency_key=checkout_idempotency_key(params, request_key)
        )
        logger.info(
            "Checkout session %s created for %s %s (user=%s)",
            session.session_id,
            intent.kind.value,
            intent.package_or_tier_id,
            user.id if user else "guest",
        )
        return session
