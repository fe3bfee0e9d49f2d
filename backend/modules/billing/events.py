"""
Parsing of Stripe webhook envelopes into PaymentEvent variants.

Only the event types the ledger acts on are parsed field by field; every
other type becomes an IgnoredEvent. A known type whose payload lacks a
field we rely on is rejected with MalformedEventError instead of being
half-processed.
"""

from typing import Any, Mapping, Optional

from .exceptions import MalformedEventError
from .models import (
    CheckoutCompletedEvent,
    IgnoredEvent,
    PaymentEvent,
    SubscriptionCancelledEvent,
)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def _require(obj: Mapping[str, Any], key: str, event_type: str) -> Any:
    value = obj.get(key)
    if value is None or value == "":
        raise MalformedEventError(event_type, f"missing {key}")
    return value


def _data_object(envelope: Mapping[str, Any], event_type: str) -> Mapping[str, Any]:
    data = envelope.get("data")
    if not isinstance(data, Mapping) or not isinstance(data.get("object"), Mapping):
        raise MalformedEventError(event_type, "missing data.object")
    return data["object"]


def _first_line_item(session: Mapping[str, Any]) -> tuple[Optional[str], int]:
    """Price and quantity from an expanded ``line_items`` list, if present."""
    line_items = session.get("line_items")
    if not isinstance(line_items, Mapping):
        return None, 1
    items = line_items.get("data") or []
    if not items:
        return None, 1
    item = items[0]
    price = item.get("price") or {}
    price_id = price.get("id") if isinstance(price, Mapping) else price
    return price_id, int(item.get("quantity") or 1)


def _subscription_id(session: Mapping[str, Any]) -> Optional[str]:
    subscription = session.get("subscription")
    if isinstance(subscription, Mapping):
        return subscription.get("id")
    return subscription or None


def _customer_email(session: Mapping[str, Any]) -> Optional[str]:
    if session.get("customer_email"):
        return session["customer_email"]
    details = session.get("customer_details")
    if isinstance(details, Mapping):
        return details.get("email")
    return None


def parse_event(envelope: Mapping[str, Any]) -> PaymentEvent:
    """
    Turn a verified Stripe event envelope into a PaymentEvent.

    Args:
        envelope: Decoded JSON body of the webhook request

    Returns:
        CheckoutCompletedEvent, SubscriptionCancelledEvent or IgnoredEvent

    Raises:
        MalformedEventError: If the envelope or a known event lacks required fields
    """
    event_type = envelope.get("type")
    event_id = envelope.get("id")
    if not event_type or not event_id:
        raise MalformedEventError(str(event_type or "unknown"), "missing id or type")

    if event_type == CHECKOUT_COMPLETED:
        session = _data_object(envelope, event_type)
        price_id, quantity = _first_line_item(session)
        return CheckoutCompletedEvent(
            event_id=event_id,
            session_id=_require(session, "id", event_type),
            price_id=price_id,
            quantity=quantity,
            payer_reference=session.get("client_reference_id") or None,
            customer_email=_customer_email(session),
            payment_status=_require(session, "payment_status", event_type),
            mode=session.get("mode"),
            subscription_id=_subscription_id(session),
        )

    if event_type == SUBSCRIPTION_DELETED:
        subscription = _data_object(envelope, event_type)
        metadata = subscription.get("metadata") or {}
        return SubscriptionCancelledEvent(
            event_id=event_id,
            subscription_id=_require(subscription, "id", event_type),
            payer_reference=metadata.get("user_id") or None,
        )

    return IgnoredEvent(event_id=event_id, event_type=event_type)
