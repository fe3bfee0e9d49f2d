"""
Billing API endpoints.

Checkout creation, payment verification, balance and history, claim
redemption, admin grants, and the Stripe webhook.

Domain errors raised here are turned into JSON responses by the
handlers registered in api/errors.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from api.dependencies import (
    get_billing_service,
    get_checkout_initiator,
    get_payment_verifier,
    get_price_catalog,
    get_webhook_receiver,
)
from api.middleware.auth import get_current_user, get_optional_user, require_admin
from api.models import error_responses
from shared.config import Settings, get_settings
from shared.models import AuthenticatedUser

from .catalog import PriceCatalog
from .checkout import CheckoutInitiator, intent_from_request
from .interfaces import IBillingService
from .models import (
    ApplyResult,
    CatalogResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    CreditBalance,
    GrantCreditsRequest,
    LedgerTransaction,
    Membership,
    TransactionListResponse,
    VerificationResult,
    VerifyPaymentRequest,
)
from .verification import PaymentVerifier
from .webhooks import WebhookReceiver

logger = logging.getLogger(__name__)

router = APIRouter()
webhook_router = APIRouter()


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    catalog: PriceCatalog = Depends(get_price_catalog),
) -> CatalogResponse:
    """List credit packages and membership tiers."""
    custom = catalog.custom_price
    return CatalogResponse(
        credit_packages=catalog.packages,
        membership_tiers=catalog.tiers,
        custom_credit_unit_price=custom.unit_price if custom else None,
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    response_model_by_alias=True,
    responses=error_responses(400, 503),
)
async def create_checkout(
    request: CreateCheckoutRequest,
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    initiator: CheckoutInitiator = Depends(get_checkout_initiator),
    catalog: PriceCatalog = Depends(get_price_catalog),
    settings: Settings = Depends(get_settings),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> CheckoutResponse:
    """
    Start a Stripe Checkout session.

    Works for guests too; a signed-in user's ID is attached to the
    session so the payment can be credited automatically. Resubmitting
    the same body with the same ``Idempotency-Key`` header returns the
    session created by the first request.
    """
    intent = intent_from_request(request, catalog, currency=settings.currency)
    session = await initiator.create_checkout_session(
        intent, user=user, request_key=idempotency_key
    )
    return CheckoutResponse(url=session.url, session_id=session.session_id)


@router.post("/verify", response_model=VerificationResult, responses=error_responses(400, 404, 503))
async def verify_payment(
    request: VerifyPaymentRequest,
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
) -> VerificationResult:
    """
    Confirm a checkout session when the browser returns from Stripe.

    Safe to call repeatedly (page reloads).
    """
    return await verifier.verify(request.session_id, user)


@router.get("/balance", response_model=CreditBalance)
async def get_balance(
    user: AuthenticatedUser = Depends(get_current_user),
    service: IBillingService = Depends(get_billing_service),
) -> CreditBalance:
    return await service.get_balance(user.id)


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Rows to skip"),
    user: AuthenticatedUser = Depends(get_current_user),
    service: IBillingService = Depends(get_billing_service),
) -> TransactionListResponse:
    """Credit history, most recent first."""
    # One extra row tells us whether another page exists.
    rows = await service.get_transaction_history(user.id, limit=limit + 1, offset=offset)
    return TransactionListResponse(transactions=rows[:limit], has_more=len(rows) > limit)


@router.get("/membership", response_model=Optional[Membership])
async def get_membership(
    user: AuthenticatedUser = Depends(get_current_user),
    service: IBillingService = Depends(get_billing_service),
) -> Optional[Membership]:
    return await service.get_membership(user.id)


@router.post("/claims/{session_id}/redeem", response_model=ApplyResult)
async def redeem_claim(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: IBillingService = Depends(get_billing_service),
) -> ApplyResult:
    """Attach a purchase made while signed out to the current account."""
    return await service.redeem_claim(session_id, user)


@router.post("/admin/grants", response_model=LedgerTransaction, status_code=201)
async def grant_credits(
    request: GrantCreditsRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    service: IBillingService = Depends(get_billing_service),
) -> LedgerTransaction:
    return await service.grant_credits(
        request.user_id,
        request.amount,
        request.reason,
        granted_by=admin.id,
        transaction_type=request.type,
    )


async def _receive_webhook(
    request: Request,
    signature: Optional[str],
    receiver: WebhookReceiver,
) -> dict:
    payload = await request.body()
    result = await receiver.handle(payload, signature)
    return {"received": True, "outcome": result.outcome.value, "event_id": result.event_id}


@webhook_router.post("/webhook", responses=error_responses(400, 404, 503))
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
) -> dict:
    """
    Stripe webhook endpoint.

    Authenticated only by the Stripe-Signature header. Responds 200 once
    the event is applied or recognised as a duplicate.
    """
    return await _receive_webhook(request, stripe_signature, receiver)


@router.post("/webhook", include_in_schema=False)
async def billing_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
) -> dict:
    return await _receive_webhook(request, stripe_signature, receiver)
