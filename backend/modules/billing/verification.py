"""
Client-side payment verification.

When the browser lands on the success page it posts the ``session_id``
back to us. We never trust the browser's view of the payment: the session
is re-fetched from Stripe and the amount comes from the catalog. For a
signed-in caller the resulting mutation is the same idempotent apply the
webhook performs, so it does not matter which of the two arrives first.
Anonymous callers never mutate the ledger.
"""

import logging
from typing import Optional

from shared.models import AuthenticatedUser

from .applier import LedgerApplier
from .catalog import PriceCatalog
from .interfaces import IPaymentProvider
from .models import (
    ApplyOutcome,
    ApplyResult,
    MembershipSummary,
    PurchaseKind,
    ResolvedPurchase,
    VerificationResult,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


class PaymentVerifier:
    """Verifies a returning checkout session and applies it if paid."""

    def __init__(
        self,
        provider: IPaymentProvider,
        catalog: PriceCatalog,
        applier: LedgerApplier,
    ):
        self._provider = provider
        self._catalog = catalog
        self._applier = applier

    async def verify(
        self,
        session_id: str,
        user: Optional[AuthenticatedUser] = None,
    ) -> VerificationResult:
        """
        Verify a checkout session.

        Only a signed-in caller can trigger a ledger mutation. The session's
        own client reference decides who is credited; the caller is used
        only when the session was started as a guest. An anonymous caller
        gets the verified amount back and the mutation is left to the
        webhook, or to claim redemption when the session has no payer.

        Raises:
            SessionNotFoundError: Stripe doesn't know the session
            UnmappedPriceError: The paid price is not in the catalog
            ProviderUnavailableError, PersistenceError: Transient, retryable
        """
        session = await self._provider.retrieve_session(session_id)

        if not session.is_paid:
            if session.status == "open":
                return VerificationResult(
                    success=False,
                    verified=False,
                    status=VerificationStatus.PENDING,
                    message="Payment is still being processed",
                )
            return VerificationResult(
                success=False,
                verified=False,
                status=VerificationStatus.ERROR,
                message=f"Payment not completed (status: {session.status or 'unknown'})",
            )

        purchase = self._catalog.resolve(session.price_id, session.quantity, session_id=session_id)

        if user is None:
            if session.client_reference_id:
                logger.info("Session %s verified anonymously, left to the webhook", session_id)
                return self._build_result(purchase, ApplyResult(
                    outcome=ApplyOutcome.IGNORED,
                    payment_id=session_id,
                    user_id=session.client_reference_id,
                ))
            result = await self._applier.defer(
                session_id, purchase, session.customer_email, session.subscription_id
            )
            return self._build_result(purchase, result)

        payer = session.client_reference_id or user.id
        if payer != user.id:
            logger.warning(
                "Session %s belongs to user %s but was verified by user %s",
                session_id,
                payer,
                user.id,
            )

        result = await self._applier.apply(session_id, payer, purchase, session.subscription_id)
        return self._build_result(purchase, result)

    @staticmethod
    def _build_result(purchase: ResolvedPurchase, result: ApplyResult) -> VerificationResult:
        deferred = result.outcome is ApplyOutcome.DEFERRED
        if result.outcome is ApplyOutcome.IGNORED:
            return VerificationResult(
                success=True,
                verified=True,
                status=VerificationStatus.SUCCESS,
                credits=None if purchase.kind is PurchaseKind.MEMBERSHIP_TIER else purchase.credits,
                membership=(
                    MembershipSummary(tier=purchase.tier or purchase.item_id)
                    if purchase.kind is PurchaseKind.MEMBERSHIP_TIER
                    else None
                ),
                message="Payment verified. Your account will be updated shortly.",
            )

        if purchase.kind is PurchaseKind.MEMBERSHIP_TIER:
            summary = MembershipSummary(
                tier=purchase.tier or purchase.item_id,
                expiry_date=result.membership.expiry_date if result.membership else None,
            )
            message = (
                "Payment verified. Sign in to activate your membership."
                if deferred
                else "Membership activated successfully"
            )
            return VerificationResult(
                success=True,
                verified=True,
                status=VerificationStatus.SUCCESS,
                membership=summary,
                applied=result.mutated,
                claim_pending=deferred,
                message=message,
            )

        message = (
            f"Payment verified. Sign in to add {purchase.credits} credits to your account."
            if deferred
            else f"Payment verified. {purchase.credits} credits added to your account."
        )
        return VerificationResult(
            success=True,
            verified=True,
            status=VerificationStatus.SUCCESS,
            credits=purchase.credits,
            applied=result.mutated,
            claim_pending=deferred,
            message=message,
        )
