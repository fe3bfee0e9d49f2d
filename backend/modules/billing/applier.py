"""
Ledger applier.

The only code that turns a confirmed payment into a credit or membership
mutation. The webhook receiver, the client-side verifier and claim
redemption all go through ``LedgerApplier.apply`` with the checkout
session ID as the idempotency key, so whichever path runs first applies
the payment and every later call reports ALREADY_APPLIED.

A pending claim and an applied payment for the same session can be
written by different paths in either order. ``apply`` settles a claim it
finds after writing, and ``defer`` looks for an owner after saving its
claim, so whichever of the two runs second marks the claim redeemed.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from dateutil.relativedelta import relativedelta

from .exceptions import UserNotFoundError
from .interfaces import ILedgerRepository
from .models import (
    ApplyOutcome,
    ApplyResult,
    PendingCreditClaim,
    PurchaseKind,
    ResolvedPurchase,
)

logger = logging.getLogger(__name__)


def membership_expiry(start_date: datetime, duration_months: int) -> datetime:
    """Calendar-month expiry: Jan 31 + 1 month is Feb 28/29."""
    return start_date + relativedelta(months=duration_months)


class LedgerApplier:
    """Applies resolved purchases to the ledger exactly once per payment."""

    def __init__(
        self,
        repository: ILedgerRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def apply(
        self,
        payment_id: str,
        user_id: str,
        purchase: ResolvedPurchase,
        subscription_id: Optional[str] = None,
    ) -> ApplyResult:
        """
        Apply a paid purchase for a user.

        Args:
            payment_id: Checkout session ID (idempotency key)
            user_id: User to credit
            purchase: Catalog resolution of the paid line item
            subscription_id: Stripe subscription behind a membership payment

        Returns:
            ApplyResult with APPLIED or ALREADY_APPLIED

        Raises:
            UserNotFoundError: If the user has no profile
            PersistenceError: On a storage failure (retryable)
        """
        if not await self._repository.user_exists(user_id):
            raise UserNotFoundError(user_id)

        if purchase.kind is PurchaseKind.MEMBERSHIP_TIER:
            result = await self._apply_membership(payment_id, user_id, purchase, subscription_id)
        else:
            result = await self._apply_credits(payment_id, user_id, purchase)

        await self._settle_claim(payment_id, result.user_id or user_id)
        return result

    async def _apply_credits(
        self,
        payment_id: str,
        user_id: str,
        purchase: ResolvedPurchase,
    ) -> ApplyResult:
        if purchase.kind is PurchaseKind.CUSTOM_CREDIT_AMOUNT:
            description = f"Purchased {purchase.credits} credits"
        else:
            description = f"Purchased {purchase.item_id} package ({purchase.credits} credits)"

        transaction, created = await self._repository.record_purchase(
            user_id=user_id,
            amount=purchase.credits,
            description=description,
            payment_id=payment_id,
        )
        outcome = ApplyOutcome.APPLIED if created else ApplyOutcome.ALREADY_APPLIED
        logger.info(
            "Credit purchase %s for user %s: %s (%d credits)",
            payment_id, transaction.user_id, outcome.value, purchase.credits,
        )
        return ApplyResult(
            outcome=outcome,
            payment_id=payment_id,
            user_id=transaction.user_id,
            transaction=transaction,
        )

    async def _apply_membership(
        self,
        payment_id: str,
        user_id: str,
        purchase: ResolvedPurchase,
        subscription_id: Optional[str],
    ) -> ApplyResult:
        start_date = self._clock()
        expiry_date = membership_expiry(start_date, purchase.duration_months or 1)

        membership, created = await self._repository.apply_membership(
            payment_id=payment_id,
            user_id=user_id,
            tier=purchase.tier or purchase.item_id,
            start_date=start_date,
            expiry_date=expiry_date,
            subscription_id=subscription_id,
        )
        outcome = ApplyOutcome.APPLIED if created else ApplyOutcome.ALREADY_APPLIED
        logger.info(
            "Membership payment %s for user %s: %s (%s until %s)",
            payment_id, membership.user_id, outcome.value, membership.tier, membership.expiry_date,
        )
        return ApplyResult(
            outcome=outcome,
            payment_id=payment_id,
            user_id=membership.user_id,
            membership=membership,
        )

    async def _settle_claim(self, payment_id: str, owner: str) -> None:
        claim = await self._repository.get_claim(payment_id)
        if claim is None or claim.is_redeemed:
            return
        await self._repository.mark_claim_redeemed(payment_id, owner)
        logger.info("Pending claim %s settled for user %s", payment_id, owner)

    async def defer(
        self,
        payment_id: str,
        purchase: ResolvedPurchase,
        customer_email: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> ApplyResult:
        """
        Record a paid purchase that has no user to credit yet.

        The claim is keyed by the session ID; redeeming it later goes
        through apply() with the same key. If the payment was already
        applied to someone the claim is marked redeemed by them and the
        result is ALREADY_APPLIED.
        """
        claim, created = await self._repository.save_claim(
            PendingCreditClaim(
                session_id=payment_id,
                kind=purchase.kind,
                item_id=purchase.item_id,
                credits=purchase.credits,
                tier=purchase.tier,
                duration_months=purchase.duration_months,
                customer_email=customer_email.lower() if customer_email else None,
                subscription_id=subscription_id,
                created_at=self._clock(),
            )
        )
        if claim.is_redeemed:
            logger.info("Payment %s already redeemed by user %s", payment_id, claim.redeemed_by)
            return ApplyResult(
                outcome=ApplyOutcome.ALREADY_APPLIED,
                payment_id=payment_id,
                user_id=claim.redeemed_by,
            )

        owner = await self._repository.get_payment_owner(payment_id)
        if owner is not None:
            await self._repository.mark_claim_redeemed(payment_id, owner)
            logger.info("Payment %s was already applied to user %s", payment_id, owner)
            return ApplyResult(
                outcome=ApplyOutcome.ALREADY_APPLIED,
                payment_id=payment_id,
                user_id=owner,
            )

        if created:
            logger.info("Recorded pending claim for unattributed payment %s", payment_id)
        return ApplyResult(outcome=ApplyOutcome.DEFERRED, payment_id=payment_id)

    async def cancel_membership(self, user_id: str, subscription_id: str) -> ApplyResult:
        """
        Deactivate the user's membership for a cancelled subscription.

        Only the membership paid by that subscription is touched. A user
        whose active membership belongs to another subscription, or who
        has none, is a no-op reported as ALREADY_APPLIED, so a redelivered
        or stale cancellation is harmless.
        """
        membership = await self._repository.deactivate_membership(user_id, subscription_id)
        if membership is None:
            logger.info(
                "No active membership for subscription %s of user %s",
                subscription_id, user_id,
            )
            return ApplyResult(outcome=ApplyOutcome.ALREADY_APPLIED, user_id=user_id)

        logger.info(
            "Cancelled %s membership for user %s (subscription %s)",
            membership.tier, user_id, subscription_id,
        )
        return ApplyResult(
            outcome=ApplyOutcome.APPLIED,
            user_id=user_id,
            membership=membership,
        )
