"""
Billing service implementation.

Credit balance, transaction history, class-booking debits and refunds,
admin grants, membership lookup and redemption of pending claims.
Payment application itself lives in LedgerApplier; this service reuses
it for claim redemption so the idempotency key stays the session ID.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from shared.models import AuthenticatedUser

from .applier import LedgerApplier
from .exceptions import (
    ClaimAlreadyRedeemedError,
    ClaimEmailMismatchError,
    ClaimNotFoundError,
    InvalidAmountError,
    UserNotFoundError,
)
from .interfaces import IBillingService, ILedgerRepository
from .models import (
    ApplyOutcome,
    ApplyResult,
    CreditBalance,
    LedgerTransaction,
    Membership,
    TransactionType,
)

logger = logging.getLogger(__name__)

MAX_HISTORY_PAGE = 200


class BillingService(IBillingService):
    """Billing operations over an ILedgerRepository."""

    def __init__(self, repository: ILedgerRepository, applier: LedgerApplier):
        self._repository = repository
        self._applier = applier

    async def get_balance(self, user_id: str) -> CreditBalance:
        """Get user's credit balance and active membership."""
        balance = await self._repository.get_balance(user_id)
        membership = await self._repository.get_active_membership(user_id)
        return CreditBalance(user_id=user_id, balance=balance, membership=membership)

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> LedgerTransaction:
        """Deduct credits from user's balance."""
        if amount <= 0:
            raise InvalidAmountError(amount, "Amount must be positive")

        transaction = await self._repository.deduct(user_id, amount, reason, reference_id)
        logger.info("Deducted %d credits from user %s (ref=%s)", amount, user_id, reference_id)
        return transaction

    async def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: str,
    ) -> LedgerTransaction:
        """Refund credits for a cancelled booking, once per reference_id."""
        if amount <= 0:
            raise InvalidAmountError(amount, "Amount must be positive")

        transaction, created = await self._repository.record_refund(
            user_id, amount, reason, reference_id
        )
        if created:
            logger.info("Refunded %d credits to user %s (ref=%s)", amount, user_id, reference_id)
        else:
            logger.info("Refund for %s already recorded", reference_id)
        return transaction

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        granted_by: str,
        transaction_type: TransactionType = TransactionType.ADMIN,
    ) -> LedgerTransaction:
        """Add credits on behalf of an administrator."""
        if amount <= 0:
            raise InvalidAmountError(amount, "Amount must be positive")
        if transaction_type not in (TransactionType.ADMIN, TransactionType.GIFT):
            raise InvalidAmountError(amount, f"Grants cannot be of type {transaction_type.value}")
        if not await self._repository.user_exists(user_id):
            raise UserNotFoundError(user_id)

        transaction = await self._repository.insert_transaction(
            LedgerTransaction(
                id=str(uuid.uuid4()),
                user_id=user_id,
                amount=amount,
                type=transaction_type,
                description=reason,
                occurred_at=datetime.now(timezone.utc),
            )
        )
        logger.info("User %s granted %d credits to user %s", granted_by, amount, user_id)
        return transaction

    async def get_transaction_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerTransaction]:
        """Get user's transaction history."""
        limit = max(1, min(limit, MAX_HISTORY_PAGE))
        return await self._repository.list_transactions(user_id, limit, max(offset, 0))

    async def get_membership(self, user_id: str) -> Optional[Membership]:
        return await self._repository.get_active_membership(user_id)

    async def redeem_claim(self, session_id: str, user: AuthenticatedUser) -> ApplyResult:
        """Apply a pending claim to the signed-in user."""
        claim = await self._repository.get_claim(session_id)
        if claim is None:
            raise ClaimNotFoundError(session_id)
        if claim.redeemed_by and claim.redeemed_by != user.id:
            raise ClaimAlreadyRedeemedError(session_id)
        if claim.customer_email and (user.email or "").lower() != claim.customer_email.lower():
            raise ClaimEmailMismatchError(session_id)

        result = await self._applier.apply(
            session_id, user.id, claim.to_purchase(), claim.subscription_id
        )

        if result.outcome is ApplyOutcome.ALREADY_APPLIED:
            owner = None
            if result.transaction is not None:
                owner = result.transaction.user_id
            elif result.membership is not None:
                owner = result.membership.user_id
            if owner is not None and owner != user.id:
                raise ClaimAlreadyRedeemedError(session_id)

        await self._repository.mark_claim_redeemed(session_id, user.id)
        logger.info("Claim %s redeemed by user %s: %s", session_id, user.id, result.outcome.value)
        return result
