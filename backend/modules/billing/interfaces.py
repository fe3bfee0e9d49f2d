"""
Billing module interfaces.

Other modules should depend on IBillingService, not the concrete
implementation. This lets a class-booking flow check, deduct and refund
credits without knowing about Stripe.

IPaymentProvider and ILedgerRepository are the two seams the billing
components are built around: the provider is the only code that talks
to Stripe, the repository the only code that touches ledger storage.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from shared.models import AuthenticatedUser

from .models import (
    ApplyResult,
    CheckoutSession,
    CreditBalance,
    LedgerTransaction,
    Membership,
    PendingCreditClaim,
    ProviderSession,
    TransactionType,
)


@runtime_checkable
class IBillingService(Protocol):
    """
    Interface for credit and membership operations.

    This protocol defines the contract that the billing module exposes
    to other modules.
    """

    async def get_balance(self, user_id: str) -> CreditBalance:
        """
        Get a user's current credit balance.

        The balance is derived from the ledger, never stored.

        Args:
            user_id: Supabase user ID (UUID)

        Returns:
            CreditBalance with balance and active membership
        """
        ...

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> LedgerTransaction:
        """
        Deduct credits from a user's balance.

        Args:
            user_id: Supabase user ID
            amount: Credits to deduct (must be positive)
            reason: Human-readable reason for the deduction
            reference_id: Optional reference (e.g., booking ID)

        Returns:
            The ``usage`` transaction

        Raises:
            InsufficientCreditsError: If user doesn't have enough credits
            InvalidAmountError: If amount is not positive
        """
        ...

    async def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: str,
    ) -> LedgerTransaction:
        """
        Return credits for a cancelled booking.

        Idempotent per reference_id: a second refund for the same booking
        returns the first refund's transaction.
        """
        ...

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        granted_by: str,
        transaction_type: TransactionType = TransactionType.ADMIN,
    ) -> LedgerTransaction:
        """Add credits on behalf of an administrator."""
        ...

    async def get_transaction_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerTransaction]:
        """
        Get a user's credit transaction history.

        Returns:
            List of transactions, most recent first
        """
        ...

    async def get_membership(self, user_id: str) -> Optional[Membership]:
        """Get the user's active membership, if any."""
        ...

    async def redeem_claim(self, session_id: str, user: AuthenticatedUser) -> ApplyResult:
        """
        Attach a paid but unattributed checkout session to a user.

        Raises:
            ClaimNotFoundError: No pending claim exists for the session
            ClaimAlreadyRedeemedError: Another user already redeemed it
            ClaimEmailMismatchError: The checkout email belongs to someone else
        """
        ...


@runtime_checkable
class IPaymentProvider(Protocol):
    """
    Interface for the payment provider (Stripe).

    Implementations translate provider failures into
    ProviderUnavailableError (transient) or ProviderRequestError.
    """

    async def create_checkout_session(
        self,
        params: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        """Create a hosted checkout session from Stripe session params."""
        ...

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        """
        Fetch a checkout session and its first line item.

        Raises:
            SessionNotFoundError: If Stripe doesn't know the session
        """
        ...

    async def get_line_item(self, session_id: str) -> tuple[Optional[str], int]:
        """Return (price_id, quantity) of the session's first line item."""
        ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """
        Verify a webhook signature and decode the event envelope.

        Raises:
            SignatureInvalidError: If the signature is missing or wrong
        """
        ...


@runtime_checkable
class ILedgerRepository(Protocol):
    """
    Persistence for ledger transactions, memberships and pending claims.

    Every method that takes an idempotency key must check and write in a
    single atomic operation; callers never hold locks.
    """

    async def user_exists(self, user_id: str) -> bool:
        ...

    async def record_purchase(
        self,
        user_id: str,
        amount: int,
        description: str,
        payment_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        """
        Insert a ``purchase`` row unless one exists for payment_id.

        Returns:
            (transaction, created). When created is False the transaction
            is the row written by the earlier call.
        """
        ...

    async def apply_membership(
        self,
        payment_id: str,
        user_id: str,
        tier: str,
        start_date: datetime,
        expiry_date: datetime,
        subscription_id: Optional[str] = None,
    ) -> tuple[Membership, bool]:
        """
        Record payment_id and create or update the active membership.

        Returns:
            (membership, created). created is False when payment_id was
            already applied; the membership is then the current one.
        """
        ...

    async def deactivate_membership(
        self,
        user_id: str,
        subscription_id: str,
    ) -> Optional[Membership]:
        """
        Deactivate the active membership paid by subscription_id.

        A membership with no recorded subscription matches any. Returns
        None if no matching membership was active.
        """
        ...

    async def get_active_membership(self, user_id: str) -> Optional[Membership]:
        ...

    async def get_payment_owner(self, payment_id: str) -> Optional[str]:
        """User a payment was applied to, or None if it was never applied."""
        ...

    async def get_balance(self, user_id: str) -> int:
        """Sum of the user's transaction amounts."""
        ...

    async def list_transactions(
        self,
        user_id: str,
        limit: int,
        offset: int,
    ) -> list[LedgerTransaction]:
        ...

    async def deduct(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: Optional[str],
    ) -> LedgerTransaction:
        """
        Insert a ``usage`` row if the balance covers it.

        Raises:
            InsufficientCreditsError: If the balance is too low
        """
        ...

    async def record_refund(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        """Insert a ``refund`` row unless one exists for reference_id."""
        ...

    async def insert_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        ...

    async def save_claim(self, claim: PendingCreditClaim) -> tuple[PendingCreditClaim, bool]:
        """Insert a claim unless one exists for its session id."""
        ...

    async def get_claim(self, session_id: str) -> Optional[PendingCreditClaim]:
        ...

    async def mark_claim_redeemed(self, session_id: str, user_id: str) -> PendingCreditClaim:
        """
        Set redeemed_by if the claim is unredeemed or already this user's.

        Raises:
            ClaimNotFoundError: If no claim exists
            ClaimAlreadyRedeemedError: If another user redeemed it
        """
        ...
