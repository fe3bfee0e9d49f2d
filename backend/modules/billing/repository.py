"""
Ledger storage.

Two implementations of ILedgerRepository:
- InMemoryLedgerRepository: dict-backed, for tests and local development
- SupabaseLedgerRepository: Postgres via the Supabase client

In both, every idempotent write checks and inserts in one step. The
in-memory version does it without yielding to the event loop; the
Supabase version relies on unique constraints (``upsert`` with
``ignore_duplicates``) and on the Postgres functions in
``migrations/001_billing.sql``.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from supabase import Client

from shared.exceptions import PersistenceError
from shared.repository import BaseRepository

from .exceptions import (
    ClaimAlreadyRedeemedError,
    ClaimNotFoundError,
    InsufficientCreditsError,
)
from .models import (
    LedgerTransaction,
    Membership,
    PendingCreditClaim,
    TransactionType,
)

logger = logging.getLogger(__name__)


def refund_key(reference_id: str) -> str:
    """Idempotency key for the refund of one booking."""
    return f"refund:{reference_id}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryLedgerRepository:
    """
    In-memory ledger.

    If known_users is given, user_exists() only accepts those IDs;
    otherwise every user ID is accepted.
    """

    def __init__(self, known_users: Optional[Iterable[str]] = None):
        self._known_users = set(known_users) if known_users is not None else None
        self._transactions: list[LedgerTransaction] = []
        self._by_payment_id: dict[str, LedgerTransaction] = {}
        self._memberships: list[Membership] = []
        self._applied_payments: dict[str, str] = {}
        self._claims: dict[str, PendingCreditClaim] = {}

    def add_user(self, user_id: str) -> None:
        if self._known_users is None:
            self._known_users = set()
        self._known_users.add(user_id)

    @property
    def transactions(self) -> list[LedgerTransaction]:
        return list(self._transactions)

    @property
    def memberships(self) -> list[Membership]:
        return list(self._memberships)

    def _append(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self._transactions.append(transaction)
        if transaction.related_payment_id:
            self._by_payment_id[transaction.related_payment_id] = transaction
        return transaction

    def _new_transaction(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        description: str,
        related_payment_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=amount,
            type=tx_type,
            description=description,
            occurred_at=_now(),
            related_payment_id=related_payment_id,
            reference_id=reference_id,
        )

    async def user_exists(self, user_id: str) -> bool:
        return self._known_users is None or user_id in self._known_users

    async def record_purchase(
        self,
        user_id: str,
        amount: int,
        description: str,
        payment_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        existing = self._by_payment_id.get(payment_id)
        if existing is not None:
            return existing, False
        tx = self._new_transaction(
            user_id, amount, TransactionType.PURCHASE, description,
            related_payment_id=payment_id,
        )
        return self._append(tx), True

    async def apply_membership(
        self,
        payment_id: str,
        user_id: str,
        tier: str,
        start_date: datetime,
        expiry_date: datetime,
        subscription_id: Optional[str] = None,
    ) -> tuple[Membership, bool]:
        if payment_id in self._applied_payments:
            owner = self._applied_payments[payment_id]
            return self._active_membership(owner) or self._latest_membership(owner), False

        active = self._active_membership(user_id)
        self._applied_payments[payment_id] = user_id
        if active is not None:
            updated = active.model_copy(update={
                "tier": tier,
                "start_date": start_date,
                "expiry_date": expiry_date,
                "related_payment_id": payment_id,
                "subscription_id": subscription_id,
            })
            self._memberships[self._memberships.index(active)] = updated
            return updated, True

        membership = Membership(
            id=str(uuid.uuid4()),
            user_id=user_id,
            tier=tier,
            is_active=True,
            start_date=start_date,
            expiry_date=expiry_date,
            related_payment_id=payment_id,
            subscription_id=subscription_id,
        )
        self._memberships.append(membership)
        return membership, True

    def _active_membership(self, user_id: str) -> Optional[Membership]:
        for membership in self._memberships:
            if membership.user_id == user_id and membership.is_active:
                return membership
        return None

    def _latest_membership(self, user_id: str) -> Optional[Membership]:
        owned = [m for m in self._memberships if m.user_id == user_id]
        return owned[-1] if owned else None

    async def deactivate_membership(
        self,
        user_id: str,
        subscription_id: str,
    ) -> Optional[Membership]:
        active = self._active_membership(user_id)
        if active is None or active.subscription_id not in (None, subscription_id):
            return None
        deactivated = active.model_copy(update={"is_active": False})
        self._memberships[self._memberships.index(active)] = deactivated
        return deactivated

    async def get_active_membership(self, user_id: str) -> Optional[Membership]:
        return self._active_membership(user_id)

    async def get_payment_owner(self, payment_id: str) -> Optional[str]:
        transaction = self._by_payment_id.get(payment_id)
        if transaction is not None:
            return transaction.user_id
        return self._applied_payments.get(payment_id)

    async def get_balance(self, user_id: str) -> int:
        return sum(t.amount for t in self._transactions if t.user_id == user_id)

    async def list_transactions(
        self,
        user_id: str,
        limit: int,
        offset: int,
    ) -> list[LedgerTransaction]:
        owned = [t for t in self._transactions if t.user_id == user_id]
        owned.reverse()
        return owned[offset:offset + limit]

    async def deduct(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: Optional[str],
    ) -> LedgerTransaction:
        available = sum(t.amount for t in self._transactions if t.user_id == user_id)
        if available < amount:
            raise InsufficientCreditsError(required=amount, available=available, user_id=user_id)
        tx = self._new_transaction(
            user_id, -amount, TransactionType.USAGE, description,
            reference_id=reference_id,
        )
        return self._append(tx)

    async def record_refund(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        key = refund_key(reference_id)
        existing = self._by_payment_id.get(key)
        if existing is not None:
            return existing, False
        tx = self._new_transaction(
            user_id, amount, TransactionType.REFUND, description,
            related_payment_id=key, reference_id=reference_id,
        )
        return self._append(tx), True

    async def insert_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        return self._append(transaction)

    async def save_claim(self, claim: PendingCreditClaim) -> tuple[PendingCreditClaim, bool]:
        existing = self._claims.get(claim.session_id)
        if existing is not None:
            return existing, False
        self._claims[claim.session_id] = claim
        return claim, True

    async def get_claim(self, session_id: str) -> Optional[PendingCreditClaim]:
        return self._claims.get(session_id)

    async def mark_claim_redeemed(self, session_id: str, user_id: str) -> PendingCreditClaim:
        claim = self._claims.get(session_id)
        if claim is None:
            raise ClaimNotFoundError(session_id)
        if claim.redeemed_by is not None:
            if claim.redeemed_by != user_id:
                raise ClaimAlreadyRedeemedError(session_id)
            return claim
        redeemed = claim.model_copy(update={"redeemed_by": user_id, "redeemed_at": _now()})
        self._claims[session_id] = redeemed
        return redeemed


class SupabaseLedgerRepository(BaseRepository[LedgerTransaction]):
    """
    Ledger backed by Supabase.

    Tables: credit_transactions, memberships, applied_payments,
    pending_credit_claims. The membership and deduction paths run as
    Postgres functions so the check and the write share a transaction.
    """

    def __init__(self, db: Client):
        super().__init__(db)

    @staticmethod
    def _to_transaction(row: dict[str, Any]) -> LedgerTransaction:
        return LedgerTransaction(
            id=row["id"],
            user_id=row["user_id"],
            amount=row["amount"],
            type=TransactionType(row["type"]),
            description=row.get("description") or "",
            occurred_at=row["created_at"],
            related_payment_id=row.get("related_payment_id"),
            reference_id=row.get("reference_id"),
        )

    @staticmethod
    def _to_membership(row: dict[str, Any]) -> Membership:
        return Membership(
            id=row["id"],
            user_id=row["user_id"],
            tier=row["tier"],
            is_active=row["is_active"],
            start_date=row["start_date"],
            expiry_date=row["expiry_date"],
            related_payment_id=row.get("related_payment_id"),
            subscription_id=row.get("stripe_subscription_id"),
        )

    async def user_exists(self, user_id: str) -> bool:
        result = await self._run(
            "user_exists",
            lambda: self._db.table("profiles").select("id").eq("id", user_id).limit(1).execute(),
        )
        return bool(result.data)

    async def _insert_once(
        self,
        operation: str,
        row: dict[str, Any],
        key: str,
    ) -> tuple[LedgerTransaction, bool]:
        result = await self._run(
            operation,
            lambda: self._db.table("credit_transactions").upsert(
                row,
                on_conflict="related_payment_id",
                ignore_duplicates=True,
            ).execute(),
        )
        if result.data:
            return self._to_transaction(result.data[0]), True

        existing = await self._run(
            f"{operation}_lookup",
            lambda: self._db.table("credit_transactions").select("*").eq(
                "related_payment_id", key
            ).limit(1).execute(),
        )
        if not existing.data:
            raise PersistenceError(operation, f"conflicting row for {key} not visible")
        return self._to_transaction(existing.data[0]), False

    async def record_purchase(
        self,
        user_id: str,
        amount: int,
        description: str,
        payment_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        row = {
            "user_id": user_id,
            "amount": amount,
            "type": TransactionType.PURCHASE.value,
            "description": description,
            "related_payment_id": payment_id,
        }
        return await self._insert_once("record_purchase", row, payment_id)

    async def apply_membership(
        self,
        payment_id: str,
        user_id: str,
        tier: str,
        start_date: datetime,
        expiry_date: datetime,
        subscription_id: Optional[str] = None,
    ) -> tuple[Membership, bool]:
        result = await self._run(
            "apply_membership_payment",
            lambda: self._db.rpc("apply_membership_payment", {
                "p_payment_id": payment_id,
                "p_user_id": user_id,
                "p_tier": tier,
                "p_start_date": start_date.isoformat(),
                "p_expiry_date": expiry_date.isoformat(),
                "p_subscription_id": subscription_id,
            }).execute(),
        )
        row = result.data[0] if isinstance(result.data, list) else result.data
        return self._to_membership(row), bool(row["applied"])

    async def deactivate_membership(
        self,
        user_id: str,
        subscription_id: str,
    ) -> Optional[Membership]:
        # Rows without a subscription predate the column and match any.
        result = await self._run(
            "deactivate_membership",
            lambda: self._db.table("memberships").update({"is_active": False}).eq(
                "user_id", user_id
            ).eq("is_active", True).or_(
                f"stripe_subscription_id.is.null,stripe_subscription_id.eq.{subscription_id}"
            ).execute(),
        )
        if not result.data:
            return None
        return self._to_membership(result.data[0])

    async def get_active_membership(self, user_id: str) -> Optional[Membership]:
        result = await self._run(
            "get_active_membership",
            lambda: self._db.table("memberships").select("*").eq(
                "user_id", user_id
            ).eq("is_active", True).limit(1).execute(),
        )
        if not result.data:
            return None
        return self._to_membership(result.data[0])

    async def get_payment_owner(self, payment_id: str) -> Optional[str]:
        result = await self._run(
            "get_payment_owner",
            lambda: self._db.table("credit_transactions").select("user_id").eq(
                "related_payment_id", payment_id
            ).limit(1).execute(),
        )
        if result.data:
            return result.data[0]["user_id"]

        result = await self._run(
            "get_payment_owner_membership",
            lambda: self._db.table("applied_payments").select("user_id").eq(
                "payment_id", payment_id
            ).limit(1).execute(),
        )
        if result.data:
            return result.data[0]["user_id"]
        return None

    async def get_balance(self, user_id: str) -> int:
        result = await self._run(
            "get_credit_balance",
            lambda: self._db.rpc("get_credit_balance", {"p_user_id": user_id}).execute(),
        )
        return int(result.data or 0)

    async def list_transactions(
        self,
        user_id: str,
        limit: int,
        offset: int,
    ) -> list[LedgerTransaction]:
        result = await self._run(
            "list_transactions",
            lambda: self._db.table("credit_transactions").select("*").eq(
                "user_id", user_id
            ).order("created_at", desc=True).range(offset, offset + limit - 1).execute(),
        )
        return [self._to_transaction(row) for row in result.data or []]

    async def deduct(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: Optional[str],
    ) -> LedgerTransaction:
        result = await self._run(
            "deduct_credits",
            lambda: self._db.rpc("deduct_credits", {
                "p_user_id": user_id,
                "p_amount": amount,
                "p_description": description,
                "p_reference_id": reference_id,
            }).execute(),
        )
        row = result.data[0] if isinstance(result.data, list) else result.data
        if not row["ok"]:
            raise InsufficientCreditsError(
                required=amount,
                available=row["balance"],
                user_id=user_id,
            )
        return self._to_transaction(row)

    async def record_refund(
        self,
        user_id: str,
        amount: int,
        description: str,
        reference_id: str,
    ) -> tuple[LedgerTransaction, bool]:
        key = refund_key(reference_id)
        row = {
            "user_id": user_id,
            "amount": amount,
            "type": TransactionType.REFUND.value,
            "description": description,
            "related_payment_id": key,
            "reference_id": reference_id,
        }
        return await self._insert_once("record_refund", row, key)

    async def insert_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        row = {
            "id": transaction.id,
            "user_id": transaction.user_id,
            "amount": transaction.amount,
            "type": transaction.type.value,
            "description": transaction.description,
            "created_at": transaction.occurred_at.isoformat(),
            "related_payment_id": transaction.related_payment_id,
            "reference_id": transaction.reference_id,
        }
        result = await self._run(
            "insert_transaction",
            lambda: self._db.table("credit_transactions").insert(row).execute(),
        )
        return self._to_transaction(result.data[0])

    async def save_claim(self, claim: PendingCreditClaim) -> tuple[PendingCreditClaim, bool]:
        row = claim.model_dump(mode="json", exclude={"redeemed_by", "redeemed_at"})
        result = await self._run(
            "save_claim",
            lambda: self._db.table("pending_credit_claims").upsert(
                row,
                on_conflict="session_id",
                ignore_duplicates=True,
            ).execute(),
        )
        if result.data:
            return PendingCreditClaim(**result.data[0]), True
        existing = await self.get_claim(claim.session_id)
        return existing or claim, False

    async def get_claim(self, session_id: str) -> Optional[PendingCreditClaim]:
        result = await self._run(
            "get_claim",
            lambda: self._db.table("pending_credit_claims").select("*").eq(
                "session_id", session_id
            ).limit(1).execute(),
        )
        if not result.data:
            return None
        return PendingCreditClaim(**result.data[0])

    async def mark_claim_redeemed(self, session_id: str, user_id: str) -> PendingCreditClaim:
        result = await self._run(
            "mark_claim_redeemed",
            lambda: self._db.table("pending_credit_claims").update({
                "redeemed_by": user_id,
                "redeemed_at": _now().isoformat(),
            }).eq("session_id", session_id).is_("redeemed_by", "null").execute(),
        )
        if result.data:
            return PendingCreditClaim(**result.data[0])

        claim = await self.get_claim(session_id)
        if claim is None:
            raise ClaimNotFoundError(session_id)
        if claim.redeemed_by != user_id:
            raise ClaimAlreadyRedeemedError(session_id)
        return claim
