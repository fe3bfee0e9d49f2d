"""
Billing module data models.

These models define the data structures used by the billing module
and exposed to other modules through the interface.

Credits are whole units (one class costs a fixed number of credits);
prices are Decimal amounts in the configured currency.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TransactionType(str, Enum):
    """Types of credit transactions."""

    PURCHASE = "purchase"      # User bought credits
    USAGE = "usage"            # Credits spent on a class booking
    REFUND = "refund"          # Credits returned for a cancelled booking
    ADMIN = "admin"            # Manual adjustment by an admin
    GIFT = "gift"              # Promotional credits


class PurchaseKind(str, Enum):
    """What a checkout session buys."""

    CREDIT_PACKAGE = "credit_package"
    MEMBERSHIP_TIER = "membership_tier"
    CUSTOM_CREDIT_AMOUNT = "custom_credit_amount"

    @property
    def is_membership(self) -> bool:
        return self is PurchaseKind.MEMBERSHIP_TIER


class ApplyOutcome(str, Enum):
    """Result of handing a payment to the ledger."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    DEFERRED = "deferred"      # Recorded as a pending claim, no user to credit yet
    IGNORED = "ignored"        # Event needs no ledger mutation


# --- Catalog ---------------------------------------------------------------


class CreditPackage(BaseModel):
    """A purchasable credit package."""

    id: str = Field(..., description="Package ID (e.g. 'standard')")
    name: str = Field(..., description="Display name")
    credits: int = Field(..., gt=0, description="Credits granted")
    price: Decimal = Field(..., gt=0, description="Purchase price")
    stripe_price_id: str = Field(..., description="Stripe price ID")
    popular: bool = Field(default=False, description="Whether to highlight this package")
    most_value: bool = Field(default=False, description="Best value badge")


class MembershipTier(BaseModel):
    """A recurring membership plan."""

    id: str = Field(..., description="Tier ID (e.g. 'membership-monthly')")
    name: str = Field(..., description="Display name")
    price: Decimal = Field(..., gt=0, description="Price per billing period")
    duration_months: int = Field(..., gt=0, description="Length of one billing period")
    stripe_price_id: str = Field(..., description="Stripe recurring price ID")


class CustomCreditPrice(BaseModel):
    """Per-credit price used for custom credit amounts (quantity = credits)."""

    stripe_price_id: str = Field(..., description="Stripe price ID for one credit")
    unit_price: Decimal = Field(..., gt=0, description="Price of one credit")
    min_credits: int = Field(default=1, ge=1)
    max_credits: int = Field(default=10_000, ge=1)


class ResolvedPurchase(BaseModel):
    """What a paid line item buys, according to the catalog."""

    model_config = ConfigDict(frozen=True)

    kind: PurchaseKind
    item_id: str
    credits: int = 0
    tier: Optional[str] = None
    duration_months: Optional[int] = None


# --- Checkout --------------------------------------------------------------


class PurchaseIntent(BaseModel):
    """
    A purchase the user asked for, before payment.

    Never persisted; encoded into the Stripe session metadata so the
    redirect round-trip cannot alter it.
    """

    package_or_tier_id: str
    kind: PurchaseKind
    quantity_or_amount: int = 1
    unit_price: Decimal
    currency: str = "usd"

    @property
    def total_price(self) -> Decimal:
        if self.kind is PurchaseKind.CUSTOM_CREDIT_AMOUNT:
            return self.unit_price * self.quantity_or_amount
        return self.unit_price


class ReturnUrls(BaseModel):
    """Where Stripe sends the browser after checkout."""

    success_url: str
    cancel_url: str


class CheckoutSession(BaseModel):
    """Stripe checkout session info returned when initiating a purchase."""

    session_id: str = Field(..., description="Stripe checkout session ID")
    url: str = Field(..., description="Checkout URL to redirect user to")


class ProviderSession(BaseModel):
    """The provider's authoritative view of a checkout session."""

    id: str
    status: Optional[str] = None              # open | complete | expired
    payment_status: Optional[str] = None      # paid | unpaid | no_payment_required
    mode: Optional[str] = None                # payment | subscription
    client_reference_id: Optional[str] = None
    customer_email: Optional[str] = None
    price_id: Optional[str] = None
    quantity: int = 1
    subscription_id: Optional[str] = None     # set for subscription-mode sessions
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


# --- Payment events --------------------------------------------------------


class CheckoutCompletedEvent(BaseModel):
    """checkout.session.completed, with line item data from the provider."""

    model_config = ConfigDict(frozen=True)

    type: Literal["checkout_completed"] = "checkout_completed"
    event_id: str
    session_id: str
    price_id: Optional[str]
    quantity: int = 1
    payer_reference: Optional[str] = None
    customer_email: Optional[str] = None
    payment_status: str
    mode: Optional[str] = None
    subscription_id: Optional[str] = None


class SubscriptionCancelledEvent(BaseModel):
    """customer.subscription.deleted."""

    model_config = ConfigDict(frozen=True)

    type: Literal["subscription_cancelled"] = "subscription_cancelled"
    event_id: str
    subscription_id: str
    payer_reference: Optional[str] = None


class IgnoredEvent(BaseModel):
    """Any provider event the ledger does not act on."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ignored"] = "ignored"
    event_id: str
    event_type: str


PaymentEvent = Annotated[
    Union[CheckoutCompletedEvent, SubscriptionCancelledEvent, IgnoredEvent],
    Field(discriminator="type"),
]


# --- Ledger ----------------------------------------------------------------


class LedgerTransaction(BaseModel):
    """
    A credit transaction record.

    Append-only; the user's balance is the sum of these amounts.
    """

    id: str = Field(..., description="Transaction ID (UUID)")
    user_id: str = Field(..., description="User ID")
    amount: int = Field(
        ...,
        description="Credit amount (positive for add, negative for deduct)",
    )
    type: TransactionType = Field(..., description="Transaction type")
    description: str = Field(..., description="Human-readable reason")
    occurred_at: datetime = Field(..., description="Transaction timestamp")
    related_payment_id: Optional[str] = Field(
        None,
        description="Checkout session ID for purchases (idempotency key)",
    )
    reference_id: Optional[str] = Field(
        None,
        description="Booking or other reference for usage/refund rows",
    )


class Membership(BaseModel):
    """A user's membership row."""

    id: str
    user_id: str
    tier: str
    is_active: bool
    start_date: datetime
    expiry_date: datetime
    related_payment_id: Optional[str] = None
    subscription_id: Optional[str] = None


class PendingCreditClaim(BaseModel):
    """A paid session that could not be attributed to a user yet."""

    session_id: str
    kind: PurchaseKind
    item_id: str
    credits: int = 0
    tier: Optional[str] = None
    duration_months: Optional[int] = None
    customer_email: Optional[str] = None
    subscription_id: Optional[str] = None
    created_at: datetime
    redeemed_by: Optional[str] = None
    redeemed_at: Optional[datetime] = None

    @property
    def is_redeemed(self) -> bool:
        return self.redeemed_by is not None

    def to_purchase(self) -> ResolvedPurchase:
        return ResolvedPurchase(
            kind=self.kind,
            item_id=self.item_id,
            credits=self.credits,
            tier=self.tier,
            duration_months=self.duration_months,
        )


class ApplyResult(BaseModel):
    """What the ledger applier did with a payment."""

    outcome: ApplyOutcome
    payment_id: Optional[str] = None
    user_id: Optional[str] = None
    transaction: Optional[LedgerTransaction] = None
    membership: Optional[Membership] = None

    @property
    def mutated(self) -> bool:
        return self.outcome is ApplyOutcome.APPLIED


class CreditBalance(BaseModel):
    """A user's derived credit balance and membership info."""

    user_id: str = Field(..., description="User ID")
    balance: int = Field(..., description="Sum of all ledger transactions")
    membership: Optional[Membership] = Field(None, description="Active membership, if any")


class WebhookResult(BaseModel):
    """Outcome of one webhook delivery."""

    event_id: str
    event_type: str
    outcome: ApplyOutcome
    message: Optional[str] = None


class VerificationStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    ERROR = "error"


class MembershipSummary(BaseModel):
    tier: str
    expiry_date: Optional[datetime] = None


class VerificationResult(BaseModel):
    """Answer to the browser's payment verification call."""

    success: bool
    verified: bool
    status: VerificationStatus
    credits: Optional[int] = None
    membership: Optional[MembershipSummary] = None
    applied: bool = False
    claim_pending: bool = False
    message: str


# --- API request / response bodies ----------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateCheckoutRequest(_CamelModel):
    """Body of POST /api/billing/checkout, as sent by the web client."""

    package_id: Optional[str] = None
    package_name: Optional[str] = None
    credit_amount: Optional[int] = None
    tier_id: Optional[str] = None
    price: Decimal
    mode: Literal["payment", "subscription"] = "payment"


class CheckoutResponse(_CamelModel):
    url: str
    session_id: str


class VerifyPaymentRequest(_CamelModel):
    session_id: str = Field(..., min_length=1)


class GrantCreditsRequest(_CamelModel):
    user_id: str
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)
    type: Literal[TransactionType.ADMIN, TransactionType.GIFT] = TransactionType.ADMIN


class TransactionListResponse(BaseModel):
    """API response for transaction history."""

    transactions: list[LedgerTransaction] = Field(..., description="Transaction list")
    has_more: bool = Field(..., description="Whether more transactions exist")


class CatalogResponse(BaseModel):
    credit_packages: list[CreditPackage]
    membership_tiers: list[MembershipTier]
    custom_credit_unit_price: Optional[Decimal] = None
