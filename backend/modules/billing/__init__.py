"""
Billing module.

Handles Stripe checkout, payment reconciliation and the credit ledger.

Public API:
- IBillingService: Interface for credit and membership operations
- LedgerApplier: The one place a confirmed payment mutates the ledger
- CheckoutInitiator, WebhookReceiver, PaymentVerifier: payment entry points
- PriceCatalog: Stripe price <-> package/tier mapping
- Billing exceptions: InsufficientCreditsError, UnmappedPriceError, etc.
"""

from .interfaces import IBillingService, ILedgerRepository, IPaymentProvider
from .applier import LedgerApplier
from .catalog import PriceCatalog
from .checkout import CheckoutInitiator
from .verification import PaymentVerifier
from .webhooks import WebhookReceiver
from .models import (
    ApplyOutcome,
    ApplyResult,
    CheckoutSession,
    CreditBalance,
    CreditPackage,
    LedgerTransaction,
    Membership,
    MembershipTier,
    PendingCreditClaim,
    PurchaseIntent,
    PurchaseKind,
    TransactionType,
)
from .exceptions import (
    BillingError,
    ClaimAlreadyRedeemedError,
    ClaimEmailMismatchError,
    ClaimNotFoundError,
    InsufficientCreditsError,
    InvalidAmountError,
    InvalidIntentError,
    MalformedEventError,
    ProviderRequestError,
    ProviderUnavailableError,
    SessionNotFoundError,
    SignatureInvalidError,
    UnmappedPriceError,
    UserNotFoundError,
)

__all__ = [
    # Interfaces
    "IBillingService",
    "ILedgerRepository",
    "IPaymentProvider",
    # Components
    "LedgerApplier",
    "PriceCatalog",
    "CheckoutInitiator",
    "PaymentVerifier",
    "WebhookReceiver",
    # Models
    "ApplyOutcome",
    "ApplyResult",
    "CheckoutSession",
    "CreditBalance",
    "CreditPackage",
    "LedgerTransaction",
    "Membership",
    "MembershipTier",
    "PendingCreditClaim",
    "PurchaseIntent",
    "PurchaseKind",
    "TransactionType",
    # Exceptions
    "BillingError",
    "ClaimAlreadyRedeemedError",
    "ClaimEmailMismatchError",
    "ClaimNotFoundError",
    "InsufficientCreditsError",
    "InvalidAmountError",
    "InvalidIntentError",
    "MalformedEventError",
    "ProviderRequestError",
    "ProviderUnavailableError",
    "SessionNotFoundError",
    "SignatureInvalidError",
    "UnmappedPriceError",
    "UserNotFoundError",
]
