"""
Price catalog for the billing module.

The catalog is the only authority on what a Stripe price buys. Checkout
uses it to validate intents and pick line items; the webhook and the
verifier use it to turn a paid price ID back into credits or a
membership period.

Catalog data is injected so tests can supply their own entries and
production can override the Stripe price IDs through settings.
"""

import logging
from decimal import Decimal
from typing import Optional

from shared.config import Settings

from .exceptions import InvalidIntentError, UnmappedPriceError
from .models import (
    CreditPackage,
    CustomCreditPrice,
    MembershipTier,
    PurchaseKind,
    ResolvedPurchase,
)

logger = logging.getLogger(__name__)


DEFAULT_CREDIT_PACKAGES = [
    CreditPackage(
        id="starter",
        name="Starter",
        credits=100,
        price=Decimal("69.00"),
        stripe_price_id="price_credits_starter",
    ),
    CreditPackage(
        id="standard",
        name="Standard",
        credits=500,
        price=Decimal("299.00"),
        stripe_price_id="price_credits_standard",
        popular=True,
    ),
    CreditPackage(
        id="premium",
        name="Premium",
        credits=1000,
        price=Decimal("549.00"),
        stripe_price_id="price_credits_premium",
    ),
    CreditPackage(
        id="ultimate",
        name="Ultimate",
        credits=2500,
        price=Decimal("1249.00"),
        stripe_price_id="price_credits_ultimate",
        most_value=True,
    ),
]

DEFAULT_MEMBERSHIP_TIERS = [
    MembershipTier(
        id="membership-monthly",
        name="Monthly Membership",
        price=Decimal("19.99"),
        duration_months=1,
        stripe_price_id="price_1MODwUGyB07x246GMkPzLsx7",
    ),
    MembershipTier(
        id="membership-sixmonth",
        name="Six-Month Membership",
        price=Decimal("99.99"),
        duration_months=6,
        stripe_price_id="price_1RwGRKHDLcNJqASMjlUXz385",
    ),
    MembershipTier(
        id="membership-annual",
        name="Annual Membership",
        price=Decimal("399.99"),
        duration_months=12,
        stripe_price_id="price_membership_annual",
    ),
]


class PriceCatalog:
    """
    Lookup tables between catalog items and Stripe prices.

    Price IDs must be unique across packages, tiers and the custom
    per-credit price; a duplicate would make a paid line item ambiguous.
    """

    def __init__(
        self,
        packages: Optional[list[CreditPackage]] = None,
        tiers: Optional[list[MembershipTier]] = None,
        custom_price: Optional[CustomCreditPrice] = None,
    ):
        packages = DEFAULT_CREDIT_PACKAGES if packages is None else packages
        tiers = DEFAULT_MEMBERSHIP_TIERS if tiers is None else tiers

        self._packages = {p.id: p for p in packages}
        self._tiers = {t.id: t for t in tiers}
        self._custom = custom_price

        self._by_price: dict[str, ResolvedPurchase] = {}
        for package in packages:
            self._register(
                package.stripe_price_id,
                ResolvedPurchase(
                    kind=PurchaseKind.CREDIT_PACKAGE,
                    item_id=package.id,
                    credits=package.credits,
                ),
            )
        for tier in tiers:
            self._register(
                tier.stripe_price_id,
                ResolvedPurchase(
                    kind=PurchaseKind.MEMBERSHIP_TIER,
                    item_id=tier.id,
                    tier=tier.id,
                    duration_months=tier.duration_months,
                ),
            )
        if custom_price is not None:
            self._register(
                custom_price.stripe_price_id,
                ResolvedPurchase(kind=PurchaseKind.CUSTOM_CREDIT_AMOUNT, item_id="custom", credits=1),
            )

    def _register(self, price_id: str, purchase: ResolvedPurchase) -> None:
        if price_id in self._by_price:
            raise ValueError(
                f"Stripe price {price_id} is mapped to both "
                f"{self._by_price[price_id].item_id} and {purchase.item_id}"
            )
        self._by_price[price_id] = purchase

    @classmethod
    def from_settings(cls, settings: Settings) -> "PriceCatalog":
        """Build the default catalog with price IDs overridden from settings."""
        packages = [
            p.model_copy(update={"stripe_price_id": settings.stripe_credit_price_ids[p.id]})
            if p.id in settings.stripe_credit_price_ids
            else p
            for p in DEFAULT_CREDIT_PACKAGES
        ]
        tiers = [
            t.model_copy(update={"stripe_price_id": settings.stripe_membership_price_ids[t.id]})
            if t.id in settings.stripe_membership_price_ids
            else t
            for t in DEFAULT_MEMBERSHIP_TIERS
        ]
        custom = None
        if settings.stripe_custom_credit_price_id:
            custom = CustomCreditPrice(
                stripe_price_id=settings.stripe_custom_credit_price_id,
                unit_price=Decimal("1.00"),
            )
        return cls(packages=packages, tiers=tiers, custom_price=custom)

    @property
    def packages(self) -> list[CreditPackage]:
        return list(self._packages.values())

    @property
    def tiers(self) -> list[MembershipTier]:
        return list(self._tiers.values())

    @property
    def custom_price(self) -> Optional[CustomCreditPrice]:
        return self._custom

    def get_package(self, package_id: str) -> CreditPackage:
        try:
            return self._packages[package_id]
        except KeyError:
            raise InvalidIntentError("unknown credit package", item_id=package_id)

    def get_tier(self, tier_id: str) -> MembershipTier:
        try:
            return self._tiers[tier_id]
        except KeyError:
            raise InvalidIntentError("unknown membership tier", item_id=tier_id)

    def require_custom_price(self) -> CustomCreditPrice:
        if self._custom is None:
            raise InvalidIntentError("custom credit amounts are not available")
        return self._custom

    def resolve(
        self,
        price_id: Optional[str],
        quantity: int = 1,
        session_id: Optional[str] = None,
    ) -> ResolvedPurchase:
        """
        Map a paid line item to what it buys.

        For the custom per-credit price the quantity is the number of
        credits; for packages and tiers the quantity is ignored.

        Raises:
            UnmappedPriceError: If the price is unknown
        """
        purchase = self._by_price.get(price_id) if price_id else None
        if purchase is None:
            logger.error("Unmapped Stripe price %s on session %s", price_id, session_id)
            raise UnmappedPriceError(price_id, session_id=session_id)

        if purchase.kind is PurchaseKind.CUSTOM_CREDIT_AMOUNT:
            return purchase.model_copy(update={"credits": max(quantity, 1)})
        return purchase
