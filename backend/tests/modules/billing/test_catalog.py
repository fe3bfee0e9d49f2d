"""Tests for the billing price catalog."""

import pytest
from decimal import Decimal

from modules.billing.catalog import DEFAULT_CREDIT_PACKAGES, PriceCatalog
from modules.billing.exceptions import InvalidIntentError, UnmappedPriceError
from modules.billing.models import (
    CreditPackage,
    CustomCreditPrice,
    MembershipTier,
    PurchaseKind,
)
from shared.config import Settings


class TestDefaults:
    def test_default_packages(self):
        catalog = PriceCatalog()
        credits = {p.id: p.credits for p in catalog.packages}
        assert credits == {"starter": 100, "standard": 500, "premium": 1000, "ultimate": 2500}

    def test_default_tiers(self):
        catalog = PriceCatalog()
        durations = {t.id: t.duration_months for t in catalog.tiers}
        assert durations == {
            "membership-monthly": 1,
            "membership-sixmonth": 6,
            "membership-annual": 12,
        }

    def test_no_custom_price_by_default(self):
        assert PriceCatalog().custom_price is None


class TestResolve:
    def test_resolve_package(self, catalog):
        """A package price resolves to the package's credits."""
        purchase = catalog.resolve("price_credits_standard")
        assert purchase.kind == PurchaseKind.CREDIT_PACKAGE
        assert purchase.item_id == "standard"
        assert purchase.credits == 500

    def test_package_quantity_is_ignored(self, catalog):
        assert catalog.resolve("price_credits_starter", quantity=3).credits == 100

    def test_resolve_tier(self, catalog):
        purchase = catalog.resolve("price_1RwGRKHDLcNJqASMjlUXz385")
        assert purchase.kind == PurchaseKind.MEMBERSHIP_TIER
        assert purchase.tier == "membership-sixmonth"
        assert purchase.duration_months == 6
        assert purchase.credits == 0

    def test_resolve_custom_uses_quantity(self, catalog):
        """The per-credit price buys one credit per unit."""
        purchase = catalog.resolve("price_custom_credit", quantity=42)
        assert purchase.kind == PurchaseKind.CUSTOM_CREDIT_AMOUNT
        assert purchase.credits == 42

    def test_unmapped_price(self, catalog):
        with pytest.raises(UnmappedPriceError) as exc_info:
            catalog.resolve("price_unknown", session_id="cs_test_9")
        assert exc_info.value.details == {"price_id": "price_unknown", "session_id": "cs_test_9"}

    def test_missing_price(self, catalog):
        with pytest.raises(UnmappedPriceError):
            catalog.resolve(None)


class TestLookups:
    def test_get_package(self, catalog):
        assert catalog.get_package("premium").price == Decimal("549.00")

    def test_unknown_package(self, catalog):
        with pytest.raises(InvalidIntentError):
            catalog.get_package("platinum")

    def test_unknown_tier(self, catalog):
        with pytest.raises(InvalidIntentError):
            catalog.get_tier("membership-weekly")

    def test_require_custom_price_without_one(self):
        with pytest.raises(InvalidIntentError):
            PriceCatalog().require_custom_price()

    def test_duplicate_price_ids_rejected(self):
        """One Stripe price can't mean two different purchases."""
        package = CreditPackage(
            id="dup", name="Dup", credits=1, price=Decimal("1"), stripe_price_id="price_x"
        )
        tier = MembershipTier(
            id="tier", name="Tier", price=Decimal("1"), duration_months=1, stripe_price_id="price_x"
        )
        with pytest.raises(ValueError):
            PriceCatalog(packages=[package], tiers=[tier])

    def test_custom_price_must_be_unique(self):
        with pytest.raises(ValueError):
            PriceCatalog(
                custom_price=CustomCreditPrice(
                    stripe_price_id=DEFAULT_CREDIT_PACKAGES[0].stripe_price_id,
                    unit_price=Decimal("1.00"),
                )
            )


class TestFromSettings:
    def test_overrides_price_ids(self):
        settings = Settings(
            _env_file=None,
            stripe_credit_price_ids={"standard": "price_live_standard"},
            stripe_membership_price_ids={"membership-monthly": "price_live_monthly"},
        )
        catalog = PriceCatalog.from_settings(settings)

        assert catalog.get_package("standard").stripe_price_id == "price_live_standard"
        assert catalog.resolve("price_live_monthly").tier == "membership-monthly"
        # Untouched entries keep their defaults
        assert catalog.get_package("starter").stripe_price_id == "price_credits_starter"

    def test_custom_price_from_settings(self):
        settings = Settings(_env_file=None, stripe_custom_credit_price_id="price_per_credit")
        catalog = PriceCatalog.from_settings(settings)

        assert catalog.custom_price.unit_price == Decimal("1.00")
        assert catalog.resolve("price_per_credit", quantity=7).credits == 7
