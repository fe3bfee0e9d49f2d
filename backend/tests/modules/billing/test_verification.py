"""Tests for client-side payment verification."""

import asyncio

import pytest

from modules.billing.exceptions import SessionNotFoundError, UnmappedPriceError
from modules.billing.models import ApplyOutcome, VerificationStatus
from modules.billing.verification import PaymentVerifier
from modules.billing.webhooks import WebhookReceiver
from shared.models import AuthenticatedUser


@pytest.fixture
def verifier(provider, catalog, applier):
    return PaymentVerifier(provider, catalog, applier)


@pytest.fixture
def user_1():
    return AuthenticatedUser(id="user-1", email="ana@example.com")


class TestVerify:
    @pytest.mark.asyncio
    async def test_paid_session_credits_payer(self, verifier, provider, ledger, user_1):
        provider.add_session("cs_test_1", client_reference_id="user-1")

        result = await verifier.verify("cs_test_1", user_1)

        assert result.success and result.verified
        assert result.status == VerificationStatus.SUCCESS
        assert result.credits == 500
        assert result.applied is True
        assert result.claim_pending is False
        assert "500 credits added" in result.message
        assert await ledger.get_balance("user-1") == 500

    @pytest.mark.asyncio
    async def test_reload_does_not_credit_twice(self, verifier, provider, ledger, user_1):
        provider.add_session("cs_test_1", client_reference_id="user-1")

        await verifier.verify("cs_test_1", user_1)
        again = await verifier.verify("cs_test_1", user_1)

        assert again.success is True
        assert again.applied is False
        assert await ledger.get_balance("user-1") == 500

    @pytest.mark.asyncio
    async def test_session_owner_beats_caller(self, verifier, provider, ledger):
        """Verifying someone else's session credits the session's owner."""
        provider.add_session("cs_test_1", client_reference_id="user-1")
        caller = AuthenticatedUser(id="user-2")

        await verifier.verify("cs_test_1", caller)

        assert await ledger.get_balance("user-1") == 500
        assert await ledger.get_balance("user-2") == 0

    @pytest.mark.asyncio
    async def test_guest_session_credits_signed_in_caller(self, verifier, provider, ledger):
        provider.add_session("cs_test_1", client_reference_id=None)

        await verifier.verify("cs_test_1", AuthenticatedUser(id="user-2"))

        assert await ledger.get_balance("user-2") == 500

    @pytest.mark.asyncio
    async def test_unauthenticated_guest_is_deferred(self, verifier, provider, ledger):
        provider.add_session(
            "cs_test_1", client_reference_id=None, customer_email="guest@example.com"
        )

        result = await verifier.verify("cs_test_1")

        assert result.success is True
        assert result.applied is False
        assert result.claim_pending is True
        assert "Sign in" in result.message
        assert ledger.transactions == []
        assert (await ledger.get_claim("cs_test_1")).customer_email == "guest@example.com"

    @pytest.mark.asyncio
    async def test_anonymous_caller_never_credits_payer(self, verifier, provider, ledger):
        """Without a signed-in caller the webhook is the only path that credits."""
        provider.add_session("cs_test_1", client_reference_id="user-1")

        result = await verifier.verify("cs_test_1")

        assert result.success is True
        assert result.verified is True
        assert result.credits == 500
        assert result.applied is False
        assert result.claim_pending is False
        assert ledger.transactions == []
        assert await ledger.get_claim("cs_test_1") is None

    @pytest.mark.asyncio
    async def test_anonymous_membership_is_not_activated(self, verifier, provider, ledger):
        provider.add_session(
            "cs_sub_1",
            client_reference_id="user-1",
            mode="subscription",
            price_id="price_1RwGRKHDLcNJqASMjlUXz385",
        )

        result = await verifier.verify("cs_sub_1")

        assert result.verified is True
        assert result.membership.tier == "membership-sixmonth"
        assert ledger.memberships == []

    @pytest.mark.asyncio
    async def test_open_session_is_pending(self, verifier, provider, ledger):
        provider.add_session("cs_test_1", status="open", payment_status="unpaid")

        result = await verifier.verify("cs_test_1")

        assert result.success is False
        assert result.status == VerificationStatus.PENDING
        assert ledger.transactions == []

    @pytest.mark.asyncio
    async def test_expired_session_is_error(self, verifier, provider):
        provider.add_session("cs_test_1", status="expired", payment_status="unpaid")

        result = await verifier.verify("cs_test_1")

        assert result.status == VerificationStatus.ERROR
        assert "expired" in result.message

    @pytest.mark.asyncio
    async def test_unknown_session(self, verifier):
        with pytest.raises(SessionNotFoundError):
            await verifier.verify("cs_missing")

    @pytest.mark.asyncio
    async def test_unmapped_price(self, verifier, provider, ledger, user_1):
        provider.add_session("cs_test_1", client_reference_id="user-1", price_id="price_retired")
        with pytest.raises(UnmappedPriceError):
            await verifier.verify("cs_test_1", user_1)
        assert ledger.transactions == []

    @pytest.mark.asyncio
    async def test_membership_summary(self, verifier, provider, user_1):
        provider.add_session(
            "cs_sub_1",
            client_reference_id="user-1",
            mode="subscription",
            price_id="price_1RwGRKHDLcNJqASMjlUXz385",
        )

        result = await verifier.verify("cs_sub_1", user_1)

        assert result.credits is None
        assert result.membership.tier == "membership-sixmonth"
        assert result.membership.expiry_date is not None
        assert result.message == "Membership activated successfully"


class TestWebhookAndVerifierTogether:
    @pytest.mark.asyncio
    async def test_verify_after_webhook(
        self, verifier, provider, catalog, applier, ledger, completed_event, signed_event, user_1
    ):
        """Whichever path runs second sees the payment as already applied."""
        provider.add_session("cs_test_1", client_reference_id="user-1")
        receiver = WebhookReceiver(provider, catalog, applier)
        payload, signature = signed_event(completed_event(session_id="cs_test_1"))

        await receiver.handle(payload, signature)
        result = await verifier.verify("cs_test_1", user_1)

        assert result.success is True
        assert result.applied is False
        assert await ledger.get_balance("user-1") == 500

    @pytest.mark.asyncio
    async def test_webhook_after_verify(
        self, verifier, provider, catalog, applier, ledger, completed_event, signed_event, user_1
    ):
        provider.add_session("cs_test_1", client_reference_id="user-1")
        receiver = WebhookReceiver(provider, catalog, applier)
        payload, signature = signed_event(completed_event(session_id="cs_test_1"))

        await verifier.verify("cs_test_1", user_1)
        result = await receiver.handle(payload, signature)

        assert result.outcome.value == "already_applied"
        assert await ledger.get_balance("user-1") == 500

    @pytest.mark.asyncio
    async def test_signed_in_verify_settles_deferred_guest_claim(
        self, verifier, provider, catalog, applier, ledger, completed_event, signed_event
    ):
        provider.add_session("cs_test_1", client_reference_id=None)
        receiver = WebhookReceiver(provider, catalog, applier)
        payload, signature = signed_event(completed_event(client_reference_id=None))

        await receiver.handle(payload, signature)
        result = await verifier.verify("cs_test_1", AuthenticatedUser(id="user-2"))

        assert result.applied is True
        assert (await ledger.get_claim("cs_test_1")).redeemed_by == "user-2"
        assert await ledger.get_balance("user-2") == 500


class TestConcurrentWebhookAndVerifier:
    @pytest.fixture
    def receiver(self, provider, catalog, applier):
        return WebhookReceiver(provider, catalog, applier)

    @pytest.mark.asyncio
    async def test_simultaneous_arrival_credits_once(
        self, verifier, receiver, provider, ledger, completed_event, signed_event, user_1
    ):
        provider.add_session("cs_test_1", client_reference_id="user-1")
        payload, signature = signed_event(completed_event(session_id="cs_test_1"))

        webhook_result, verification = await asyncio.gather(
            receiver.handle(payload, signature),
            verifier.verify("cs_test_1", user_1),
        )

        assert len(ledger.transactions) == 1
        assert await ledger.get_balance("user-1") == 500
        assert [webhook_result.outcome is ApplyOutcome.APPLIED, verification.applied].count(True) == 1

    @pytest.mark.asyncio
    async def test_simultaneous_membership_applies_once(
        self, verifier, receiver, provider, ledger, completed_event, signed_event, user_1
    ):
        price_id = "price_1MODwUGyB07x246GMkPzLsx7"
        provider.add_session(
            "cs_sub_1",
            client_reference_id="user-1",
            mode="subscription",
            price_id=price_id,
            subscription_id="sub_1",
        )
        payload, signature = signed_event(
            completed_event(session_id="cs_sub_1", price_id=price_id, subscription_id="sub_1")
        )

        await asyncio.gather(
            verifier.verify("cs_sub_1", user_1),
            receiver.handle(payload, signature),
            verifier.verify("cs_sub_1", user_1),
        )

        assert len(ledger.memberships) == 1
        assert (await ledger.get_active_membership("user-1")).subscription_id == "sub_1"
