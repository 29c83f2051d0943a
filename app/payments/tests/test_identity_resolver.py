"""
Tests for IdentityResolver.
"""

from unittest.mock import patch

import pytest

from payments.adapters import PayoutAccountResult
from payments.exceptions import (
    InvalidIdentityError,
    PaymentNotFoundError,
    StripeAPIUnavailableError,
)
from payments.models import BillingIdentity
from payments.services import IdentityResolver, derive_onboarding_status
from payments.state_machines import OnboardingStatus, PrincipalType
from payments.tests.factories import BillingIdentityFactory


class TestDeriveOnboardingStatus:
    def test_complete(self):
        account = PayoutAccountResult(
            id="acct_1",
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
        )

        assert derive_onboarding_status(account) == OnboardingStatus.COMPLETE

    def test_requirements_due_keeps_in_progress(self):
        account = PayoutAccountResult(
            id="acct_1",
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
            currently_due=["individual.verification.document"],
        )

        assert derive_onboarding_status(account) == OnboardingStatus.IN_PROGRESS

    def test_disabled_account_rejected(self):
        account = PayoutAccountResult(id="acct_1", disabled_reason="rejected.fraud")

        assert derive_onboarding_status(account) == OnboardingStatus.REJECTED


@pytest.mark.django_db
class TestResolveCustomer:
    def test_creates_customer_once(self, mock_stripe_customer):
        first = IdentityResolver.resolve_customer("org-1", "billing@acme.example.com")
        second = IdentityResolver.resolve_customer("org-1", "billing@acme.example.com")

        assert first == second == "cus_test123"
        mock_stripe_customer.assert_called_once()
        assert BillingIdentity.objects.filter(principal_id="org-1").count() == 1

    def test_idempotency_key_is_per_principal(self, mock_stripe_customer):
        IdentityResolver.resolve_customer("org-1", "a@example.com")

        key = mock_stripe_customer.call_args.kwargs["idempotency_key"]
        assert key.startswith("customer:org-1:1:")

    def test_records_principal_type(self, mock_stripe_customer):
        IdentityResolver.resolve_customer("org-1", "a@example.com", PrincipalType.ORGANIZATION)

        identity = BillingIdentity.objects.get(principal_id="org-1")
        assert identity.principal_type == PrincipalType.ORGANIZATION
        assert identity.email == "a@example.com"

    def test_existing_customer_needs_no_email(self, mock_stripe_customer):
        BillingIdentityFactory(principal_id="org-1", customer_id="cus_stored")

        assert IdentityResolver.resolve_customer("org-1", None) == "cus_stored"
        mock_stripe_customer.assert_not_called()

    def test_concurrent_writer_wins(self, mock_stripe_customer):
        identity = BillingIdentityFactory(principal_id="org-1", customer_id=None)

        def racing_create(**kwargs):
            BillingIdentity.objects.filter(pk=identity.pk).update(customer_id="cus_winner")
            return mock_stripe_customer.return_value

        mock_stripe_customer.side_effect = racing_create

        assert IdentityResolver.resolve_customer("org-1", "a@example.com") == "cus_winner"
        assert BillingIdentity.objects.get(pk=identity.pk).customer_id == "cus_winner"

    @pytest.mark.parametrize("principal_id", ["", "   ", None])
    def test_blank_principal_rejected(self, principal_id):
        with pytest.raises(InvalidIdentityError):
            IdentityResolver.resolve_customer(principal_id, "a@example.com")

    def test_malformed_email_rejected(self, mock_stripe_customer):
        with pytest.raises(InvalidIdentityError):
            IdentityResolver.resolve_customer("org-1", "nope")

        assert not BillingIdentity.objects.exists()

    def test_processor_failure_propagates(self, mock_stripe_customer):
        mock_stripe_customer.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            IdentityResolver.resolve_customer("org-1", "a@example.com")

        assert BillingIdentity.objects.get(principal_id="org-1").customer_id is None


@pytest.mark.django_db
class TestPayoutAccounts:
    def test_onboarding_link_creates_account(self, mock_stripe_payout_account):
        create, link = mock_stripe_payout_account

        result = IdentityResolver.create_onboarding_link("solver-1", "solver@example.com")

        assert result["account_id"] == "acct_new123"
        assert result["url"].startswith("https://connect.example.com/")
        assert result["expires_at"] == 1893456000
        assert "accountId=acct_new123" in link.call_args.kwargs["return_url"]

        identity = BillingIdentity.objects.get(principal_id="solver-1")
        assert identity.payout_account_id == "acct_new123"
        assert identity.onboarding_status == OnboardingStatus.IN_PROGRESS
        assert not identity.can_receive_transfers

    def test_existing_account_reused(self, mock_stripe_payout_account):
        create, _ = mock_stripe_payout_account
        BillingIdentityFactory(principal_id="solver-1", payout_account_id="acct_old")

        result = IdentityResolver.create_onboarding_link("solver-1", None)

        assert result["account_id"] == "acct_old"
        create.assert_not_called()

    def test_apply_account_status_enables_transfers(self):
        identity = BillingIdentityFactory(payout_account_id="acct_1")

        IdentityResolver.apply_account_status(
            identity,
            PayoutAccountResult(
                id="acct_1",
                charges_enabled=True,
                payouts_enabled=True,
                details_submitted=True,
            ),
        )

        stored = BillingIdentity.objects.get(pk=identity.pk)
        assert stored.onboarding_status == OnboardingStatus.COMPLETE
        assert stored.can_receive_transfers
        assert stored.capabilities_synced_at is not None

    def test_refresh_without_account(self):
        BillingIdentityFactory(principal_id="solver-1")

        with pytest.raises(PaymentNotFoundError):
            IdentityResolver.refresh_payout_capability("solver-1")

    def test_refresh_reads_processor(self):
        BillingIdentityFactory(principal_id="solver-1", payout_ready=True)

        with patch(
            "payments.services.identity_resolver.StripeAdapter.retrieve_account",
            return_value=PayoutAccountResult(id="acct_x", disabled_reason="rejected.other"),
        ):
            identity = IdentityResolver.refresh_payout_capability("solver-1")

        assert identity.onboarding_status == OnboardingStatus.REJECTED
        assert not identity.can_receive_transfers

    def test_disconnect_clears_account(self):
        identity = BillingIdentityFactory(principal_id="solver-1", payout_ready=True)

        assert IdentityResolver.disconnect_payout_account(identity.payout_account_id)

        stored = BillingIdentity.objects.get(pk=identity.pk)
        assert stored.payout_account_id is None
        assert stored.onboarding_status == OnboardingStatus.NOT_STARTED
        assert stored.customer_id == identity.customer_id

    def test_reconnect_after_disconnect_uses_fresh_idempotency_key(
        self, mock_stripe_payout_account
    ):
        create, _ = mock_stripe_payout_account
        create.return_value = PayoutAccountResult(id="acct_old")
        IdentityResolver.resolve_payout_account("org-1", "billing@example.com")
        IdentityResolver.disconnect_payout_account("acct_old")
        create.return_value = PayoutAccountResult(id="acct_new")

        account_id = IdentityResolver.resolve_payout_account("org-1", "billing@example.com")

        first_key = create.call_args_list[0].kwargs["idempotency_key"]
        second_key = create.call_args_list[1].kwargs["idempotency_key"]
        assert first_key.startswith("payout_account:org-1:1:")
        assert second_key.startswith("payout_account:org-1:2:")
        assert account_id == "acct_new"
        assert BillingIdentity.objects.get(principal_id="org-1").payout_account_generation == 2

    def test_disconnect_unknown_account(self):
        assert not IdentityResolver.disconnect_payout_account("acct_unknown")
