"""
Tests for the payments REST API views.
"""

from unittest.mock import patch

import pytest
from django.urls import reverse

from payments.adapters import BalanceResult
from payments.exceptions import StripeAPIUnavailableError
from payments.services import FundingService
from payments.tests.factories import (
    BillingIdentityFactory,
    FundingIntentFactory,
    HeldBountyFundingFactory,
)


@pytest.mark.django_db
class TestFundingIntentView:
    @property
    def url(self):
        return reverse("payments:funding_intents")

    def _body(self, principal_id, **overrides):
        return {
            "bountyId": "B1",
            "amount": 10000,
            "currency": "usd",
            "principalId": principal_id,
            **overrides,
        }

    def test_creates_intent(self, org_client, principal_id, mock_stripe_customer, mock_stripe_intent):
        response = org_client.post(self.url, self._body(principal_id), format="json")

        assert response.status_code == 201
        assert response.data == {
            "clientSecret": "pi_test123_secret_abc",
            "intentId": "pi_test123",
        }
        assert mock_stripe_customer.call_args.kwargs["principal_id"] == principal_id

    def test_unauthenticated(self, api_client, principal_id):
        response = api_client.post(self.url, self._body(principal_id), format="json")

        assert response.status_code == 403

    def test_other_principal_denied(self, org_client, mock_stripe_intent):
        response = org_client.post(self.url, self._body("someone-else"), format="json")

        assert response.status_code == 403
        assert response.data == {"success": False, "error": "Billing identity unavailable"}
        mock_stripe_intent.assert_not_called()

    def test_without_active_organization(self, api_client, user, membership, principal_id):
        api_client.force_authenticate(user=user)

        response = api_client.post(self.url, self._body(principal_id), format="json")

        assert response.status_code == 403

    @pytest.mark.parametrize("amount", [0, -5])
    def test_invalid_amount(self, org_client, principal_id, amount):
        response = org_client.post(self.url, self._body(principal_id, amount=amount), format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"

    def test_non_integer_amount(self, org_client, principal_id):
        response = org_client.post(
            self.url, self._body(principal_id, amount="lots"), format="json"
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"
        assert "amount" in response.data["errors"]

    def test_missing_bounty_id(self, org_client, principal_id):
        body = self._body(principal_id)
        del body["bountyId"]

        response = org_client.post(self.url, body, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_INPUT"

    def test_already_funded(self, org_client, principal_id, mock_stripe_intent):
        HeldBountyFundingFactory(bounty_id="B1")

        response = org_client.post(self.url, self._body(principal_id), format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ALREADY_FUNDED"

    def test_processor_unavailable(
        self, org_client, principal_id, mock_stripe_customer, mock_stripe_intent
    ):
        mock_stripe_intent.side_effect = StripeAPIUnavailableError("down")

        response = org_client.post(self.url, self._body(principal_id), format="json")

        assert response.status_code == 503
        assert response.data["error_code"] == "PROCESSOR_UNAVAILABLE"


@pytest.mark.django_db
class TestFundingStateView:
    def test_unfunded(self, org_client):
        response = org_client.get(reverse("payments:funding_state", args=["B404"]))

        assert response.status_code == 200
        assert response.data == {"bountyId": "B404", "state": "unfunded"}

    def test_held(self, org_client, held_funding):
        response = org_client.get(reverse("payments:funding_state", args=["B1"]))

        assert response.data["state"] == "held"


@pytest.fixture
def creator_funding(principal_id):
    """Bounty B1 held with funds paid by the test organization."""
    return HeldBountyFundingFactory(bounty_id="B1", held__creator=principal_id)


@pytest.mark.django_db
class TestReleaseView:
    @property
    def url(self):
        return reverse("payments:release", kwargs={"bounty_id": "B1"})

    def test_creator_releases_to_solver(
        self, org_client, creator_funding, payout_ready_solver, mock_stripe_transfer
    ):
        response = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert response.status_code == 200
        assert response.data == {
            "bountyId": "B1",
            "state": "released",
            "solverPrincipalId": "solver-1",
            "amount": 10000,
            "transferId": "tr_test123",
        }

    def test_non_creator_denied(
        self, org_client, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        response = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert response.status_code == 403
        assert response.data == {"success": False, "error": "Billing identity unavailable"}
        mock_stripe_transfer.assert_not_called()
        assert FundingService.get_funding_state("B1") == "held"

    def test_unauthenticated(self, api_client, creator_funding, mock_stripe_transfer):
        response = api_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert response.status_code == 403
        mock_stripe_transfer.assert_not_called()

    def test_second_release_conflicts(
        self, org_client, creator_funding, payout_ready_solver, mock_stripe_transfer
    ):
        org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        response = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ALREADY_IN_TERMINAL_STATE"
        assert mock_stripe_transfer.call_count == 1

    def test_solver_not_ready(
        self, org_client, creator_funding, onboarding_solver, mock_stripe_transfer
    ):
        response = org_client.post(self.url, {"solverPrincipalId": "solver-2"}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "PAYOUT_ACCOUNT_NOT_READY"

    def test_unfunded_bounty(self, org_client, payout_ready_solver, mock_stripe_transfer):
        response = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "NOT_FUNDED"

    def test_pending_transfer_conflicts(
        self, org_client, creator_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeAPIUnavailableError("down")
        first = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        response = org_client.post(self.url, {"solverPrincipalId": "solver-1"}, format="json")

        assert first.status_code == 503
        assert response.status_code == 409
        assert response.data["error_code"] == "RELEASE_IN_PROGRESS"

    def test_zero_amount(self, org_client, creator_funding, payout_ready_solver):
        response = org_client.post(
            self.url, {"solverPrincipalId": "solver-1", "amount": 0}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"


@pytest.mark.django_db
class TestRefundView:
    @property
    def url(self):
        return reverse("payments:refund", kwargs={"bounty_id": "B1"})

    def test_creator_refunds(self, org_client, creator_funding):
        with patch("payments.services.funding_service.StripeAdapter.create_refund") as refund:
            response = org_client.post(self.url, {"reason": "cancelled"}, format="json")

        assert response.status_code == 200
        assert response.data == {"bountyId": "B1", "state": "refunded"}
        assert refund.call_args.kwargs["metadata"]["reason"] == "cancelled"

    def test_non_creator_denied(self, org_client, held_funding):
        with patch("payments.services.funding_service.StripeAdapter.create_refund") as refund:
            response = org_client.post(self.url, {}, format="json")

        assert response.status_code == 403
        refund.assert_not_called()
        assert FundingService.get_funding_state("B1") == "held"

    def test_released_bounty_conflicts(
        self, org_client, creator_funding, payout_ready_solver, mock_stripe_transfer
    ):
        FundingService.release_to_solver("B1", "solver-1")

        response = org_client.post(self.url, {}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "ALREADY_IN_TERMINAL_STATE"


@pytest.mark.django_db
class TestPayoutOnboardingView:
    @property
    def url(self):
        return reverse("payments:payout_onboarding")

    def test_returns_link(self, org_client, principal_id, mock_stripe_payout_account):
        response = org_client.post(self.url, {"principalId": principal_id}, format="json")

        assert response.status_code == 200
        assert response.data["accountId"] == "acct_new123"
        assert response.data["expiresAt"] == 1893456000
        assert response.data["url"].startswith("https://")

    def test_other_principal_denied(self, org_client, mock_stripe_payout_account):
        create, _ = mock_stripe_payout_account

        response = org_client.post(self.url, {"principalId": "nope"}, format="json")

        assert response.status_code == 403
        create.assert_not_called()

    def test_processor_error(self, org_client, principal_id, mock_stripe_payout_account):
        create, _ = mock_stripe_payout_account
        create.side_effect = StripeAPIUnavailableError("down")

        response = org_client.post(self.url, {"principalId": principal_id}, format="json")

        assert response.status_code == 503
        assert response.data["success"] is False


@pytest.mark.django_db
class TestPayoutStatusView:
    @property
    def url(self):
        return reverse("payments:payout_status")

    def test_without_identity(self, org_client, principal_id):
        response = org_client.get(self.url, {"principalId": principal_id})

        assert response.status_code == 200
        assert response.data == {
            "hasPayoutAccount": False,
            "onboardingStatus": "not_started",
            "canReceiveTransfers": False,
            "payoutsEnabled": False,
            "detailsSubmitted": False,
        }

    def test_payout_ready(self, org_client, principal_id):
        BillingIdentityFactory(principal_id=principal_id, payout_ready=True)

        response = org_client.get(self.url, {"principalId": principal_id})

        assert response.data["hasPayoutAccount"] is True
        assert response.data["onboardingStatus"] == "complete"
        assert response.data["canReceiveTransfers"] is True

    def test_other_principal_denied(self, org_client):
        response = org_client.get(self.url, {"principalId": "solver-1"})

        assert response.status_code == 403


@pytest.mark.django_db
class TestBalanceView:
    @property
    def url(self):
        return reverse("payments:balance")

    def test_zero_without_payout_account(self, org_client, principal_id):
        response = org_client.get(self.url, {"principalId": principal_id})

        assert response.status_code == 200
        assert response.data == {"available": 0, "pending": 0, "total": 0, "currency": "usd"}

    def test_reads_processor_balance(self, org_client, principal_id):
        BillingIdentityFactory(principal_id=principal_id, payout_ready=True)

        with patch(
            "payments.services.balance_projector.StripeAdapter.retrieve_balance",
            return_value=BalanceResult(available={"usd": 1500}, pending={}),
        ):
            response = org_client.get(self.url, {"principalId": principal_id})

        assert response.data["available"] == 1500
        assert response.data["total"] == 1500

    def test_missing_principal(self, org_client):
        assert org_client.get(self.url).status_code == 400


@pytest.mark.django_db
class TestActivityView:
    @property
    def url(self):
        return reverse("payments:activity")

    def test_lists_charges(self, org_client, principal_id):
        FundingIntentFactory(principal_id=principal_id, intent_id="pi_a", bounty_funding__bounty_id="B5")

        response = org_client.get(self.url, {"principalId": principal_id})

        assert response.status_code == 200
        item = response.data["items"][0]
        assert item["kind"] == "charge"
        assert item["bountyId"] == "B5"
        assert item["processorId"] == "pi_a"
        assert response.data["pagination"]["total"] == 1
        assert response.data["pagination"]["hasNext"] is False

    def test_limit_out_of_range(self, org_client, principal_id):
        response = org_client.get(self.url, {"principalId": principal_id, "limit": 500})

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_INPUT"

    def test_other_principal_denied(self, org_client):
        assert org_client.get(self.url, {"principalId": "nope"}).status_code == 403
