"""
Pytest fixtures for payment tests.

Provides organizations and members for billing-principal checks, solver
identities in various onboarding states, bounties in each escrow state,
and an authenticated API client scoped to an active organization.

Usage:
    def test_release(held_funding, payout_ready_solver, mock_stripe_transfer):
        result = FundingService.release_to_solver(
            held_funding.bounty_id, payout_ready_solver.principal_id
        )
        assert result.success
"""

from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import (
    OrganizationFactory,
    OrganizationMemberFactory,
    UserFactory,
)
from payments.adapters import (
    AccountLinkResult,
    CustomerResult,
    PaymentIntentResult,
    PayoutAccountResult,
    TransferResult,
)
from payments.services.billing_gate import ACTIVE_ORGANIZATION_HEADER
from payments.tests.factories import (
    BillingIdentityFactory,
    BountyFundingFactory,
    HeldBountyFundingFactory,
)


# =============================================================================
# Users and Organizations
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def organization(db):
    return OrganizationFactory()


@pytest.fixture
def membership(db, user, organization):
    """The test user as a member of the test organization."""
    return OrganizationMemberFactory(user=user, organization=organization)


@pytest.fixture
def principal_id(organization):
    """Billing principal id of the test organization."""
    return str(organization.id)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def org_client(api_client, user, membership, organization):
    """
    API client authenticated as a member acting for its organization.
    """
    api_client.force_authenticate(user=user)
    api_client.credentials(**{_header_meta_key(ACTIVE_ORGANIZATION_HEADER): str(organization.id)})
    return api_client


def _header_meta_key(header: str) -> str:
    return "HTTP_" + header.upper().replace("-", "_")


# =============================================================================
# Billing Identities
# =============================================================================


@pytest.fixture
def payout_ready_solver(db):
    """Solver whose payout account can receive transfers."""
    return BillingIdentityFactory(principal_id="solver-1", payout_ready=True)


@pytest.fixture
def onboarding_solver(db):
    """Solver with a payout account that has not finished onboarding."""
    return BillingIdentityFactory(
        principal_id="solver-2",
        payout_account_id="acct_onboarding",
    )


# =============================================================================
# Bounty Funding
# =============================================================================


@pytest.fixture
def unfunded_funding(db):
    return BountyFundingFactory(bounty_id="B1")


@pytest.fixture
def held_funding(db):
    """Bounty B1 holding 10000 usd paid by creator-B1."""
    return HeldBountyFundingFactory(bounty_id="B1")


# =============================================================================
# Processor Doubles
# =============================================================================


@pytest.fixture
def mock_stripe_customer():
    with patch("payments.services.identity_resolver.StripeAdapter.create_customer") as mock:
        mock.return_value = CustomerResult(id="cus_test123", email="billing@example.com")
        yield mock


@pytest.fixture
def mock_stripe_intent():
    with patch("payments.services.funding_service.StripeAdapter.create_payment_intent") as mock:
        mock.return_value = PaymentIntentResult(
            id="pi_test123",
            status="requires_payment_method",
            amount_minor_units=10000,
            currency="usd",
            client_secret="pi_test123_secret_abc",
        )
        yield mock


@pytest.fixture
def mock_stripe_transfer():
    with patch("payments.services.funding_service.StripeAdapter.create_transfer") as mock:
        mock.return_value = TransferResult(
            id="tr_test123",
            amount_minor_units=10000,
            currency="usd",
            destination_account="acct_test",
        )
        yield mock


@pytest.fixture
def mock_stripe_payout_account():
    with patch(
        "payments.services.identity_resolver.StripeAdapter.create_payout_account"
    ) as create, patch(
        "payments.services.identity_resolver.StripeAdapter.create_account_link"
    ) as link:
        create.return_value = PayoutAccountResult(id="acct_new123")
        link.return_value = AccountLinkResult(
            url="https://connect.example.com/setup/acct_new123",
            expires_at=1893456000,
        )
        yield create, link
