"""
Payment services for bounty funding, payouts and billing identity.

This module provides:
- IdentityResolver: Principal -> processor customer / payout account
- FundingService: Funding intents, escrow, release and refund
- MembershipService: Recurring charge grace period
- BillingIdentityGate: Org-scoped billing principal resolution
- BalanceProjector: Balance and activity read models

Usage:
    from payments.services import FundingService

    result = FundingService.create_funding_intent(
        bounty_id="B1",
        amount_minor_units=10000,
        currency="usd",
        principal_id=org_id,
        email="billing@acme.test",
    )
"""

from payments.services.balance_projector import Balance, BalanceProjector
from payments.services.billing_gate import (
    BillingIdentityGate,
    BillingPrincipal,
    SessionContext,
)
from payments.services.funding_service import (
    FundingIntentCreated,
    FundingService,
    ReleaseResult,
)
from payments.services.identity_resolver import (
    IdentityResolver,
    derive_onboarding_status,
)
from payments.services.membership_service import MembershipService

__all__ = [
    "Balance",
    "BalanceProjector",
    "BillingIdentityGate",
    "BillingPrincipal",
    "FundingIntentCreated",
    "FundingService",
    "IdentityResolver",
    "MembershipService",
    "ReleaseResult",
    "SessionContext",
    "derive_onboarding_status",
]
