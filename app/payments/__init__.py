"""
Payments app for bounty funding and payouts.

This app handles:
- Processor customer and payout account resolution
- Funding intents and the bounty escrow state machine
- Releasing held funds to a solver's payout account
- Membership billing with a failed-charge grace period
- Signed processor webhooks
- Balance and activity read models

Related apps:
    - authentication: Organizations and memberships for the billing gate
    - notifications: Funded/released/refunded notifications

Usage:
    from payments.services import FundingService

    result = FundingService.release_to_solver("B1", solver_principal_id)
"""
