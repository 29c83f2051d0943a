"""
Payment domain models.

This module contains all payment-related models:
- BillingIdentity: Principal -> processor customer / payout account mapping
- BountyFunding: Escrow state of a bounty
- FundingIntent: Processor payment intents that fund a bounty
- PayoutTransfer: Transfers of held funds to a solver
- MembershipBilling: Recurring membership plan and grace-period counter
- WebhookEvent: Processor webhook dedup records
"""

from payments.models.billing_identity import BillingIdentity
from payments.models.funding import BountyFunding, FundingIntent, PayoutTransfer
from payments.models.membership import MembershipBilling
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "BillingIdentity",
    "BountyFunding",
    "FundingIntent",
    "MembershipBilling",
    "PayoutTransfer",
    "WebhookEvent",
]
