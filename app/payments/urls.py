"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/processor/ - Processor webhook endpoint
    - POST /funding-intents/ - Create a funding intent for a bounty
    - GET /bounties/<bounty_id>/funding-state/ - Bounty escrow state
    - POST /bounties/<bounty_id>/release/ - Release held funds to the solver (creator only)
    - POST /bounties/<bounty_id>/refund/ - Refund held funds to the creator (creator only)
    - POST /payout-onboarding/ - Payout account onboarding link
    - GET /payout-status/ - Payout readiness of a principal
    - GET /balance/ - Principal balance
    - GET /activity/ - Principal payment activity

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import (
    ActivityView,
    BalanceView,
    FundingIntentView,
    FundingStateView,
    PayoutOnboardingView,
    PayoutStatusView,
    RefundView,
    ReleaseView,
)
from payments.webhooks.views import processor_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/processor/", processor_webhook, name="processor_webhook"),
    # Funding
    path("funding-intents/", FundingIntentView.as_view(), name="funding_intents"),
    path(
        "bounties/<str:bounty_id>/funding-state/",
        FundingStateView.as_view(),
        name="funding_state",
    ),
    path("bounties/<str:bounty_id>/release/", ReleaseView.as_view(), name="release"),
    path("bounties/<str:bounty_id>/refund/", RefundView.as_view(), name="refund"),
    # Payouts
    path("payout-onboarding/", PayoutOnboardingView.as_view(), name="payout_onboarding"),
    path("payout-status/", PayoutStatusView.as_view(), name="payout_status"),
    # Read models
    path("balance/", BalanceView.as_view(), name="balance"),
    path("activity/", ActivityView.as_view(), name="activity"),
]
