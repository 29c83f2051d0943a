"""
DRF serializers for payments app.

This module provides serializers for:
- Funding intent requests and responses
- Release and refund of held funds
- Payout onboarding links and status
- Balance and activity read models
- Bounty funding state

Field names on the wire are camelCase; the service layer uses snake_case.

Related files:
    - services/: FundingService, IdentityResolver, BalanceProjector
    - views.py: Payment API views
"""

from __future__ import annotations

from rest_framework import serializers


# =============================================================================
# Funding
# =============================================================================


class FundingIntentRequestSerializer(serializers.Serializer):
    """
    Request body for POST funding-intents/.

    Amount positivity is checked by FundingService so it reports
    INVALID_AMOUNT rather than a generic field error.
    """

    bountyId = serializers.CharField(max_length=128)
    amount = serializers.IntegerField()
    currency = serializers.CharField(max_length=3, min_length=3)
    principalId = serializers.CharField(max_length=64)


class FundingIntentResponseSerializer(serializers.Serializer):
    clientSecret = serializers.CharField(source="client_secret")
    intentId = serializers.CharField(source="intent_id")


class FundingStateSerializer(serializers.Serializer):
    bountyId = serializers.CharField()
    state = serializers.CharField()


class ReleaseRequestSerializer(serializers.Serializer):
    """
    Request body for POST bounties/<bounty_id>/release/.

    amount defaults to the full held amount.
    """

    solverPrincipalId = serializers.CharField(max_length=64)
    amount = serializers.IntegerField(required=False)


class ReleaseResponseSerializer(serializers.Serializer):
    bountyId = serializers.CharField(source="funding.bounty_id")
    state = serializers.CharField(source="funding.state")
    solverPrincipalId = serializers.CharField(source="transfer.solver_principal_id")
    amount = serializers.IntegerField(source="transfer.amount_minor_units")
    transferId = serializers.CharField(source="transfer.transfer_id", allow_null=True)


class RefundRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


# =============================================================================
# Payout Onboarding
# =============================================================================


class PrincipalRequestSerializer(serializers.Serializer):
    principalId = serializers.CharField(max_length=64)


class PayoutOnboardingResponseSerializer(serializers.Serializer):
    url = serializers.URLField()
    expiresAt = serializers.IntegerField(
        source="expires_at",
        help_text="Link expiry as Unix seconds",
    )
    accountId = serializers.CharField(source="account_id")


class PayoutStatusSerializer(serializers.Serializer):
    hasPayoutAccount = serializers.BooleanField(source="has_payout_account")
    onboardingStatus = serializers.CharField(source="onboarding_status")
    canReceiveTransfers = serializers.BooleanField(source="can_receive_transfers")
    payoutsEnabled = serializers.BooleanField(source="payouts_enabled")
    detailsSubmitted = serializers.BooleanField(source="details_submitted")


# =============================================================================
# Balance & Activity
# =============================================================================


class BalanceSerializer(serializers.Serializer):
    """Balance in minor units of the platform currency."""

    available = serializers.IntegerField()
    pending = serializers.IntegerField()
    total = serializers.IntegerField()
    currency = serializers.CharField()


class ActivityQuerySerializer(serializers.Serializer):
    principalId = serializers.CharField(max_length=64)
    page = serializers.IntegerField(required=False, default=1)
    limit = serializers.IntegerField(required=False, default=20)


class ActivityItemSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=["charge", "transfer"])
    bountyId = serializers.CharField(source="bounty_id")
    amount = serializers.IntegerField()
    currency = serializers.CharField()
    status = serializers.CharField()
    processorId = serializers.CharField(source="processor_id", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")


class PaginationSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    page = serializers.IntegerField()
    perPage = serializers.IntegerField(source="per_page")
    totalPages = serializers.IntegerField(source="total_pages")
    hasNext = serializers.BooleanField(source="has_next")
    hasPrevious = serializers.BooleanField(source="has_previous")


class ActivityPageSerializer(serializers.Serializer):
    items = ActivityItemSerializer(many=True)
    pagination = PaginationSerializer()
