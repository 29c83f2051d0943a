"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

BountyFunding States:
    unfunded → held → released
    held → refunded
    released and refunded are terminal

MembershipBilling Plans:
    free → pro (subscription created / charge succeeded)
    pro → past_due (failed charges reached the grace threshold)
    past_due → pro (recovering charge)
    pro/past_due → free (subscription canceled)

FundingIntent Statuses (mirrored from the processor):
    created → requires_action → succeeded / failed / canceled
"""

from django.db import models


class FundingState(models.TextChoices):
    """
    States for the BountyFunding model lifecycle.

    Terminal states: RELEASED, REFUNDED

    State Flow:
        UNFUNDED → HELD → RELEASED
        HELD → REFUNDED (explicit cancellation before release)
    """

    UNFUNDED = "unfunded", "Unfunded"
    HELD = "held", "Held"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"

    @classmethod
    def terminal_states(cls) -> list[str]:
        return [cls.RELEASED, cls.REFUNDED]


class FundingIntentStatus(models.TextChoices):
    """
    Status of a FundingIntent.

    Only SUCCEEDED moves money into escrow; at most one intent per
    bounty may ever reach it.
    """

    CREATED = "created", "Created"
    REQUIRES_ACTION = "requires_action", "Requires Action"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"

    @classmethod
    def from_processor(cls, status: str | None) -> "FundingIntentStatus":
        """
        Map a Stripe PaymentIntent status onto our coarser set.

        requires_payment_method, requires_confirmation and processing are
        all "created" from our point of view: nothing is owed yet.
        """
        mapping = {
            "succeeded": cls.SUCCEEDED,
            "canceled": cls.CANCELED,
            "requires_action": cls.REQUIRES_ACTION,
            "requires_capture": cls.REQUIRES_ACTION,
        }
        return mapping.get(status or "", cls.CREATED)


class TransferStatus(models.TextChoices):
    """
    Status of a PayoutTransfer.

    State Flow:
        PENDING → SUCCEEDED
        PENDING → FAILED

    A PENDING transfer blocks any further release of the same bounty.
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class MembershipPlan(models.TextChoices):
    """
    Plan of a MembershipBilling record.

    PAST_DUE is only entered once the failed charge count reaches the
    configured grace threshold.
    """

    FREE = "free", "Free"
    PRO = "pro", "Pro"
    PAST_DUE = "past_due", "Past Due"


class OnboardingStatus(models.TextChoices):
    """
    Stripe Connect onboarding status for a BillingIdentity payout account.

    Only COMPLETE (with payouts enabled) allows receiving transfers.
    """

    NOT_STARTED = "not_started", "Not Started"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETE = "complete", "Complete"
    REJECTED = "rejected", "Rejected"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (redelivery retries)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class PrincipalType(models.TextChoices):
    """Kind of entity a billing principal id refers to."""

    USER = "user", "User"
    ORGANIZATION = "organization", "Organization"


__all__ = [
    "FundingState",
    "FundingIntentStatus",
    "TransferStatus",
    "MembershipPlan",
    "OnboardingStatus",
    "WebhookEventStatus",
    "PrincipalType",
]
