"""
BillingIdentity model mapping billing principals to processor identities.

A billing principal (a user or an organization) owns at most one Stripe
Customer, used to pay for bounties and memberships, and at most one Stripe
Connect payout account, used to receive released bounty funds.

Usage:
    from payments.models import BillingIdentity

    identity = BillingIdentity.objects.filter(principal_id=org_id).first()
    if identity and identity.can_receive_transfers:
        # Solver may be paid out
        pass

Note:
    Rows are never deleted. A disconnected payout account only clears
    payout_account_id and the capability flags.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import OnboardingStatus, PrincipalType


class BillingIdentity(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Persistent mapping from a principal to its processor identities.

    Fields:
        principal_id: Opaque id of the user or organization (unique)
        principal_type: Whether the principal is a user or an organization
        email: Contact email registered with the processor
        customer_id: Stripe Customer ID (cus_xxx), unique when set
        payout_account_id: Stripe Connect account ID (acct_xxx), unique when set
        payout_account_generation: Attempt number for creating the next payout account
        onboarding_status: Onboarding state reported by the processor
        charges_enabled / payouts_enabled / details_submitted: capability flags
        capabilities_synced_at: When the flags were last recorded

    Concurrency:
        Creation is idempotent: the unique principal_id constraint makes a
        racing insert fail with IntegrityError, and the loser re-reads the
        winning row. customer_id and payout_account_id are only written
        with a conditional update while still NULL.
    """

    # ==========================================================================
    # Principal
    # ==========================================================================

    principal_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Opaque id of the billing principal (user or organization)",
    )

    principal_type = models.CharField(
        max_length=20,
        choices=PrincipalType.choices,
        default=PrincipalType.USER,
        help_text="Kind of entity the principal id refers to",
    )

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Email registered with the processor for this principal",
    )

    # ==========================================================================
    # Processor Identities
    # ==========================================================================

    customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    payout_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Connect Express account ID (acct_xxx)",
    )

    payout_account_generation = models.PositiveIntegerField(
        default=1,
        help_text="Bumped on disconnect so the next account gets a fresh idempotency key",
    )

    # ==========================================================================
    # Payout Capability
    # ==========================================================================

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.NOT_STARTED,
        db_index=True,
        help_text="Current Stripe Connect onboarding status",
    )

    charges_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe has enabled charges for the payout account",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe has enabled payouts for the payout account",
    )

    details_submitted = models.BooleanField(
        default=False,
        help_text="Whether the account holder finished submitting onboarding details",
    )

    capabilities_synced_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the capability flags were last recorded from the processor",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Billing Identity"
        verbose_name_plural = "Billing Identities"

    def __str__(self) -> str:
        return f"BillingIdentity({self.principal_id}, {self.customer_id})"

    @property
    def can_receive_transfers(self) -> bool:
        """
        Check if released funds may be transferred to this principal.

        Requires a payout account whose onboarding is complete and whose
        payouts are enabled.
        """
        return bool(
            self.payout_account_id
            and self.onboarding_status == OnboardingStatus.COMPLETE
            and self.payouts_enabled
        )
