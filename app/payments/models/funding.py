"""
Bounty funding models: escrow state, funding intents and payout transfers.

BountyFunding is the escrow record of one bounty. FundingIntent mirrors a
processor PaymentIntent created to fund it, and PayoutTransfer records each
attempt to move the held funds to the solver.

Usage:
    from payments.models import BountyFunding, FundingIntent
    from payments.state_machines import FundingState

    funding, _ = BountyFunding.objects.get_or_create(bounty_id="B1")

    intent = FundingIntent.objects.create(
        intent_id="pi_123",
        bounty_funding=funding,
        principal_id=org_id,
        amount_minor_units=10000,
        currency="usd",
    )

    # State transitions using django-fsm
    intent.mark_succeeded()
    intent.save()
    funding.hold(intent)  # unfunded -> held
    funding.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import (
    FundingIntentStatus,
    FundingState,
    TransferStatus,
)


class BountyFunding(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Escrow state of a single bounty.

    Uses django-fsm for state machine management and optimistic
    locking via version field for concurrency control.

    State Flow:
        UNFUNDED -> HELD (funding intent succeeded, exactly once)
        HELD -> RELEASED (transfer to solver succeeded)
        HELD -> REFUNDED (explicit cancellation before release)

    Fields:
        bounty_id: Opaque id of the bounty (unique)
        state: Current FSM state
        funding_intent: The one succeeded FundingIntent backing the escrow
        amount_minor_units / currency: What is held
        creator_principal_id: Principal that paid
        solver_principal_id: Principal the funds were released to
        held_at / released_at / refunded_at: Transition timestamps

    Note:
        A bounty with no row is treated as UNFUNDED by the services.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    bounty_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Opaque bounty id supplied by the marketplace",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=FundingState.UNFUNDED,
        choices=FundingState.choices,
        db_index=True,
        protected=True,
        help_text="Current escrow state of the bounty (managed by FSM)",
    )

    # ==========================================================================
    # Escrow Details
    # ==========================================================================

    funding_intent = models.ForeignKey(
        "payments.FundingIntent",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Succeeded funding intent that backs the held funds",
    )

    amount_minor_units = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Held amount in the smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        blank=True,
        default="",
        help_text="ISO 4217 currency code (lowercase) of the held funds",
    )

    creator_principal_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Principal that funded the bounty",
    )

    solver_principal_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Principal the funds were released to",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    held_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the funds entered escrow",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the funds were released to the solver",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the funds were refunded to the creator",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Bounty Funding"
        verbose_name_plural = "Bounty Fundings"

    def __str__(self) -> str:
        return f"BountyFunding({self.bounty_id}, {self.state})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=FundingState.UNFUNDED,
        target=FundingState.HELD,
    )
    def hold(self, intent: FundingIntent):
        """
        Place the intent's funds in escrow.

        Transition: UNFUNDED -> HELD

        Args:
            intent: The succeeded FundingIntent
        """
        self.funding_intent = intent
        self.amount_minor_units = intent.amount_minor_units
        self.currency = intent.currency
        self.creator_principal_id = intent.principal_id
        self.held_at = timezone.now()

    @transition(
        field=state,
        source=FundingState.HELD,
        target=FundingState.RELEASED,
    )
    def release(self, solver_principal_id: str):
        """
        Mark the held funds as paid out.

        Transition: HELD -> RELEASED

        Called once the transfer to the solver has succeeded.
        """
        self.solver_principal_id = solver_principal_id
        self.released_at = timezone.now()

    @transition(
        field=state,
        source=FundingState.HELD,
        target=FundingState.REFUNDED,
    )
    def refund(self):
        """
        Return the held funds to the creator.

        Transition: HELD -> REFUNDED
        """
        self.refunded_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_held(self) -> bool:
        return self.state == FundingState.HELD

    @property
    def is_terminal(self) -> bool:
        """Check if the funding can no longer change state."""
        return self.state in FundingState.terminal_states()


class FundingIntent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Local mirror of a processor PaymentIntent that funds a bounty.

    A bounty may accumulate several intents (abandoned checkouts,
    declined cards) but at most one of them can ever be SUCCEEDED;
    the conditional unique constraint makes a second success fail at
    the database.

    Fields:
        intent_id: Stripe PaymentIntent ID (pi_xxx)
        bounty_funding: Escrow record this intent funds
        principal_id: Billing principal that pays
        amount_minor_units: Amount in smallest currency unit (> 0)
        currency: ISO 4217 currency code
        status: Mirrored processor status
        client_secret: Secret handed to the client to confirm payment
        succeeded_at: When the processor reported success
        failure_reason: Last processor failure message
    """

    intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    bounty_funding = models.ForeignKey(
        BountyFunding,
        on_delete=models.PROTECT,
        related_name="intents",
        help_text="Escrow record this intent funds",
    )

    principal_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Billing principal paying for the bounty",
    )

    amount_minor_units = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=20,
        choices=FundingIntentStatus.choices,
        default=FundingIntentStatus.CREATED,
        db_index=True,
        help_text="Processor status of the intent",
    )

    client_secret = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Client secret used by the payer to confirm the intent",
    )

    succeeded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the processor reported the intent as succeeded",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Most recent failure message reported by the processor",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Funding Intent"
        verbose_name_plural = "Funding Intents"
        indexes = [
            models.Index(fields=["principal_id", "created_at"], name="funding_intent_principal_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_minor_units__gt=0),
                name="funding_intent_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["bounty_funding"],
                condition=models.Q(status=FundingIntentStatus.SUCCEEDED),
                name="unique_succeeded_intent_per_bounty",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_minor_units / 100:.2f} {self.currency.upper()}"
        return f"FundingIntent({self.intent_id}, {self.status}, {amount_display})"

    @property
    def is_succeeded(self) -> bool:
        return self.status == FundingIntentStatus.SUCCEEDED

    def mark_succeeded(self) -> None:
        """
        Record processor success.

        Note: Does not save - caller must save after calling.
        """
        self.status = FundingIntentStatus.SUCCEEDED
        self.succeeded_at = timezone.now()
        self.failure_reason = None

    def mark_failed(self, reason: str | None = None) -> None:
        """Record a failed payment attempt. Does not save."""
        self.status = FundingIntentStatus.FAILED
        if reason:
            self.failure_reason = reason

    def mark_canceled(self) -> None:
        """Record cancellation. Does not save."""
        self.status = FundingIntentStatus.CANCELED


class PayoutTransfer(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One attempt to transfer held bounty funds to the solver.

    Created PENDING before the processor is called, so a crash between
    the call and the bookkeeping leaves a visible record that the
    transfer.created / transfer.failed webhook later resolves.

    State Flow:
        PENDING -> SUCCEEDED
        PENDING -> FAILED

    Fields:
        bounty_funding: Escrow record being paid out
        solver_principal_id: Principal receiving the funds
        destination_account_id: Stripe Connect account (acct_xxx)
        amount_minor_units / currency: Amount transferred
        attempt: Attempt number, part of the idempotency key
        status: Current FSM state
        transfer_id: Stripe Transfer ID (tr_xxx), unique when set
        failure_reason: Error details if failed

    Note:
        At most one non-failed transfer exists per bounty, enforced by
        a conditional unique constraint.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    bounty_funding = models.ForeignKey(
        BountyFunding,
        on_delete=models.PROTECT,
        related_name="transfers",
        help_text="Escrow record being paid out",
    )

    solver_principal_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Billing principal receiving the funds",
    )

    destination_account_id = models.CharField(
        max_length=255,
        help_text="Stripe Connect account receiving the transfer (acct_xxx)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount_minor_units = models.PositiveBigIntegerField(
        help_text="Transfer amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    attempt = models.PositiveSmallIntegerField(
        default=1,
        help_text="Attempt number for this bounty, part of the idempotency key",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=TransferStatus.PENDING,
        choices=TransferStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the transfer (managed by FSM)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Detailed reason if the transfer failed",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer succeeded or failed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout Transfer"
        verbose_name_plural = "Payout Transfers"
        indexes = [
            models.Index(fields=["solver_principal_id", "created_at"], name="payout_transfer_solver_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_minor_units__gt=0),
                name="payout_transfer_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["bounty_funding"],
                condition=models.Q(
                    status__in=[TransferStatus.PENDING, TransferStatus.SUCCEEDED]
                ),
                name="unique_active_transfer_per_bounty",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_minor_units / 100:.2f} {self.currency.upper()}"
        return f"PayoutTransfer({self.id}, {self.status}, {amount_display})"

    @transition(
        field=status,
        source=TransferStatus.PENDING,
        target=TransferStatus.SUCCEEDED,
    )
    def succeed(self, transfer_id: str | None = None):
        """
        Transition: PENDING -> SUCCEEDED

        Args:
            transfer_id: Stripe Transfer ID, if not recorded yet
        """
        if transfer_id:
            self.transfer_id = transfer_id
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=TransferStatus.PENDING,
        target=TransferStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Transition: PENDING -> FAILED

        The bounty stays HELD; a later release creates a new attempt.
        """
        self.completed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @property
    def is_pending(self) -> bool:
        return self.status == TransferStatus.PENDING
