"""
MembershipBilling model for recurring membership plans.

Tracks one principal's paid plan and the failed-charge counter that
drives the grace period before a membership becomes past due.

Usage:
    from payments.models import MembershipBilling

    membership = MembershipBilling.objects.get(subscription_id="sub_123")
    membership.mark_past_due()  # pro -> past_due
    membership.save()
"""

from __future__ import annotations

from datetime import datetime

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import MembershipPlan


class MembershipBilling(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Membership plan of a billing principal.

    State Flow:
        FREE -> PRO (subscription created)
        PRO -> PRO (renewal charge succeeded)
        PRO -> PAST_DUE (failed charges reached the grace threshold)
        PAST_DUE -> PRO (recovering charge succeeded)
        PRO/PAST_DUE -> FREE (subscription canceled)

    Fields:
        principal_id: Billing principal (unique)
        plan: Current FSM state
        subscription_id: Stripe Subscription ID (sub_xxx), unique when set
        expires_at: End of the current paid period as reported by Stripe
        failed_charge_count: Consecutive failed recurring charges
        last_charge_failed_at: When the last charge failed
    """

    principal_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Billing principal that owns the membership",
    )

    plan = FSMField(
        default=MembershipPlan.FREE,
        choices=MembershipPlan.choices,
        db_index=True,
        protected=True,
        help_text="Current membership plan (managed by FSM)",
    )

    subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the current paid period",
    )

    failed_charge_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Consecutive failed recurring charges in the current period",
    )

    last_charge_failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the most recent recurring charge failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Membership Billing"
        verbose_name_plural = "Membership Billings"

    def __str__(self) -> str:
        return f"MembershipBilling({self.principal_id}, {self.plan})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=plan,
        source=[MembershipPlan.FREE, MembershipPlan.PRO, MembershipPlan.PAST_DUE],
        target=MembershipPlan.PRO,
    )
    def activate(self, subscription_id: str, expires_at: datetime | None = None):
        """
        Enter or renew the paid plan.

        Transition: FREE/PRO/PAST_DUE -> PRO

        Resets the failure counter; a successful charge ends any grace period.
        """
        self.subscription_id = subscription_id
        if expires_at is not None:
            self.expires_at = expires_at
        self.failed_charge_count = 0
        self.last_charge_failed_at = None

    @transition(
        field=plan,
        source=MembershipPlan.PRO,
        target=MembershipPlan.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Transition: PRO -> PAST_DUE

        Only called once failed_charge_count reached the grace threshold.
        """
        pass

    @transition(
        field=plan,
        source=[MembershipPlan.PRO, MembershipPlan.PAST_DUE],
        target=MembershipPlan.FREE,
    )
    def cancel(self):
        """
        Transition: PRO/PAST_DUE -> FREE
        """
        self.subscription_id = None
        self.expires_at = None
        self.failed_charge_count = 0
        self.last_charge_failed_at = None

    def record_failed_charge(self, attempt_count: int | None) -> None:
        """
        Update the failure counter from a failed recurring charge.

        The processor's attempt count wins when it is ahead of ours, so
        redelivered or out-of-order events never lower the counter.

        Note: Does not save - caller must save after calling.
        """
        if attempt_count is None:
            self.failed_charge_count += 1
        else:
            self.failed_charge_count = max(self.failed_charge_count, attempt_count)
        self.last_charge_failed_at = timezone.now()

    @property
    def is_pro(self) -> bool:
        return self.plan == MembershipPlan.PRO
