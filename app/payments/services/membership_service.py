"""
Membership billing service.

Applies recurring-charge and subscription events to MembershipBilling.
A failed charge only downgrades a membership once the failure count
reaches BILLING_GRACE_PERIOD_ATTEMPTS; a single declined card never
costs a member their plan.

Usage:
    from payments.services import MembershipService

    MembershipService.on_recurring_charge_failed("sub_123", attempt_count=2)
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings

from core.services import BaseService, ServiceResult

from payments.models import MembershipBilling
from payments.state_machines import MembershipPlan


class MembershipService(BaseService):
    """Grace-period handling for membership billing."""

    @classmethod
    def grace_threshold(cls) -> int:
        return settings.BILLING_GRACE_PERIOD_ATTEMPTS

    @classmethod
    def on_recurring_charge_failed(
        cls,
        subscription_id: str,
        attempt_count: int | None = None,
    ) -> ServiceResult[MembershipBilling | None]:
        """
        Count a failed recurring charge and downgrade at the threshold.

        Args:
            subscription_id: Stripe Subscription ID
            attempt_count: Processor's attempt counter; when absent the
                stored count is incremented

        Returns:
            ServiceResult with the membership, or None for an unknown
            subscription (logged, not an error)
        """
        membership = (
            MembershipBilling.objects.select_for_update()
            .filter(subscription_id=subscription_id)
            .first()
        )
        if membership is None:
            cls.get_logger().warning(
                "Failed charge for unknown subscription",
                extra={"subscription_id": subscription_id},
            )
            return ServiceResult.success(None)

        membership.record_failed_charge(attempt_count)
        threshold = cls.grace_threshold()
        log_context = {
            "subscription_id": subscription_id,
            "principal_id": membership.principal_id,
            "failed_charge_count": membership.failed_charge_count,
            "threshold": threshold,
        }

        if membership.failed_charge_count >= threshold and membership.plan == MembershipPlan.PRO:
            membership.mark_past_due()
            cls.get_logger().warning("Membership past due", extra=log_context)
        else:
            cls.get_logger().info("Recurring charge failed within grace", extra=log_context)

        membership.save()
        return ServiceResult.success(membership)

    @classmethod
    def on_recurring_charge_succeeded(
        cls,
        subscription_id: str,
        period_end: datetime | None = None,
    ) -> ServiceResult[MembershipBilling | None]:
        """Renew PRO (or recover from PAST_DUE) and reset the failure count."""
        membership = (
            MembershipBilling.objects.select_for_update()
            .filter(subscription_id=subscription_id)
            .first()
        )
        if membership is None:
            cls.get_logger().warning(
                "Successful charge for unknown subscription",
                extra={"subscription_id": subscription_id},
            )
            return ServiceResult.success(None)

        membership.activate(subscription_id, period_end)
        membership.save()
        return ServiceResult.success(membership)

    @classmethod
    def on_subscription_created(
        cls,
        subscription_id: str,
        principal_id: str,
        period_end: datetime | None = None,
    ) -> ServiceResult[MembershipBilling]:
        MembershipBilling.objects.get_or_create(principal_id=principal_id)
        membership = MembershipBilling.objects.select_for_update().get(
            principal_id=principal_id
        )

        membership.activate(subscription_id, period_end)
        membership.save()

        cls.get_logger().info(
            "Membership activated",
            extra={"subscription_id": subscription_id, "principal_id": principal_id},
        )
        return ServiceResult.success(membership)

    @classmethod
    def on_subscription_canceled(
        cls,
        subscription_id: str,
    ) -> ServiceResult[MembershipBilling | None]:
        """
        Return the membership to FREE.

        An unknown subscription is logged and acknowledged.
        """
        membership = (
            MembershipBilling.objects.select_for_update()
            .filter(subscription_id=subscription_id)
            .first()
        )
        if membership is None:
            cls.get_logger().info(
                "Cancellation for unknown subscription",
                extra={"subscription_id": subscription_id},
            )
            return ServiceResult.success(None)

        if membership.plan != MembershipPlan.FREE:
            membership.cancel()
            membership.save()

        cls.get_logger().info(
            "Membership canceled",
            extra={"subscription_id": subscription_id, "principal_id": membership.principal_id},
        )
        return ServiceResult.success(membership)
