"""
Notification services.

NotificationDispatcher is the collaborator the payments core calls when
funds for a bounty are held, released or refunded. Dispatch never blocks
the caller: the notification is recorded by a Celery task enqueued after
the surrounding transaction commits, so a rolled-back state change never
notifies anyone.

Usage:
    from notifications.models import PaymentNotificationKind
    from notifications.services import NotificationDispatcher

    with transaction.atomic():
        funding.release(solver_id)
        funding.save()
        NotificationDispatcher.dispatch(
            principal_id=solver_id,
            kind=PaymentNotificationKind.BOUNTY_RELEASED,
            bounty_id=funding.bounty_id,
            amount_minor_units=funding.amount_minor_units,
        )
"""

from __future__ import annotations

from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult
from notifications.models import PaymentNotification


class NotificationDispatcher(BaseService):
    """Records payment notifications for billing principals."""

    @classmethod
    def dispatch(
        cls,
        principal_id: str,
        kind: str,
        bounty_id: str,
        amount_minor_units: int,
    ) -> None:
        """
        Enqueue a notification once the current transaction commits.

        Outside a transaction the task is enqueued immediately.
        """
        from notifications import tasks

        def _enqueue() -> None:
            tasks.record_payment_notification.delay(
                principal_id=principal_id,
                kind=str(kind),
                bounty_id=bounty_id,
                amount_minor_units=amount_minor_units,
            )

        transaction.on_commit(_enqueue)

        cls.get_logger().info(
            "Payment notification scheduled",
            extra={
                "principal_id": principal_id,
                "kind": str(kind),
                "bounty_id": bounty_id,
            },
        )

    @classmethod
    def record(
        cls,
        principal_id: str,
        kind: str,
        bounty_id: str,
        amount_minor_units: int,
    ) -> ServiceResult[PaymentNotification]:
        """
        Persist a notification, at most once per kind and bounty.

        Returns the existing row when called again for the same event.
        """
        notification, created = PaymentNotification.objects.get_or_create(
            idempotency_key=f"{kind}:{bounty_id}",
            defaults={
                "principal_id": principal_id,
                "kind": kind,
                "bounty_id": bounty_id,
                "amount_minor_units": amount_minor_units,
            },
        )

        if created:
            cls.get_logger().info(
                f"Recorded {kind} notification for bounty {bounty_id}",
                extra={"notification_id": str(notification.id)},
            )
        return ServiceResult.success(notification)

    @classmethod
    def mark_as_read(cls, notification_id, principal_id: str) -> ServiceResult[int]:
        updated = PaymentNotification.objects.filter(
            id=notification_id,
            principal_id=principal_id,
            read_at__isnull=True,
        ).update(read_at=timezone.now())

        if not updated and not PaymentNotification.objects.filter(
            id=notification_id, principal_id=principal_id
        ).exists():
            return ServiceResult.failure(
                "Notification not found",
                error_code="NOT_FOUND",
            )
        return ServiceResult.success(updated)
