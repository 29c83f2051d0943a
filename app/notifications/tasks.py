"""
Celery tasks for notification recording.

Tasks:
    record_payment_notification: Persist a payment notification

Design:
    - Tasks receive plain values, never model instances
    - Recording is idempotent, so autoretry after a partial failure is safe

Usage:
    # Called by NotificationDispatcher.dispatch() after commit
    record_payment_notification.delay(
        principal_id="...", kind="bounty_funded", bounty_id="B1",
        amount_minor_units=10000,
    )
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def record_payment_notification(
    self,
    principal_id: str,
    kind: str,
    bounty_id: str,
    amount_minor_units: int,
) -> str:
    """
    Record a payment notification.

    Returns:
        The notification id as a string
    """
    from notifications.services import NotificationDispatcher

    result = NotificationDispatcher.record(
        principal_id=principal_id,
        kind=kind,
        bounty_id=bounty_id,
        amount_minor_units=amount_minor_units,
    )
    logger.debug(
        f"Notification task finished for bounty {bounty_id}",
        extra={"attempt": self.request.retries + 1},
    )
    return str(result.data.id)
