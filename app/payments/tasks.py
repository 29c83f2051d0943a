"""
Celery tasks for payment housekeeping.

This module provides periodic tasks for:
- Marking webhook events that never finished processing as failed
- Deleting processed webhook events past the retention window
- Settling payout transfers left PENDING by a transient processor error

Webhooks themselves are applied synchronously by the webhook view; the
processor redelivers anything that answered 500.

Usage:
    # Scheduled through CELERY_BEAT_SCHEDULE in config/settings.py
    from payments.tasks import cleanup_old_webhooks
    cleanup_old_webhooks.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.models import PayoutTransfer, WebhookEvent
from payments.services import FundingService
from payments.state_machines import TransferStatus, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30

# Stripe keeps idempotency keys for 24 hours
IDEMPOTENCY_WINDOW_HOURS = 24
RECONCILE_BATCH_SIZE = 100


# =============================================================================
# Webhook Housekeeping Tasks
# =============================================================================


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to flag stuck webhooks.

    A row left PENDING or PROCESSING past the threshold belongs to a request
    that died before its transaction committed. It is marked FAILED so it
    shows up for operators; the processor's redelivery re-applies it.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status__in=[WebhookEventStatus.PENDING, WebhookEventStatus.PROCESSING],
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing did not complete")
        webhook.save(update_fields=["status", "error_message", "retry_count", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "event_id": webhook.event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int | None = None) -> dict:
    """
    Periodic task to clean up old processed webhook events.

    Only PROCESSED rows are removed; failed ones are kept for debugging.
    Deleting a row re-opens its event id, so the retention window must be
    longer than the processor's redelivery horizon.

    Args:
        days: Retention in days, WEBHOOK_RETENTION_DAYS when omitted

    Returns:
        Dict with count of webhooks deleted
    """
    if days is None:
        days = settings.WEBHOOK_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Payout Reconciliation Tasks
# =============================================================================


@shared_task
def reconcile_pending_transfers() -> dict:
    """
    Periodic task to settle releases stuck in PENDING.

    A release whose processor call failed transiently waits for a
    transfer webhook. If none arrives within PAYOUT_RECONCILE_AFTER_MINUTES
    the call is repeated with its original idempotency key. Transfers older
    than the processor's idempotency window are only flagged: repeating the
    call then could pay the solver twice.

    Returns:
        Dict with counts per outcome
    """
    now = timezone.now()
    stale_before = now - timedelta(minutes=settings.PAYOUT_RECONCILE_AFTER_MINUTES)
    expired_before = now - timedelta(hours=IDEMPOTENCY_WINDOW_HOURS)

    pending = (
        PayoutTransfer.objects.select_related("bounty_funding")
        .filter(status=TransferStatus.PENDING, created_at__lt=stale_before)
        .order_by("created_at")[:RECONCILE_BATCH_SIZE]
    )

    counts = {"settled": 0, "failed": 0, "still_pending": 0, "needs_review": 0}
    for transfer in pending:
        if transfer.created_at < expired_before:
            counts["needs_review"] += 1
            logger.error(
                "Pending transfer outlived the idempotency window, needs manual review",
                extra={
                    "transfer_pk": str(transfer.pk),
                    "bounty_id": transfer.bounty_funding.bounty_id,
                    "created_at": transfer.created_at.isoformat(),
                },
            )
            continue

        result = FundingService.reconcile_pending_transfer(transfer.pk)
        if result.success:
            counts["settled"] += 1
        elif PayoutTransfer.objects.filter(
            pk=transfer.pk, status=TransferStatus.FAILED
        ).exists():
            counts["failed"] += 1
        else:
            counts["still_pending"] += 1

    if any(counts.values()):
        logger.info("Pending transfer reconciliation finished", extra=counts)

    return counts
