"""
WebhookEvent model for processor webhook deduplication.

Stores every webhook event received from the processor. The unique
event_id constraint guarantees an event is applied at most once; the
dedup marker is committed in the same transaction as the event's effects.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        event_id="evt_1234567890",
        defaults={"event_type": "intent.succeeded", "payload": payload},
    )

    if not created and event.is_processed:
        # Duplicate delivery
        return HttpResponse("Already processed", status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks processor webhook events for idempotent processing.

    Processing Flow:
        1. Verify signature over the raw body
        2. get_or_create on event_id
        3. If PROCESSED -> 200 (duplicate)
        4. Lock the row, re-check, apply handler, mark PROCESSED
        5. On failure mark FAILED and answer 500 so the processor redelivers

    Fields:
        event_id: Envelope id, or "sha256:<digest>" of the raw body
        event_type: Wire event name (e.g., 'intent.succeeded')
        payload: Parsed JSON envelope
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of failed processing attempts

    Note:
        created_at doubles as the received-at timestamp.
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Processor event id - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Wire event name (e.g., 'intent.succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook envelope (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of failed processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_event_status_idx"),
            models.Index(fields=["event_type", "created_at"], name="webhook_event_type_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        """Check if event has been successfully processed."""
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
        self.retry_count += 1
