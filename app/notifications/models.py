"""
Notification models.

This module defines the record written when money moves for a bounty:
- PaymentNotificationKind: What happened (funded, released, refunded)
- PaymentNotification: One notification addressed to a billing principal

Design Decisions:
    - Recipients are opaque principal ids, not user FKs, because a
      principal can be an organization
    - idempotency_key is unique so a redelivered task records once

Usage:
    from notifications.models import PaymentNotification, PaymentNotificationKind

    PaymentNotification.objects.filter(
        principal_id=org_id,
        kind=PaymentNotificationKind.BOUNTY_RELEASED,
    )
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class PaymentNotificationKind(models.TextChoices):
    """Kinds of payment notifications."""

    BOUNTY_FUNDED = "bounty_funded", "Bounty Funded"
    BOUNTY_RELEASED = "bounty_released", "Bounty Released"
    BOUNTY_REFUNDED = "bounty_refunded", "Bounty Refunded"


class PaymentNotification(UUIDPrimaryKeyMixin, BaseModel):
    """
    Notification that funds for a bounty changed hands.

    Fields:
        principal_id: Billing principal the notification is addressed to
        kind: What happened
        bounty_id: Bounty the money belongs to
        amount_minor_units: Amount in smallest currency unit
        idempotency_key: Unique key derived from kind and bounty
        read_at: When the recipient read it (null = unread)
    """

    principal_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Billing principal the notification is addressed to",
    )

    kind = models.CharField(
        max_length=30,
        choices=PaymentNotificationKind.choices,
        help_text="What happened to the bounty's funds",
    )

    bounty_id = models.CharField(
        max_length=255,
        help_text="Bounty the notification refers to",
    )

    amount_minor_units = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount in smallest currency unit (e.g., cents)",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Deduplication key; one notification per kind and bounty",
    )

    read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the notification was read",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Notification"
        verbose_name_plural = "Payment Notifications"
        indexes = [
            models.Index(fields=["principal_id", "read_at"], name="payment_notif_principal_idx"),
        ]

    def __str__(self) -> str:
        return f"PaymentNotification({self.kind}, {self.bounty_id}, {self.principal_id})"

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
