"""
Django admin configuration for notification models.
"""

from django.contrib import admin

from notifications.models import PaymentNotification


@admin.register(PaymentNotification)
class PaymentNotificationAdmin(admin.ModelAdmin):
    """Read-mostly view of recorded payment notifications."""

    list_display = [
        "kind",
        "bounty_id",
        "principal_id",
        "amount_minor_units",
        "read_at",
        "created_at",
    ]
    list_filter = ["kind"]
    search_fields = ["bounty_id", "principal_id", "idempotency_key"]
    readonly_fields = ["id", "idempotency_key", "created_at", "updated_at"]
    ordering = ["-created_at"]
