"""
Payment admin configuration.

Registers the payment domain models with the Django admin. Money-moving
state is read-only here; it only changes through the services and webhooks.
The transfer actions call FundingService so stuck releases can be settled.
"""

from django.contrib import admin

from payments.models import (
    BillingIdentity,
    BountyFunding,
    FundingIntent,
    MembershipBilling,
    PayoutTransfer,
    WebhookEvent,
)
from payments.services import FundingService
from payments.state_machines import TransferStatus

__all__ = [
    "BillingIdentityAdmin",
    "BountyFundingAdmin",
    "FundingIntentAdmin",
    "MembershipBillingAdmin",
    "PayoutTransferAdmin",
    "WebhookEventAdmin",
]


@admin.register(BillingIdentity)
class BillingIdentityAdmin(admin.ModelAdmin):
    """
    Admin configuration for BillingIdentity.

    Provides visibility into processor customers and payout account status.
    """

    list_display = [
        "principal_id",
        "principal_type",
        "customer_id",
        "payout_account_id",
        "onboarding_status",
        "payouts_enabled",
        "created_at",
    ]
    list_filter = ["principal_type", "onboarding_status", "payouts_enabled"]
    search_fields = ["principal_id", "email", "customer_id", "payout_account_id"]
    readonly_fields = [
        "id",
        "customer_id",
        "payout_account_id",
        "payout_account_generation",
        "capabilities_synced_at",
        "created_at",
        "updated_at",
        "version",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "principal_id", "principal_type", "email"),
            },
        ),
        (
            "Processor",
            {
                "fields": ("customer_id", "payout_account_id", "payout_account_generation"),
            },
        ),
        (
            "Payout Capability",
            {
                "fields": (
                    "onboarding_status",
                    "charges_enabled",
                    "payouts_enabled",
                    "details_submitted",
                    "capabilities_synced_at",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
                "classes": ("collapse",),
            },
        ),
    )


class FundingIntentInline(admin.TabularInline):
    model = FundingIntent
    fk_name = "bounty_funding"
    extra = 0
    can_delete = False
    fields = ["intent_id", "principal_id", "amount_minor_units", "status", "created_at"]
    readonly_fields = fields


class PayoutTransferInline(admin.TabularInline):
    model = PayoutTransfer
    extra = 0
    can_delete = False
    fields = ["attempt", "solver_principal_id", "amount_minor_units", "status", "transfer_id"]
    readonly_fields = fields


@admin.register(BountyFunding)
class BountyFundingAdmin(admin.ModelAdmin):
    """
    Admin configuration for BountyFunding.

    The state field is FSM-protected and cannot be edited here.
    """

    list_display = [
        "bounty_id",
        "state",
        "amount_minor_units",
        "currency",
        "creator_principal_id",
        "solver_principal_id",
        "held_at",
    ]
    list_filter = ["state", "currency"]
    search_fields = ["bounty_id", "creator_principal_id", "solver_principal_id"]
    readonly_fields = [
        "id",
        "bounty_id",
        "state",
        "funding_intent",
        "amount_minor_units",
        "currency",
        "creator_principal_id",
        "solver_principal_id",
        "held_at",
        "released_at",
        "refunded_at",
        "created_at",
        "updated_at",
        "version",
    ]
    inlines = [FundingIntentInline, PayoutTransferInline]
    ordering = ["-created_at"]


@admin.register(FundingIntent)
class FundingIntentAdmin(admin.ModelAdmin):
    list_display = [
        "intent_id",
        "bounty_funding",
        "principal_id",
        "amount_minor_units",
        "currency",
        "status",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["intent_id", "principal_id", "bounty_funding__bounty_id"]
    readonly_fields = [field.name for field in FundingIntent._meta.fields]
    ordering = ["-created_at"]


@admin.register(PayoutTransfer)
class PayoutTransferAdmin(admin.ModelAdmin):
    list_display = [
        "bounty_funding",
        "attempt",
        "solver_principal_id",
        "amount_minor_units",
        "status",
        "transfer_id",
        "created_at",
    ]
    list_filter = ["status"]
    search_fields = ["transfer_id", "solver_principal_id", "bounty_funding__bounty_id"]
    readonly_fields = [field.name for field in PayoutTransfer._meta.fields]
    ordering = ["-created_at"]
    actions = ["reconcile_selected", "fail_selected"]

    @admin.action(description="Re-send selected pending transfers to Stripe")
    def reconcile_selected(self, request, queryset):
        settled = 0
        for transfer in queryset.filter(status=TransferStatus.PENDING):
            if FundingService.reconcile_pending_transfer(transfer.pk).success:
                settled += 1
        self.message_user(request, f"Settled {settled} pending transfers.")

    @admin.action(description="Mark selected pending transfers as failed")
    def fail_selected(self, request, queryset):
        """Give up on transfers confirmed absent at Stripe; the bounty stays held."""
        failed = 0
        for transfer in queryset.filter(status=TransferStatus.PENDING):
            result = FundingService.fail_pending_transfer(
                transfer.pk, f"Failed by operator {request.user}"
            )
            if result.success:
                failed += 1
        self.message_user(request, f"Marked {failed} transfers as failed.")


@admin.register(MembershipBilling)
class MembershipBillingAdmin(admin.ModelAdmin):
    list_display = [
        "principal_id",
        "plan",
        "subscription_id",
        "expires_at",
        "failed_charge_count",
        "last_charge_failed_at",
    ]
    list_filter = ["plan"]
    search_fields = ["principal_id", "subscription_id"]
    readonly_fields = [field.name for field in MembershipBilling._meta.fields]
    ordering = ["-updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )
