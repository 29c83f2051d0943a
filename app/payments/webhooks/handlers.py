"""
Webhook event handlers for processor events.

This module provides a handler registry keyed on WebhookEventKind and one
handler per event variant. Handlers run inside the webhook transaction
opened by the view, so their writes commit together with the dedup marker.

Usage:
    from payments.webhooks.handlers import dispatch_event

    result = dispatch_event(parse_event(envelope.event_type, envelope.data))
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.models import BillingIdentity
from payments.services import FundingService, IdentityResolver, MembershipService
from payments.webhooks.events import (
    IntentCanceled,
    IntentFailed,
    IntentSucceeded,
    PayoutAccountDisconnected,
    PayoutAccountUpdated,
    ProcessorEvent,
    RecurringChargeFailed,
    RecurringChargeSucceeded,
    SubscriptionCanceled,
    SubscriptionCreated,
    TransferCreated,
    TransferFailed,
    WebhookEventKind,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[WebhookEventKind, Callable[..., ServiceResult]] = {}


def register_handler(kind: WebhookEventKind) -> Callable:
    """
    Decorator to register the handler for an event kind.

    Usage:
        @register_handler(WebhookEventKind.INTENT_SUCCEEDED)
        def handle_intent_succeeded(event: IntentSucceeded) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[..., ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[kind] = func
        return func

    return decorator


def dispatch_event(event: ProcessorEvent) -> ServiceResult:
    """
    Dispatch a parsed event to its handler.

    Unknown events have no handler and are acknowledged with success.
    """
    handler = WEBHOOK_HANDLERS.get(event.kind)

    if handler is None:
        logger.info(
            "No handler for webhook event, acknowledging",
            extra={"event_type": getattr(event, "event_type", event.kind.value)},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {event.kind.value} to handler",
        extra={"event_kind": event.kind.value},
    )
    return handler(event)


# =============================================================================
# Funding Intent Handlers
# =============================================================================


@register_handler(WebhookEventKind.INTENT_SUCCEEDED)
def handle_intent_succeeded(event: IntentSucceeded) -> ServiceResult:
    return FundingService.on_intent_succeeded(
        intent_id=event.intent_id,
        metadata=event.metadata,
        amount_minor_units=event.amount,
        currency=event.currency,
    )


@register_handler(WebhookEventKind.INTENT_FAILED)
def handle_intent_failed(event: IntentFailed) -> ServiceResult:
    return FundingService.on_intent_failed(event.intent_id, event.reason)


@register_handler(WebhookEventKind.INTENT_CANCELED)
def handle_intent_canceled(event: IntentCanceled) -> ServiceResult:
    return FundingService.on_intent_canceled(event.intent_id)


# =============================================================================
# Membership Handlers
# =============================================================================


@register_handler(WebhookEventKind.RECURRING_CHARGE_FAILED)
def handle_recurring_charge_failed(event: RecurringChargeFailed) -> ServiceResult:
    return MembershipService.on_recurring_charge_failed(
        event.subscription_id,
        attempt_count=event.attempt_count,
    )


@register_handler(WebhookEventKind.RECURRING_CHARGE_SUCCEEDED)
def handle_recurring_charge_succeeded(event: RecurringChargeSucceeded) -> ServiceResult:
    return MembershipService.on_recurring_charge_succeeded(
        event.subscription_id,
        period_end=event.period_end,
    )


@register_handler(WebhookEventKind.SUBSCRIPTION_CREATED)
def handle_subscription_created(event: SubscriptionCreated) -> ServiceResult:
    return MembershipService.on_subscription_created(
        event.subscription_id,
        event.principal_id,
        period_end=event.period_end,
    )


@register_handler(WebhookEventKind.SUBSCRIPTION_CANCELED)
def handle_subscription_canceled(event: SubscriptionCanceled) -> ServiceResult:
    return MembershipService.on_subscription_canceled(event.subscription_id)


# =============================================================================
# Payout Account Handlers
# =============================================================================


@register_handler(WebhookEventKind.PAYOUT_ACCOUNT_UPDATED)
def handle_payout_account_updated(event: PayoutAccountUpdated) -> ServiceResult:
    """
    Mirror the processor's capability flags onto the billing identity.

    An account no identity references is logged and acknowledged.
    """
    identity = (
        BillingIdentity.objects.select_for_update()
        .filter(payout_account_id=event.account_id)
        .first()
    )
    if identity is None:
        logger.warning(
            "payout_account.updated for unknown account",
            extra={"account_id": event.account_id},
        )
        return ServiceResult.success(None)

    identity = IdentityResolver.apply_account_status(identity, event.as_account())
    return ServiceResult.success(identity)


@register_handler(WebhookEventKind.PAYOUT_ACCOUNT_DISCONNECTED)
def handle_payout_account_disconnected(event: PayoutAccountDisconnected) -> ServiceResult:
    if not IdentityResolver.disconnect_payout_account(event.account_id):
        logger.info(
            "payout_account.disconnected for unknown account",
            extra={"account_id": event.account_id},
        )
    return ServiceResult.success(None)


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler(WebhookEventKind.TRANSFER_CREATED)
def handle_transfer_created(event: TransferCreated) -> ServiceResult:
    return FundingService.on_transfer_created(event.transfer_id, event.metadata)


@register_handler(WebhookEventKind.TRANSFER_FAILED)
def handle_transfer_failed(event: TransferFailed) -> ServiceResult:
    return FundingService.on_transfer_failed(
        event.transfer_id,
        event.metadata,
        reason=event.reason,
    )
