"""
Webhook handling for payment processor events.

Webhooks are verified with an HMAC signature, deduplicated by event id,
parsed into a closed set of event variants and applied synchronously.

Usage:
    # In urls.py
    from payments.webhooks.views import processor_webhook

    urlpatterns = [
        path("webhooks/processor/", processor_webhook, name="processor_webhook"),
    ]
"""

from payments.webhooks.events import WebhookEventKind, parse_envelope, parse_event
from payments.webhooks.handlers import dispatch_event, register_handler
from payments.webhooks.signature import compute_signature, verify_signature
from payments.webhooks.views import processor_webhook

__all__ = [
    "WebhookEventKind",
    "compute_signature",
    "dispatch_event",
    "parse_envelope",
    "parse_event",
    "processor_webhook",
    "register_handler",
    "verify_signature",
]
