"""
Webhook endpoint view for the payment processor.

The view:
1. Verifies the X-Signature HMAC over the raw body
2. Parses the envelope and the typed event variant
3. Creates/retrieves the WebhookEvent dedup row
4. Applies the event and marks it processed in one transaction

Processing is synchronous so a failure can answer 500 and the processor's
own retry schedule redelivers the event.

Usage:
    # In urls.py
    from payments.webhooks.views import processor_webhook

    urlpatterns = [
        path("webhooks/processor/", processor_webhook, name="processor_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import (
    MalformedPayloadError,
    SignatureInvalidError,
    WebhookNotConfiguredError,
    WebhookProcessingError,
)
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.webhooks.events import parse_envelope, parse_event
from payments.webhooks.handlers import dispatch_event
from payments.webhooks.signature import SIGNATURE_HEADER, verify_signature


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def processor_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and apply a processor webhook event.

    Idempotency:
    - WebhookEvent.event_id is unique
    - The row is locked and re-checked before handlers run, and marked
      processed in the same transaction as the handlers' writes

    Returns:
        HttpResponse with status:
        - 200: Event applied, ignored (unknown kind) or already processed
        - 400: Missing/invalid signature or malformed event
        - 500: Handler failed or no webhook secret is configured; the
          processor should redeliver
    """
    payload = request.body

    # Step 1: Verify signature
    try:
        verify_signature(payload, request.headers.get(SIGNATURE_HEADER))
    except SignatureInvalidError as e:
        if e.error_code == "SIGNATURE_MISSING":
            logger.warning(f"Webhook received without {SIGNATURE_HEADER} header")
            return HttpResponse("Missing signature", status=400)
        logger.warning(
            "Webhook signature verification failed",
            extra={"security_event": True, "error": e.message},
        )
        return HttpResponse("Invalid signature", status=400)
    except WebhookNotConfiguredError as e:
        logger.critical(e.message)
        return HttpResponse("Webhook not configured", status=500)

    # Step 2: Parse envelope and variant
    try:
        envelope = parse_envelope(payload)
        event = parse_event(envelope.event_type, envelope.data)
    except MalformedPayloadError as e:
        logger.warning("Malformed webhook payload", extra={"error": e.message})
        return HttpResponse("Invalid event", status=400)

    log_context = {"event_id": envelope.event_id, "event_type": envelope.event_type}
    logger.info(f"Received webhook: {envelope.event_type}", extra=log_context)

    # Step 3: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        event_id=envelope.event_id,
        defaults={
            "event_type": envelope.event_type,
            "payload": envelope.payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info("Webhook already processed, returning success", extra=log_context)
        return HttpResponse("Already processed", status=200)

    # Step 4: Apply under the row lock
    try:
        with transaction.atomic():
            locked = WebhookEvent.objects.select_for_update().get(pk=webhook_event.pk)
            if locked.is_processed:
                logger.info("Webhook processed concurrently", extra=log_context)
                return HttpResponse("Already processed", status=200)

            locked.mark_processing()
            result = dispatch_event(event)
            if not result.success:
                raise WebhookProcessingError(
                    result.error or "Handler failed",
                    error_code=result.error_code,
                )

            locked.mark_processed()
            locked.save(update_fields=["status", "processed_at", "error_message", "updated_at"])
    except Exception as e:
        logger.error(
            f"Webhook processing failed: {type(e).__name__}",
            extra={**log_context, "error": str(e)},
            exc_info=True,
        )
        failed = WebhookEvent.objects.get(pk=webhook_event.pk)
        failed.mark_failed(str(e))
        failed.save(update_fields=["status", "error_message", "retry_count", "updated_at"])
        return HttpResponse("Processing failed", status=500)

    logger.info("Webhook processed", extra=log_context)
    return HttpResponse("OK", status=200)
