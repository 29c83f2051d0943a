"""
Webhook signature verification.

The processor signs the raw request body with HMAC-SHA256 using the
shared PAYMENTS_WEBHOOK_SECRET and sends the hex digest in the
X-Signature header, optionally prefixed with "sha256=".

Usage:
    from payments.webhooks.signature import verify_signature

    verify_signature(request.body, request.headers.get("X-Signature"))
"""

from __future__ import annotations

import hashlib
import hmac

from django.conf import settings

from payments.exceptions import SignatureInvalidError, WebhookNotConfiguredError

SIGNATURE_HEADER = "X-Signature"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, payload: bytes) -> str:
    """Return the hex HMAC-SHA256 of payload under secret."""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str | None = None,
) -> None:
    """
    Verify a webhook signature over the raw body bytes.

    The body must not be re-serialized before verification: any change in
    whitespace or key order changes the digest.

    Args:
        payload: Raw request body
        signature_header: X-Signature header value
        secret: Shared secret, defaults to PAYMENTS_WEBHOOK_SECRET

    Raises:
        WebhookNotConfiguredError: No secret to verify against
        SignatureInvalidError: Header missing or digest mismatch
    """
    if secret is None:
        secret = settings.PAYMENTS_WEBHOOK_SECRET

    if not secret:
        raise WebhookNotConfiguredError("Webhook secret not configured; cannot verify signature")

    if not signature_header:
        raise SignatureInvalidError("Missing signature", error_code="SIGNATURE_MISSING")

    received = signature_header.strip()
    if received.startswith(SIGNATURE_PREFIX):
        received = received[len(SIGNATURE_PREFIX) :]

    expected = compute_signature(secret, payload)
    if not hmac.compare_digest(expected.encode(), received.lower().encode()):
        raise SignatureInvalidError("Invalid signature")
