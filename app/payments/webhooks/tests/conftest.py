"""
Pytest fixtures for webhook tests.

Usage:
    def test_duplicate(deliver):
        deliver({"id": "evt_1", "event": "intent.failed", "data": {"id": "pi_1"}})
"""

import json

import pytest
from django.conf import settings
from django.test import Client
from django.urls import reverse

from payments.webhooks import compute_signature


@pytest.fixture
def webhook_url():
    return reverse("payments:processor_webhook")


@pytest.fixture
def deliver(client: Client, webhook_url):
    """
    POST a signed webhook body and return the response.

    Accepts a dict (serialized once) or raw bytes.
    """

    def _deliver(payload, signature=None, **extra):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        if signature is None:
            signature = compute_signature(settings.PAYMENTS_WEBHOOK_SECRET, body)
        return client.post(
            webhook_url,
            data=body,
            content_type="application/json",
            HTTP_X_SIGNATURE=signature,
            **extra,
        )

    return _deliver
