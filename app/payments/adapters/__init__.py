"""
Payment adapters for external services.

All processor API calls go through these adapters to ensure consistent
error handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StripeAdapter, IdempotencyKeyGenerator

    customer = StripeAdapter.create_customer(
        email="billing@acme.test",
        principal_id=org_id,
        idempotency_key=IdempotencyKeyGenerator.generate("customer", org_id),
    )
"""

from payments.adapters.stripe_adapter import (
    AccountLinkResult,
    BalanceResult,
    CreatePaymentIntentParams,
    CustomerResult,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    PayoutAccountResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "AccountLinkResult",
    "BalanceResult",
    "CreatePaymentIntentParams",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "PayoutAccountResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
]
