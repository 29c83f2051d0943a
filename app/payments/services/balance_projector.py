"""
Balance and activity projection for billing principals.

Read-only views over processor balances and local payment records.
Balances come from the processor and are cached for
BALANCE_CACHE_TTL_SECONDS per principal; activity is built from the
locally mirrored FundingIntent and PayoutTransfer rows, so it never
calls the processor.

Usage:
    from payments.services import BalanceProjector

    balance = BalanceProjector.get_balance(org_id)
    page = BalanceProjector.get_activity(org_id, page=1, limit=20)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from django.conf import settings
from django.core.cache import cache

from core.helpers import calculate_pagination
from core.services import BaseService

from payments.adapters import StripeAdapter
from payments.exceptions import InvalidInputError
from payments.models import BillingIdentity, FundingIntent, PayoutTransfer

MAX_ACTIVITY_LIMIT = 100


@dataclass
class Balance:
    """Balance in minor units of the platform currency."""

    available: int
    pending: int
    total: int
    currency: str

    @classmethod
    def zero(cls) -> Balance:
        return cls(available=0, pending=0, total=0, currency=settings.PAYMENTS_CURRENCY)


class BalanceProjector(BaseService):
    """Projects balances and activity for a principal."""

    @classmethod
    def cache_key(cls, principal_id: str) -> str:
        return f"payments:balance:{principal_id}"

    @classmethod
    def get_balance(cls, principal_id: str) -> Balance:
        """
        Return the principal's payout account balance.

        A principal without an identity or payout account has a zero
        balance; this is not an error. Only the platform currency is
        reported.
        """
        account_id = (
            BillingIdentity.objects.filter(principal_id=principal_id)
            .values_list("payout_account_id", flat=True)
            .first()
        )
        if not account_id:
            return Balance.zero()

        key = cls.cache_key(principal_id)
        cached = cache.get(key)
        if cached is not None:
            return Balance(**cached)

        result = StripeAdapter.retrieve_balance(account_id)
        currency = settings.PAYMENTS_CURRENCY
        available = result.available.get(currency, 0)
        pending = result.pending.get(currency, 0)
        balance = Balance(
            available=available,
            pending=pending,
            total=available + pending,
            currency=currency,
        )

        cache.set(key, asdict(balance), timeout=settings.BALANCE_CACHE_TTL_SECONDS)
        return balance

    @classmethod
    def invalidate(cls, principal_id: str) -> None:
        cache.delete(cls.cache_key(principal_id))

    @classmethod
    def get_activity(cls, principal_id: str, page: int = 1, limit: int = 20) -> dict:
        """
        Return a page of the principal's payment activity, newest first.

        Merges funding intents paid by the principal (kind "charge") with
        transfers received by it (kind "transfer").

        Raises:
            InvalidInputError: page < 1 or limit outside 1..100
        """
        if page < 1:
            raise InvalidInputError("page must be >= 1", details={"page": page})
        if not 1 <= limit <= MAX_ACTIVITY_LIMIT:
            raise InvalidInputError(
                f"limit must be between 1 and {MAX_ACTIVITY_LIMIT}",
                details={"limit": limit},
            )

        intents = FundingIntent.objects.filter(principal_id=principal_id)
        transfers = PayoutTransfer.objects.filter(solver_principal_id=principal_id)
        total = intents.count() + transfers.count()

        # Newest N of each side is enough to build any page up to N
        window = page * limit
        charges = [
            {
                "kind": "charge",
                "bounty_id": bounty_id,
                "amount": amount,
                "currency": currency,
                "status": status,
                "processor_id": intent_id,
                "created_at": created_at,
            }
            for bounty_id, amount, currency, status, intent_id, created_at in intents.order_by(
                "-created_at"
            ).values_list(
                "bounty_funding__bounty_id",
                "amount_minor_units",
                "currency",
                "status",
                "intent_id",
                "created_at",
            )[:window]
        ]
        payouts = [
            {
                "kind": "transfer",
                "bounty_id": bounty_id,
                "amount": amount,
                "currency": currency,
                "status": status,
                "processor_id": transfer_id,
                "created_at": created_at,
            }
            for bounty_id, amount, currency, status, transfer_id, created_at in transfers.order_by(
                "-created_at"
            ).values_list(
                "bounty_funding__bounty_id",
                "amount_minor_units",
                "currency",
                "status",
                "transfer_id",
                "created_at",
            )[:window]
        ]

        merged = sorted(charges + payouts, key=lambda item: item["created_at"], reverse=True)
        start = (page - 1) * limit

        return {
            "items": merged[start : start + limit],
            "pagination": calculate_pagination(total=total, page=page, per_page=limit),
        }
