"""
Stripe API adapter for bounty funding and payout operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency, and observability.
It carries no business logic: callers decide what a failure means.

Features:
- Configurable timeouts and network retries on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the SDK (default: 3)
- STRIPE_CONNECT_COUNTRY: Country for new payout accounts (default: US)

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_minor_units=10000,
            currency="usd",
            customer_id="cus_123",
            metadata={"bountyId": "B1", "principalId": org_id},
            idempotency_key=IdempotencyKeyGenerator.generate("fund", "B1"),
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating a Stripe PaymentIntent that funds a bounty.

    Attributes:
        amount_minor_units: Amount in smallest currency unit (e.g., cents)
        currency: ISO 4217 currency code
        idempotency_key: Unique key for idempotent creation
        customer_id: Stripe Customer ID of the paying principal
        metadata: Key-value pairs attached to the PaymentIntent
    """

    amount_minor_units: int
    currency: str
    idempotency_key: str
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_minor_units <= 0:
            raise ValueError("amount_minor_units must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class CustomerResult:
    id: str
    email: str | None = None


@dataclass
class PayoutAccountResult:
    """
    Capability snapshot of a Stripe Connect account.

    Attributes:
        id: Account ID (acct_xxx)
        charges_enabled: Whether the account can accept charges
        payouts_enabled: Whether the account can receive payouts
        details_submitted: Whether onboarding details were submitted
        currently_due: Requirements that must be collected now
        past_due: Requirements whose deadline has passed
        disabled_reason: Why the account is disabled, if it is
    """

    id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    currently_due: list[str] = field(default_factory=list)
    past_due: list[str] = field(default_factory=list)
    disabled_reason: str | None = None


@dataclass
class AccountLinkResult:
    url: str
    expires_at: int


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent operations.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: Stripe status (requires_payment_method, succeeded, ...)
        amount_minor_units: Amount in smallest currency unit
        currency: Currency code
        client_secret: Secret for client-side confirmation
        metadata: Attached metadata
    """

    id: str
    status: str
    amount_minor_units: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class TransferResult:
    id: str
    amount_minor_units: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class RefundResult:
    id: str
    amount_minor_units: int
    currency: str
    status: str
    payment_intent_id: str


@dataclass
class BalanceResult:
    """
    Balance of a connected account, in minor units per currency.

    Attributes:
        available: {currency: amount} ready to be paid out
        pending: {currency: amount} not yet settled
    """

    available: dict[str, int] = field(default_factory=dict)
    pending: dict[str, int] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The key is deterministic: two concurrent callers for the same entity
    and attempt produce the same key, so Stripe returns one object to both.

    Example:
        key = IdempotencyKeyGenerator.generate("release", "B1", attempt=1)
        # Result: "release:B1:1:a1b2c3d4"
    """

    @staticmethod
    def generate(operation: str, entity_id: Any, attempt: int = 1) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Safe to call from request handlers and Celery workers.

    Raises (from every operation):
        StripeCardDeclinedError / StripeInsufficientFundsError: Card problems
        StripeInvalidAccountError: Invalid Connect account
        StripeInvalidRequestError: Invalid parameters (permanent)
        StripeRateLimitError: Rate limited (transient)
        StripeTimeoutError: Request timed out (transient, may have succeeded)
        StripeAPIUnavailableError: Network or Stripe failure (transient)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and network retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def _operation(
        cls,
        operation: str,
        level: int = logging.INFO,
        **context: Any,
    ) -> Generator[dict[str, Any], None, None]:
        """
        Wrap one Stripe call with timing logs and error translation.

        The body may add keys to the yielded dict; they are included in
        the completion log line.
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": operation, **context}

        start_time = time.time()
        logger.log(level, "Starting Stripe operation", extra=log_context)

        outcome: dict[str, Any] = {}
        try:
            yield outcome
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.log(
            level,
            "Stripe operation completed",
            extra={**log_context, **outcome, "duration_ms": duration_ms},
        )

    # =========================================================================
    # Identities
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        email: str,
        principal_id: str,
        idempotency_key: str,
    ) -> CustomerResult:
        """
        Create a Stripe Customer for a billing principal.

        Args:
            email: Customer email
            principal_id: Stored in metadata as principalId
            idempotency_key: Same key for racing callers of one principal
        """
        with cls._operation(
            "create_customer",
            principal_id=principal_id,
            idempotency_key=idempotency_key,
        ) as outcome:
            customer = stripe.Customer.create(
                email=email,
                metadata={"principalId": principal_id},
                idempotency_key=idempotency_key,
            )
            outcome["customer_id"] = customer.id

        return CustomerResult(id=customer.id, email=getattr(customer, "email", email))

    @classmethod
    def create_payout_account(
        cls,
        email: str,
        principal_id: str,
        idempotency_key: str,
    ) -> PayoutAccountResult:
        """
        Create a Stripe Connect Express account for receiving transfers.

        The new account cannot receive transfers until onboarding completes
        and the payout_account.updated webhook records its capabilities.
        """
        country = getattr(settings, "STRIPE_CONNECT_COUNTRY", "US")
        with cls._operation(
            "create_payout_account",
            principal_id=principal_id,
            country=country,
            idempotency_key=idempotency_key,
        ) as outcome:
            account = stripe.Account.create(
                type="express",
                country=country,
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                metadata={"principalId": principal_id},
                idempotency_key=idempotency_key,
            )
            outcome["account_id"] = account.id

        return cls._to_account_result(account)

    @classmethod
    def retrieve_account(cls, account_id: str) -> PayoutAccountResult:
        """Retrieve the current capability snapshot of a Connect account."""
        with cls._operation(
            "retrieve_account",
            level=logging.DEBUG,
            account_id=account_id,
        ) as outcome:
            account = stripe.Account.retrieve(account_id)
            outcome["payouts_enabled"] = getattr(account, "payouts_enabled", False)

        return cls._to_account_result(account)

    @classmethod
    def create_account_link(
        cls,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> AccountLinkResult:
        """
        Create a hosted onboarding link for a Connect account.

        Account links are single-use and short-lived, so they are never
        cached and need no idempotency key.
        """
        with cls._operation("create_account_link", account_id=account_id):
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )

        return AccountLinkResult(url=link.url, expires_at=link.expires_at)

    # =========================================================================
    # Funding
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        params: CreatePaymentIntentParams,
    ) -> PaymentIntentResult:
        """
        Create a Stripe PaymentIntent.

        Returns:
            PaymentIntentResult including the client_secret
        """
        with cls._operation(
            "create_payment_intent",
            amount_minor_units=params.amount_minor_units,
            currency=params.currency,
            idempotency_key=params.idempotency_key,
        ) as outcome:
            intent = stripe.PaymentIntent.create(
                amount=params.amount_minor_units,
                currency=params.currency,
                customer=params.customer_id,
                metadata=params.metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=params.idempotency_key,
            )
            outcome.update(payment_intent_id=intent.id, status=intent.status)

        return cls._to_intent_result(intent)

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str) -> PaymentIntentResult:
        with cls._operation(
            "retrieve_payment_intent",
            level=logging.DEBUG,
            payment_intent_id=payment_intent_id,
        ) as outcome:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
            outcome["status"] = intent.status

        return cls._to_intent_result(intent)

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund a PaymentIntent in full.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            idempotency_key: Unique key for idempotent refund
            reason: Stripe refund reason (duplicate, fraudulent, requested_by_customer)
            metadata: Optional metadata dict
        """
        with cls._operation(
            "create_refund",
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
        ) as outcome:
            refund_params: dict[str, Any] = {
                "payment_intent": payment_intent_id,
                "metadata": metadata or {},
            }
            if reason:
                refund_params["reason"] = reason

            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )
            outcome.update(refund_id=refund.id, status=refund.status)

        return RefundResult(
            id=refund.id,
            amount_minor_units=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
        )

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_minor_units: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Create a transfer from the platform balance to a Connect account.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        with cls._operation(
            "create_transfer",
            amount_minor_units=amount_minor_units,
            destination_account=destination_account,
            idempotency_key=idempotency_key,
        ) as outcome:
            transfer = stripe.Transfer.create(
                amount=amount_minor_units,
                currency=currency,
                destination=destination_account,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            outcome["transfer_id"] = transfer.id

        return TransferResult(
            id=transfer.id,
            amount_minor_units=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
        )

    @classmethod
    def retrieve_balance(cls, account_id: str) -> BalanceResult:
        """Retrieve available and pending balance of a Connect account."""
        with cls._operation(
            "retrieve_balance",
            level=logging.DEBUG,
            account_id=account_id,
        ):
            balance = stripe.Balance.retrieve(stripe_account=account_id)

        return BalanceResult(
            available=cls._sum_by_currency(getattr(balance, "available", None)),
            pending=cls._sum_by_currency(getattr(balance, "pending", None)),
        )

    # =========================================================================
    # Conversion Helpers
    # =========================================================================

    @staticmethod
    def _to_account_result(account: Any) -> PayoutAccountResult:
        requirements = getattr(account, "requirements", None)
        return PayoutAccountResult(
            id=account.id,
            charges_enabled=bool(getattr(account, "charges_enabled", False)),
            payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
            details_submitted=bool(getattr(account, "details_submitted", False)),
            currently_due=list(getattr(requirements, "currently_due", None) or []),
            past_due=list(getattr(requirements, "past_due", None) or []),
            disabled_reason=getattr(requirements, "disabled_reason", None),
        )

    @staticmethod
    def _to_intent_result(intent: Any) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_minor_units=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            metadata=dict(intent.metadata or {}),
        )

    @staticmethod
    def _sum_by_currency(entries: Any) -> dict[str, int]:
        totals: dict[str, int] = {}
        for entry in entries or []:
            totals[entry.currency] = totals.get(entry.currency, 0) + entry.amount
        return totals

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Always raises. Transient errors (rate limit, timeout, connection,
        5xx) are marked retryable; everything else is permanent.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                ) from error

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            # The request may have reached Stripe
            if "timed out" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe request timed out. Please retry.",
                    stripe_code="timeout",
                ) from error

            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            f"Unexpected Stripe error: {error}",
            stripe_code="unknown_error",
        ) from error
