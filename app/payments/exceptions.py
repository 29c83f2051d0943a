"""
Payment-specific exceptions for funding, payout and reconciliation.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Funding/transfer/identity lookup failures
    └── PaymentProcessingError - Processor call failures
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidAccountError - Invalid payout account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - Processor unavailable (transient, retry)
            └── StripeTimeoutError - Processor timeout (transient, retry)

    InvalidInputError (ValidationError) - Caller error, never retried
    ├── InvalidAmountError - Amount not a positive number of minor units
    ├── InvalidIdentityError - Malformed principal id or email
    └── MalformedPayloadError - Webhook body is not a usable event

    AlreadyInTerminalStateError (ConflictError) - Released/refunded bounty
    AlreadyFundedError (ConflictError) - Bounty already backed by a payment
    PayoutAccountNotReadyError (ConflictError) - Solver cannot receive transfers
    InvalidStateTransitionError (ConflictError) - FSM transition not allowed

    SignatureInvalidError (PermissionDeniedError) - Webhook HMAC mismatch
    IdentityMismatchError (PermissionDeniedError) - Caller not authorized
        for the billing principal

Usage:
    from payments.exceptions import AlreadyInTerminalStateError

    if funding.is_terminal:
        raise AlreadyInTerminalStateError(
            f"Bounty {funding.bounty_id} is already {funding.state}",
            details={"bounty_id": funding.bounty_id, "state": funding.state},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Inherits from BaseApplicationError for consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment entity cannot be found.

    Use for:
    - BountyFunding lookup fails
    - PayoutTransfer lookup fails
    - BillingIdentity lookup fails
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentProcessingError(PaymentError):
    """Raised when a call to the payment processor fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


class WebhookProcessingError(PaymentError):
    """Raised when a webhook handler reports failure, to roll back its transaction."""

    default_error_code: str = "WEBHOOK_PROCESSING_FAILED"


class WebhookNotConfiguredError(PaymentError):
    """No webhook secret is configured, so no signature can be checked."""

    default_error_code: str = "WEBHOOK_NOT_CONFIGURED"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the caller may retry with backoff

    Example:
        try:
            StripeAdapter.create_customer(...)
        except StripeError as e:
            if e.is_retryable:
                delay = backoff_delay(attempt)
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute contains the specific reason
    (generic_decline, expired_card, incorrect_cvc, ...).
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """
    Insufficient funds on the payment method, or on the platform
    balance when creating a transfer.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError):
    """
    Invalid payout account.

    Raised when the destination account for a transfer is missing,
    restricted, or unable to receive transfers. Needs manual follow-up.
    """

    default_error_code: str = "INVALID_PAYOUT_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    The request will never succeed with the same parameters. This
    usually indicates a bug, so these are logged at ERROR.
    """

    default_error_code: str = "INVALID_PROCESSOR_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API. Retry with exponential backoff."""

    default_error_code: str = "PROCESSOR_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Processor is temporarily unavailable.

    Covers network failures, 5xx responses and unexpected SDK errors.
    Surfaced to callers as a generic "try again" signal.
    """

    default_error_code: str = "PROCESSOR_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side.
    Retrying with the same idempotency key returns the original result.
    """

    default_error_code: str = "PROCESSOR_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Input Exceptions
# =============================================================================


class InvalidInputError(ValidationError):
    """Caller error. Not retryable: the input itself must change."""

    default_error_code: str = "INVALID_INPUT"


class InvalidAmountError(InvalidInputError):
    """Amount is not a positive integer number of minor units."""

    default_error_code: str = "INVALID_AMOUNT"


class InvalidIdentityError(InvalidInputError):
    """Principal id or email is missing or malformed."""

    default_error_code: str = "INVALID_IDENTITY"


class MalformedPayloadError(InvalidInputError):
    """
    Webhook body could not be turned into an event.

    Kept distinct from SignatureInvalidError: a malformed payload with a
    valid signature is a sender bug, not a forgery attempt.
    """

    default_error_code: str = "MALFORMED_PAYLOAD"


# =============================================================================
# State Exceptions
# =============================================================================


class AlreadyInTerminalStateError(ConflictError):
    """
    Raised when acting on a bounty whose funding is released or refunded.

    Idempotent callers may treat this as a successful no-op.
    """

    default_error_code: str = "ALREADY_IN_TERMINAL_STATE"


class AlreadyFundedError(ConflictError):
    """Raised when creating a funding intent for a bounty that is already funded."""

    default_error_code: str = "ALREADY_FUNDED"


class PayoutAccountNotReadyError(ConflictError):
    """Raised when the solver has no payout account capable of receiving transfers."""

    default_error_code: str = "PAYOUT_ACCOUNT_NOT_READY"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed to provide our standard
    error format with additional context.

    Example:
        try:
            funding.release()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot release funding from '{funding.state}' state",
                details={"current_state": funding.state, "transition": "release"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Authorization Exceptions
# =============================================================================


class SignatureInvalidError(PermissionDeniedError):
    """Webhook signature missing or not matching the raw body."""

    default_error_code: str = "SIGNATURE_INVALID"


class IdentityMismatchError(PermissionDeniedError):
    """
    A billing action was attempted against a principal the session is
    not authorized for. Always denied, never partially applied.
    """

    default_error_code: str = "IDENTITY_MISMATCH"


__all__ = [
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentProcessingError",
    "WebhookProcessingError",
    "WebhookNotConfiguredError",
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    "InvalidInputError",
    "InvalidAmountError",
    "InvalidIdentityError",
    "MalformedPayloadError",
    "AlreadyInTerminalStateError",
    "AlreadyFundedError",
    "PayoutAccountNotReadyError",
    "InvalidStateTransitionError",
    "SignatureInvalidError",
    "IdentityMismatchError",
]
