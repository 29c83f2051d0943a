"""
Funding service: escrow of bounty funds and release to solvers.

This module provides the FundingService class, the only writer of
BountyFunding, FundingIntent and PayoutTransfer.

Funding:
    create_funding_intent() creates a processor PaymentIntent; the payer
    confirms it client-side and the intent.succeeded webhook calls
    on_intent_succeeded(), which moves the bounty UNFUNDED -> HELD exactly
    once.

Release uses a three-phase pattern so that no processor call ever runs
inside a transaction that holds row locks:
1. Phase 1: Lock the funding row, validate, create a PENDING PayoutTransfer
2. Phase 2: Call Stripe create_transfer (outside any transaction)
3. Phase 3: Mark the transfer SUCCEEDED and the bounty RELEASED

If Phase 2 times out or the processor is unavailable, the transfer stays
PENDING (blocking a second release) until the transfer.created /
transfer.failed webhook resolves it. When no webhook arrives,
reconcile_pending_transfer() repeats the call with the same idempotency
key, and fail_pending_transfer() lets an operator give up on it. A failed
release is never retried as a new attempt automatically.

Usage:
    from payments.services import FundingService

    result = FundingService.release_to_solver("B1", solver_id, 10000)
    if not result.success and result.error_code == "ALREADY_IN_TERMINAL_STATE":
        # Idempotent no-op for the caller
        ...
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult
from notifications.models import PaymentNotificationKind
from notifications.services import NotificationDispatcher

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.exceptions import (
    InvalidIdentityError,
    PaymentNotFoundError,
    StripeError,
)
from payments.models import BillingIdentity, BountyFunding, FundingIntent, PayoutTransfer
from payments.services.identity_resolver import IdentityResolver
from payments.state_machines import (
    FundingIntentStatus,
    FundingState,
    PrincipalType,
    TransferStatus,
)

if TYPE_CHECKING:
    from typing import Any


CURRENCY_PATTERN = re.compile(r"^[a-z]{3}$")


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class FundingIntentCreated:
    """
    Result of create_funding_intent().

    Attributes:
        client_secret: Secret the payer uses to confirm the intent
        intent_id: Stripe PaymentIntent ID (pi_xxx)
    """

    client_secret: str
    intent_id: str


@dataclass
class ReleaseResult:
    funding: BountyFunding
    transfer: PayoutTransfer


# =============================================================================
# Funding Service
# =============================================================================


class FundingService(BaseService):
    """
    Service for funding bounties and paying out solvers.

    Safety Guarantees:
        - select_for_update on the BountyFunding row serializes state changes
        - protected FSM transitions reject any other path through the states
        - at most one SUCCEEDED intent and one non-failed transfer per bounty,
          enforced by conditional unique constraints
        - deterministic idempotency keys make processor calls safe to repeat
    """

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_funding_state(cls, bounty_id: str) -> str:
        """
        Return the escrow state of a bounty.

        A bounty that was never funded has no row and reports UNFUNDED.
        """
        state = (
            BountyFunding.objects.filter(bounty_id=bounty_id)
            .values_list("state", flat=True)
            .first()
        )
        return state or FundingState.UNFUNDED

    @classmethod
    def get_creator_principal_id(cls, bounty_id: str) -> str | None:
        """Return the principal whose payment funded the bounty, if any."""
        creator = (
            BountyFunding.objects.filter(bounty_id=bounty_id)
            .values_list("creator_principal_id", flat=True)
            .first()
        )
        return creator or None

    # =========================================================================
    # Funding
    # =========================================================================

    @classmethod
    def create_funding_intent(
        cls,
        bounty_id: str,
        amount_minor_units: int,
        currency: str,
        principal_id: str,
        email: str | None = None,
        principal_type: str = PrincipalType.ORGANIZATION,
    ) -> ServiceResult[FundingIntentCreated]:
        """
        Create a processor payment intent that funds a bounty.

        Args:
            bounty_id: Opaque bounty id
            amount_minor_units: Positive integer amount (e.g., 10000 = $100.00)
            currency: ISO 4217 code; must be the platform currency
            principal_id: Billing principal that pays
            email: Used only if the principal has no processor customer yet
            principal_type: PrincipalType of the payer

        Returns:
            ServiceResult with FundingIntentCreated, or a failure with one of
            INVALID_INPUT, INVALID_AMOUNT, INVALID_IDENTITY, ALREADY_FUNDED,
            PROCESSOR_UNAVAILABLE, PROCESSOR_TIMEOUT
        """
        validation = cls.validate_required(bounty_id=bounty_id, principal_id=principal_id)
        if validation:
            return validation

        amount_check = cls._validate_amount(amount_minor_units)
        if amount_check:
            return amount_check

        currency = (currency or "").lower()
        if not CURRENCY_PATTERN.match(currency) or currency != settings.PAYMENTS_CURRENCY:
            return ServiceResult.failure(
                f"Unsupported currency '{currency}'",
                error_code="INVALID_INPUT",
                errors={"currency": [f"Only '{settings.PAYMENTS_CURRENCY}' is supported."]},
            )

        funding, _ = BountyFunding.objects.get_or_create(bounty_id=bounty_id)
        if funding.state != FundingState.UNFUNDED or funding.intents.filter(
            status=FundingIntentStatus.SUCCEEDED
        ).exists():
            return ServiceResult.failure(
                f"Bounty {bounty_id} is already funded",
                error_code="ALREADY_FUNDED",
            )

        log_context = {"bounty_id": bounty_id, "principal_id": principal_id}

        try:
            customer_id = IdentityResolver.resolve_customer(
                principal_id, email, principal_type
            )
        except (InvalidIdentityError, StripeError) as e:
            return cls.handle_exception(
                e, "Could not resolve customer", log_level=logging.WARNING, extra=log_context
            )

        attempt = funding.intents.count() + 1
        try:
            intent = StripeAdapter.create_payment_intent(
                CreatePaymentIntentParams(
                    amount_minor_units=amount_minor_units,
                    currency=currency,
                    customer_id=customer_id,
                    metadata={"bountyId": bounty_id, "principalId": principal_id},
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "fund", bounty_id, attempt
                    ),
                )
            )
        except StripeError as e:
            return cls.handle_exception(
                e, "Failed to create funding intent", extra=log_context
            )

        # A racing request with the same attempt gets the same intent back
        funding_intent, _ = FundingIntent.objects.get_or_create(
            intent_id=intent.id,
            defaults={
                "bounty_funding": funding,
                "principal_id": principal_id,
                "amount_minor_units": amount_minor_units,
                "currency": currency,
                "status": FundingIntentStatus.from_processor(intent.status),
                "client_secret": intent.client_secret or "",
            },
        )

        cls.get_logger().info(
            "Funding intent created",
            extra={**log_context, "intent_id": intent.id, "attempt": attempt},
        )

        return ServiceResult.success(
            FundingIntentCreated(
                client_secret=funding_intent.client_secret,
                intent_id=funding_intent.intent_id,
            )
        )

    @classmethod
    def on_intent_succeeded(
        cls,
        intent_id: str,
        metadata: dict[str, Any] | None,
        amount_minor_units: int | None = None,
        currency: str | None = None,
    ) -> ServiceResult[BountyFunding | None]:
        """
        Apply a succeeded payment intent: UNFUNDED -> HELD, exactly once.

        Must run inside the webhook transaction. Events that cannot be tied
        to a bounty are acknowledged without a state change.
        """
        metadata = metadata or {}
        bounty_id = metadata.get("bountyId")
        log_context = {"intent_id": intent_id, "bounty_id": bounty_id}

        if not bounty_id:
            cls.get_logger().warning(
                "Succeeded intent carries no bountyId, ignoring",
                extra=log_context,
            )
            return ServiceResult.success(None)

        BountyFunding.objects.get_or_create(bounty_id=bounty_id)
        funding = BountyFunding.objects.select_for_update().get(bounty_id=bounty_id)

        intent = FundingIntent.objects.select_for_update().filter(intent_id=intent_id).first()
        if intent is None:
            # Created outside this service or the local write was lost
            if amount_minor_units is None or amount_minor_units <= 0:
                cls.get_logger().error(
                    "Unknown succeeded intent without a usable amount",
                    extra=log_context,
                )
                return ServiceResult.success(None)
            intent = FundingIntent.objects.create(
                intent_id=intent_id,
                bounty_funding=funding,
                principal_id=metadata.get("principalId", ""),
                amount_minor_units=amount_minor_units,
                currency=(currency or settings.PAYMENTS_CURRENCY).lower(),
            )

        if funding.state != FundingState.UNFUNDED:
            if funding.funding_intent_id != intent.pk:
                cls.get_logger().error(
                    "Duplicate funding: bounty already backed by another payment",
                    extra={
                        **log_context,
                        "state": funding.state,
                        "principal_id": intent.principal_id,
                    },
                )
            else:
                cls.get_logger().info(
                    "Funding already applied for intent",
                    extra={**log_context, "state": funding.state},
                )
            return ServiceResult.success(funding)

        intent.mark_succeeded()
        intent.save(update_fields=["status", "succeeded_at", "failure_reason", "updated_at"])

        funding.hold(intent)
        funding.save()

        NotificationDispatcher.dispatch(
            principal_id=intent.principal_id,
            kind=PaymentNotificationKind.BOUNTY_FUNDED,
            bounty_id=bounty_id,
            amount_minor_units=intent.amount_minor_units,
        )

        cls.get_logger().info(
            "Bounty funds held",
            extra={**log_context, "amount_minor_units": intent.amount_minor_units},
        )
        return ServiceResult.success(funding)

    @classmethod
    def on_intent_failed(
        cls,
        intent_id: str,
        reason: str | None = None,
    ) -> ServiceResult[FundingIntent | None]:
        """Record a failed payment attempt. The bounty stays UNFUNDED."""
        return cls._record_intent_outcome(intent_id, FundingIntentStatus.FAILED, reason)

    @classmethod
    def on_intent_canceled(cls, intent_id: str) -> ServiceResult[FundingIntent | None]:
        return cls._record_intent_outcome(intent_id, FundingIntentStatus.CANCELED)

    @classmethod
    def _record_intent_outcome(
        cls,
        intent_id: str,
        status: str,
        reason: str | None = None,
    ) -> ServiceResult[FundingIntent | None]:
        intent = FundingIntent.objects.select_for_update().filter(intent_id=intent_id).first()
        if intent is None:
            cls.get_logger().info(
                f"Intent {status} for unknown intent, ignoring",
                extra={"intent_id": intent_id},
            )
            return ServiceResult.success(None)

        if intent.is_succeeded:
            cls.get_logger().warning(
                f"Ignoring {status} for an intent that already succeeded",
                extra={"intent_id": intent_id},
            )
            return ServiceResult.success(intent)

        if status == FundingIntentStatus.FAILED:
            intent.mark_failed(reason)
        else:
            intent.mark_canceled()
        intent.save(update_fields=["status", "failure_reason", "updated_at"])
        return ServiceResult.success(intent)

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def release_to_solver(
        cls,
        bounty_id: str,
        solver_principal_id: str,
        amount_minor_units: int | None = None,
    ) -> ServiceResult[ReleaseResult]:
        """
        Transfer held funds to the solver's payout account.

        Args:
            bounty_id: Bounty whose funds are held
            solver_principal_id: Principal receiving the funds
            amount_minor_units: Amount to transfer; defaults to the held amount

        Returns:
            ServiceResult with ReleaseResult, or a failure with one of
            ALREADY_IN_TERMINAL_STATE, NOT_FUNDED, INVALID_AMOUNT,
            PAYOUT_ACCOUNT_NOT_READY, RELEASE_IN_PROGRESS, or the processor
            error code
        """
        validation = cls.validate_required(
            bounty_id=bounty_id, solver_principal_id=solver_principal_id
        )
        if validation:
            return validation

        if amount_minor_units is not None:
            amount_check = cls._validate_amount(amount_minor_units)
            if amount_check:
                return amount_check

        log_context = {"bounty_id": bounty_id, "solver_principal_id": solver_principal_id}
        cls.get_logger().info("Starting release to solver", extra=log_context)

        funding = BountyFunding.objects.filter(bounty_id=bounty_id).first()
        state_check = cls._check_releasable(funding, bounty_id)
        if state_check:
            return state_check

        identity = cls._payout_ready_identity(solver_principal_id)
        if identity is None:
            return ServiceResult.failure(
                "Solver cannot receive transfers yet",
                error_code="PAYOUT_ACCOUNT_NOT_READY",
            )

        # Phase 1: record a pending transfer under the row lock
        try:
            with transaction.atomic():
                funding = BountyFunding.objects.select_for_update().get(pk=funding.pk)

                state_check = cls._check_releasable(funding, bounty_id)
                if state_check:
                    return state_check

                if funding.transfers.filter(status=TransferStatus.PENDING).exists():
                    return ServiceResult.failure(
                        "A transfer for this bounty is already in progress",
                        error_code="RELEASE_IN_PROGRESS",
                    )

                amount = amount_minor_units or funding.amount_minor_units
                if amount > funding.amount_minor_units:
                    return ServiceResult.failure(
                        "Amount exceeds the held funds",
                        error_code="INVALID_AMOUNT",
                    )

                transfer = PayoutTransfer.objects.create(
                    bounty_funding=funding,
                    solver_principal_id=solver_principal_id,
                    destination_account_id=identity.payout_account_id,
                    amount_minor_units=amount,
                    currency=funding.currency,
                    attempt=funding.transfers.count() + 1,
                )
        except IntegrityError:
            return ServiceResult.failure(
                "A transfer for this bounty is already in progress",
                error_code="RELEASE_IN_PROGRESS",
            )

        # Phase 2: call the processor outside any transaction
        cls.get_logger().info(
            "Calling Stripe create_transfer",
            extra={
                **log_context,
                "transfer_pk": str(transfer.pk),
                "attempt": transfer.attempt,
                "amount_minor_units": transfer.amount_minor_units,
            },
        )

        try:
            result = cls._send_transfer(transfer)
        except StripeError as e:
            if e.is_retryable:
                # Outcome unknown; the transfer webhook or reconciliation settles it
                cls.get_logger().warning(
                    f"Transient Stripe error during release: {type(e).__name__}",
                    extra={**log_context, "transfer_pk": str(transfer.pk)},
                )
            else:
                cls._fail_transfer(transfer.pk, str(e))
            return cls.handle_exception(e, "Release transfer failed", extra=log_context)

        # Phase 3: record the outcome
        with transaction.atomic():
            funding, transfer = cls._complete_transfer(transfer.pk, result.id)

        return ServiceResult.success(ReleaseResult(funding=funding, transfer=transfer))

    @classmethod
    def on_transfer_created(
        cls,
        transfer_id: str,
        metadata: dict[str, Any] | None,
    ) -> ServiceResult[PayoutTransfer | None]:
        """
        Settle a pending transfer the processor confirmed.

        Completes releases whose Phase 2 call timed out.
        """
        transfer = cls._find_transfer(transfer_id, metadata)
        if transfer is None:
            return ServiceResult.success(None)

        if not transfer.is_pending:
            return ServiceResult.success(transfer)

        _, transfer = cls._complete_transfer(transfer.pk, transfer_id)
        return ServiceResult.success(transfer)

    @classmethod
    def on_transfer_failed(
        cls,
        transfer_id: str,
        metadata: dict[str, Any] | None,
        reason: str | None = None,
    ) -> ServiceResult[PayoutTransfer | None]:
        """
        Record a failed transfer. The bounty stays HELD.

        A failure reported for a transfer already counted as succeeded
        is logged for operator follow-up; nothing is reversed automatically.
        """
        transfer = cls._find_transfer(transfer_id, metadata)
        if transfer is None:
            return ServiceResult.success(None)
        transfer = PayoutTransfer.objects.select_for_update().get(pk=transfer.pk)

        if transfer.status == TransferStatus.SUCCEEDED:
            cls.get_logger().error(
                "Processor reported failure for a transfer recorded as succeeded",
                extra={
                    "transfer_id": transfer_id,
                    "bounty_id": transfer.bounty_funding.bounty_id,
                },
            )
            return ServiceResult.success(transfer)

        if transfer.is_pending:
            if not transfer.transfer_id:
                transfer.transfer_id = transfer_id
            transfer.fail(reason or "Transfer failed")
            transfer.save()
        return ServiceResult.success(transfer)

    # =========================================================================
    # Pending Transfer Reconciliation
    # =========================================================================

    @classmethod
    def reconcile_pending_transfer(cls, transfer_pk) -> ServiceResult[PayoutTransfer]:
        """
        Settle a PENDING transfer whose Phase 2 outcome never arrived.

        Repeats the processor call with the original parameters and
        idempotency key. If the first request reached the processor, the
        same transfer comes back; if it never did, the transfer is made now.
        Only valid inside the processor's idempotency window.

        Returns:
            ServiceResult with the transfer. A transient processor error
            leaves it PENDING; a permanent one marks it FAILED.
        """
        transfer = (
            PayoutTransfer.objects.select_related("bounty_funding")
            .filter(pk=transfer_pk)
            .first()
        )
        if transfer is None:
            return ServiceResult.failure("Transfer not found", error_code="NOT_FOUND")
        if not transfer.is_pending:
            return ServiceResult.success(transfer)

        log_context = {
            "transfer_pk": str(transfer.pk),
            "bounty_id": transfer.bounty_funding.bounty_id,
            "attempt": transfer.attempt,
        }
        cls.get_logger().info("Reconciling pending transfer", extra=log_context)

        try:
            result = cls._send_transfer(transfer)
        except StripeError as e:
            if not e.is_retryable:
                cls._fail_transfer(transfer.pk, str(e))
            return cls.handle_exception(
                e, "Pending transfer reconciliation failed", extra=log_context
            )

        with transaction.atomic():
            _, transfer = cls._complete_transfer(transfer.pk, result.id)

        cls.get_logger().info(
            "Pending transfer reconciled",
            extra={**log_context, "transfer_id": result.id},
        )
        return ServiceResult.success(transfer)

    @classmethod
    def fail_pending_transfer(
        cls,
        transfer_pk,
        reason: str,
    ) -> ServiceResult[PayoutTransfer]:
        """
        Operator resolution: mark a PENDING transfer FAILED.

        The bounty stays HELD, so it can be released again (as a new attempt)
        or refunded. Use only after confirming at the processor that no
        transfer was made.
        """
        with transaction.atomic():
            transfer = PayoutTransfer.objects.select_for_update().filter(pk=transfer_pk).first()
            if transfer is None:
                return ServiceResult.failure("Transfer not found", error_code="NOT_FOUND")
            if not transfer.is_pending:
                return ServiceResult.failure(
                    f"Transfer is already {transfer.status}",
                    error_code="INVALID_STATE_TRANSITION",
                )
            transfer.fail(reason)
            transfer.save()

        cls.get_logger().warning(
            "Pending transfer failed by operator",
            extra={"transfer_pk": str(transfer.pk), "reason": reason},
        )
        return ServiceResult.success(transfer)

    # =========================================================================
    # Refund
    # =========================================================================

    @classmethod
    def refund_funding(
        cls,
        bounty_id: str,
        reason: str | None = None,
    ) -> ServiceResult[BountyFunding]:
        """
        Refund held funds to the creator: HELD -> REFUNDED.

        A processor failure leaves the bounty HELD.
        """
        funding = BountyFunding.objects.filter(bounty_id=bounty_id).first()
        state_check = cls._check_releasable(funding, bounty_id)
        if state_check:
            return state_check

        if funding.transfers.filter(status=TransferStatus.PENDING).exists():
            return ServiceResult.failure(
                "A transfer for this bounty is in progress",
                error_code="RELEASE_IN_PROGRESS",
            )

        try:
            StripeAdapter.create_refund(
                payment_intent_id=funding.funding_intent.intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate("refund", bounty_id),
                reason="requested_by_customer",
                metadata={"bountyId": bounty_id, "reason": reason or ""},
            )
        except StripeError as e:
            return cls.handle_exception(
                e, "Refund failed", extra={"bounty_id": bounty_id}
            )

        with transaction.atomic():
            funding = BountyFunding.objects.select_for_update().get(pk=funding.pk)
            if funding.state == FundingState.HELD:
                funding.refund()
                funding.save()
                NotificationDispatcher.dispatch(
                    principal_id=funding.creator_principal_id,
                    kind=PaymentNotificationKind.BOUNTY_REFUNDED,
                    bounty_id=bounty_id,
                    amount_minor_units=funding.amount_minor_units,
                )

        cls.get_logger().info(
            "Bounty funds refunded",
            extra={"bounty_id": bounty_id, "reason": reason},
        )
        return ServiceResult.success(funding)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate_amount(amount_minor_units: Any) -> ServiceResult | None:
        if (
            isinstance(amount_minor_units, bool)
            or not isinstance(amount_minor_units, int)
            or amount_minor_units <= 0
        ):
            return ServiceResult.failure(
                "Amount must be a positive integer number of minor units",
                error_code="INVALID_AMOUNT",
            )
        return None

    @staticmethod
    def _check_releasable(
        funding: BountyFunding | None,
        bounty_id: str,
    ) -> ServiceResult | None:
        """Return a failure unless the bounty's funds are currently HELD."""
        if funding is not None and funding.is_terminal:
            return ServiceResult.failure(
                f"Bounty {bounty_id} is already {funding.state}",
                error_code="ALREADY_IN_TERMINAL_STATE",
            )
        if funding is None or funding.state != FundingState.HELD:
            return ServiceResult.failure(
                f"Bounty {bounty_id} has no held funds",
                error_code="NOT_FUNDED",
            )
        return None

    @classmethod
    def _payout_ready_identity(cls, solver_principal_id: str) -> BillingIdentity | None:
        """
        Return the solver's identity if it may receive transfers.

        The recorded capability flag is trusted unless
        PAYOUT_REVERIFY_ON_RELEASE asks for a fresh processor read.
        """
        identity = BillingIdentity.objects.filter(principal_id=solver_principal_id).first()
        if identity is None or not identity.payout_account_id:
            return None

        if settings.PAYOUT_REVERIFY_ON_RELEASE:
            try:
                identity = IdentityResolver.refresh_payout_capability(solver_principal_id)
            except (PaymentNotFoundError, StripeError) as e:
                cls.get_logger().warning(
                    f"Could not re-verify payout capability: {e}",
                    extra={"solver_principal_id": solver_principal_id},
                )
                return None

        return identity if identity.can_receive_transfers else None

    @staticmethod
    def _send_transfer(transfer: PayoutTransfer):
        """
        Ask the processor to make the transfer.

        Parameters and idempotency key derive only from the stored row so a
        repeated call is recognized as the same request.
        """
        bounty_id = transfer.bounty_funding.bounty_id
        return StripeAdapter.create_transfer(
            amount_minor_units=transfer.amount_minor_units,
            destination_account=transfer.destination_account_id,
            currency=transfer.currency,
            metadata={"bountyId": bounty_id, "principalId": transfer.solver_principal_id},
            idempotency_key=IdempotencyKeyGenerator.generate(
                "release", bounty_id, transfer.attempt
            ),
        )

    @classmethod
    def _fail_transfer(cls, transfer_pk, reason: str) -> None:
        with transaction.atomic():
            transfer = PayoutTransfer.objects.select_for_update().get(pk=transfer_pk)
            if transfer.is_pending:
                transfer.fail(reason)
                transfer.save()

    @classmethod
    def _complete_transfer(
        cls,
        transfer_pk,
        transfer_id: str,
    ) -> tuple[BountyFunding, PayoutTransfer]:
        """
        Mark a pending transfer succeeded and release its bounty.

        Caller must hold a transaction. Locks the funding row before the
        transfer row, the same order as Phase 1.
        """
        transfer = PayoutTransfer.objects.get(pk=transfer_pk)
        funding = BountyFunding.objects.select_for_update().get(pk=transfer.bounty_funding_id)
        transfer = PayoutTransfer.objects.select_for_update().get(pk=transfer_pk)

        if transfer.is_pending:
            transfer.succeed(transfer_id)
            transfer.save()

        if funding.state == FundingState.HELD:
            funding.release(transfer.solver_principal_id)
            funding.save()
            NotificationDispatcher.dispatch(
                principal_id=transfer.solver_principal_id,
                kind=PaymentNotificationKind.BOUNTY_RELEASED,
                bounty_id=funding.bounty_id,
                amount_minor_units=transfer.amount_minor_units,
            )
            cls.get_logger().info(
                "Bounty funds released",
                extra={
                    "bounty_id": funding.bounty_id,
                    "transfer_id": transfer_id,
                    "amount_minor_units": transfer.amount_minor_units,
                },
            )
        return funding, transfer

    @classmethod
    def _find_transfer(
        cls,
        transfer_id: str,
        metadata: dict[str, Any] | None,
    ) -> PayoutTransfer | None:
        """Locate a transfer by processor id, else the bounty's pending transfer."""
        transfer = (
            PayoutTransfer.objects.select_related("bounty_funding")
            .filter(transfer_id=transfer_id)
            .first()
        )
        if transfer is None:
            bounty_id = (metadata or {}).get("bountyId")
            if bounty_id:
                transfer = (
                    PayoutTransfer.objects.select_related("bounty_funding")
                    .filter(
                        bounty_funding__bounty_id=bounty_id,
                        status=TransferStatus.PENDING,
                    )
                    .first()
                )

        if transfer is None:
            cls.get_logger().info(
                "Transfer event for unknown transfer, ignoring",
                extra={"transfer_id": transfer_id},
            )
        return transfer
