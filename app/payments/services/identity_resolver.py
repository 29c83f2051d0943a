"""
Identity resolver for processor customers and payout accounts.

Maps billing principals to their Stripe Customer and Stripe Connect
Express account, creating them on first use. Creation is idempotent
under concurrency:

1. The unique principal_id constraint yields a single BillingIdentity row
   (get_or_create re-reads the winner after an IntegrityError).
2. Every caller for the same principal uses the same Stripe idempotency
   key, so racing requests converge on one processor object.
3. The processor id is written with a conditional UPDATE that only
   matches while the column is still NULL, so a stored id is never
   overwritten.

Usage:
    from payments.services import IdentityResolver

    customer_id = IdentityResolver.resolve_customer(
        principal_id=org_id,
        email="billing@acme.test",
        principal_type=PrincipalType.ORGANIZATION,
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlencode

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import InvalidIdentityError, PaymentNotFoundError
from payments.models import BillingIdentity
from payments.state_machines import OnboardingStatus, PrincipalType

if TYPE_CHECKING:
    from payments.adapters import PayoutAccountResult


def derive_onboarding_status(account: PayoutAccountResult) -> str:
    """
    Map a processor account snapshot onto an onboarding status.

    - disabled_reason set -> REJECTED
    - details submitted, charges and payouts enabled, nothing due -> COMPLETE
    - anything else -> IN_PROGRESS
    """
    if account.disabled_reason:
        return OnboardingStatus.REJECTED
    if (
        account.details_submitted
        and account.charges_enabled
        and account.payouts_enabled
        and not account.currently_due
        and not account.past_due
    ):
        return OnboardingStatus.COMPLETE
    return OnboardingStatus.IN_PROGRESS


class IdentityResolver(BaseService):
    """
    Resolves billing principals to processor identities.

    Errors:
        InvalidIdentityError: Blank principal id or malformed email (not retried)
        StripeError subclasses: Processor failures; retryable ones may be
            retried by the caller with backoff
    """

    # =========================================================================
    # Customers
    # =========================================================================

    @classmethod
    def resolve_customer(
        cls,
        principal_id: str,
        email: str | None,
        principal_type: str = PrincipalType.USER,
    ) -> str:
        """
        Return the principal's Stripe Customer ID, creating it if needed.

        Args:
            principal_id: Opaque user or organization id
            email: Email to register; only required when creating
            principal_type: PrincipalType value

        Returns:
            Stripe Customer ID (cus_xxx)
        """
        cls._validate_principal_id(principal_id)

        existing = (
            BillingIdentity.objects.filter(principal_id=principal_id)
            .values_list("customer_id", flat=True)
            .first()
        )
        if existing:
            return existing

        cls._validate_email(email)
        identity = cls._get_or_create_identity(principal_id, principal_type, email)

        customer = StripeAdapter.create_customer(
            email=email,
            principal_id=principal_id,
            idempotency_key=IdempotencyKeyGenerator.generate("customer", principal_id),
        )

        return cls._store_processor_id(identity, "customer_id", customer.id)

    # =========================================================================
    # Payout Accounts
    # =========================================================================

    @classmethod
    def resolve_payout_account(
        cls,
        principal_id: str,
        email: str | None,
        principal_type: str = PrincipalType.USER,
    ) -> str:
        """
        Return the principal's payout account ID, creating it if needed.

        A freshly created account cannot receive transfers; capability is
        only granted once the processor reports onboarding as complete.
        """
        cls._validate_principal_id(principal_id)

        existing = (
            BillingIdentity.objects.filter(principal_id=principal_id)
            .values_list("payout_account_id", flat=True)
            .first()
        )
        if existing:
            return existing

        cls._validate_email(email)
        identity = cls._get_or_create_identity(principal_id, principal_type, email)

        account = StripeAdapter.create_payout_account(
            email=email,
            principal_id=principal_id,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "payout_account", principal_id, identity.payout_account_generation
            ),
        )

        account_id = cls._store_processor_id(identity, "payout_account_id", account.id)
        BillingIdentity.objects.filter(
            pk=identity.pk,
            onboarding_status=OnboardingStatus.NOT_STARTED,
        ).update(onboarding_status=OnboardingStatus.IN_PROGRESS)
        return account_id

    @classmethod
    def create_onboarding_link(
        cls,
        principal_id: str,
        email: str | None,
        principal_type: str = PrincipalType.USER,
    ) -> dict:
        """
        Ensure a payout account exists and return a hosted onboarding link.

        Returns:
            Dict with url, expires_at (unix seconds) and account_id
        """
        account_id = cls.resolve_payout_account(principal_id, email, principal_type)

        query = urlencode({"accountId": account_id})
        link = StripeAdapter.create_account_link(
            account_id=account_id,
            refresh_url=settings.PAYOUT_ONBOARDING_REFRESH_URL,
            return_url=f"{settings.PAYOUT_ONBOARDING_RETURN_URL}?{query}",
        )

        cls.get_logger().info(
            "Created payout onboarding link",
            extra={"principal_id": principal_id, "account_id": account_id},
        )
        return {
            "url": link.url,
            "expires_at": link.expires_at,
            "account_id": account_id,
        }

    @classmethod
    def get_payout_status(cls, principal_id: str) -> dict:
        """
        Summarize the principal's payout readiness from recorded flags.

        A principal with no identity reports not_started.
        """
        identity = BillingIdentity.objects.filter(principal_id=principal_id).first()
        if identity is None:
            return {
                "has_payout_account": False,
                "onboarding_status": OnboardingStatus.NOT_STARTED,
                "can_receive_transfers": False,
                "payouts_enabled": False,
                "details_submitted": False,
            }
        return {
            "has_payout_account": bool(identity.payout_account_id),
            "onboarding_status": identity.onboarding_status,
            "can_receive_transfers": identity.can_receive_transfers,
            "payouts_enabled": identity.payouts_enabled,
            "details_submitted": identity.details_submitted,
        }

    @classmethod
    def refresh_payout_capability(cls, principal_id: str) -> BillingIdentity:
        """
        Re-read the payout account from the processor and record its flags.

        Raises:
            PaymentNotFoundError: Principal has no payout account
        """
        identity = BillingIdentity.objects.filter(principal_id=principal_id).first()
        if identity is None or not identity.payout_account_id:
            raise PaymentNotFoundError(
                f"No payout account for principal {principal_id}",
                details={"principal_id": principal_id},
            )

        account = StripeAdapter.retrieve_account(identity.payout_account_id)
        return cls.apply_account_status(identity, account)

    @classmethod
    def apply_account_status(
        cls,
        identity: BillingIdentity,
        account: PayoutAccountResult,
    ) -> BillingIdentity:
        """
        Record a processor account snapshot on the identity and save it.

        Shared by the payout_account.updated webhook and synchronous
        re-verification, so both derive capability the same way.
        """
        previous_status = identity.onboarding_status

        identity.onboarding_status = derive_onboarding_status(account)
        identity.charges_enabled = account.charges_enabled
        identity.payouts_enabled = account.payouts_enabled
        identity.details_submitted = account.details_submitted
        identity.capabilities_synced_at = timezone.now()
        identity.save(
            update_fields=[
                "onboarding_status",
                "charges_enabled",
                "payouts_enabled",
                "details_submitted",
                "capabilities_synced_at",
                "updated_at",
            ]
        )

        if previous_status != identity.onboarding_status:
            cls.get_logger().info(
                f"Payout onboarding {previous_status} -> {identity.onboarding_status}",
                extra={
                    "principal_id": identity.principal_id,
                    "account_id": identity.payout_account_id,
                },
            )
        return identity

    @classmethod
    def disconnect_payout_account(cls, account_id: str) -> bool:
        """
        Forget a payout account the holder disconnected from the platform.

        The identity row is kept; only the account and its flags are cleared.
        The generation is bumped so a later reconnect creates a new account
        instead of replaying the old creation request.

        Returns:
            True if an identity referenced the account
        """
        updated = BillingIdentity.objects.filter(payout_account_id=account_id).update(
            payout_account_id=None,
            onboarding_status=OnboardingStatus.NOT_STARTED,
            charges_enabled=False,
            payouts_enabled=False,
            details_submitted=False,
            capabilities_synced_at=timezone.now(),
            payout_account_generation=F("payout_account_generation") + 1,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )

        if updated:
            cls.get_logger().warning(
                "Payout account disconnected",
                extra={"account_id": account_id},
            )
        return bool(updated)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate_principal_id(principal_id: str | None) -> None:
        if not principal_id or not str(principal_id).strip():
            raise InvalidIdentityError("principal_id is required")

    @staticmethod
    def _validate_email(email: str | None) -> None:
        if not email:
            raise InvalidIdentityError("An email is required to register a billing identity")
        try:
            validate_email(email)
        except DjangoValidationError:
            raise InvalidIdentityError(
                "Malformed email address",
                details={"email": email},
            ) from None

    @staticmethod
    def _get_or_create_identity(
        principal_id: str,
        principal_type: str,
        email: str,
    ) -> BillingIdentity:
        identity, _ = BillingIdentity.objects.get_or_create(
            principal_id=principal_id,
            defaults={"principal_type": principal_type, "email": email},
        )
        return identity

    @classmethod
    def _store_processor_id(
        cls,
        identity: BillingIdentity,
        field_name: str,
        processor_id: str,
    ) -> str:
        """
        Write processor_id into field_name unless a racing writer got there first.

        Returns:
            The id that ends up stored
        """
        updated = BillingIdentity.objects.filter(
            pk=identity.pk,
            **{f"{field_name}__isnull": True},
        ).update(
            **{field_name: processor_id},
            version=F("version") + 1,
            updated_at=timezone.now(),
        )

        if updated:
            cls.get_logger().info(
                f"Stored {field_name} for principal",
                extra={"principal_id": identity.principal_id, field_name: processor_id},
            )
            return processor_id

        stored = (
            BillingIdentity.objects.filter(pk=identity.pk)
            .values_list(field_name, flat=True)
            .get()
        )
        cls.get_logger().info(
            f"Concurrent writer already stored {field_name}",
            extra={"principal_id": identity.principal_id, "stored_id": stored},
        )
        return stored
