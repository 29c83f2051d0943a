"""
Billing identity gate.

Decides which billing principal a request may act for. Billing is always
organization-scoped: the session names an active organization and the
user must be a current member of it. Membership is re-checked against
the database on every call, because a session can outlive a removed
membership.

Usage:
    from payments.services import BillingIdentityGate, SessionContext

    principal = BillingIdentityGate.identify(SessionContext.from_request(request))
    if principal is None:
        return Response({"error": "Billing identity unavailable"}, status=403)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError

from authentication.models import OrganizationMember
from core.services import BaseService

from payments.exceptions import IdentityMismatchError
from payments.state_machines import PrincipalType

if TYPE_CHECKING:
    from django.http import HttpRequest


ACTIVE_ORGANIZATION_SESSION_KEY = "active_organization_id"
ACTIVE_ORGANIZATION_HEADER = "X-Active-Organization"


@dataclass(frozen=True)
class SessionContext:
    """
    What the caller's session claims.

    Attributes:
        user_id: Authenticated user's id, None when anonymous
        user_email: Authenticated user's email
        active_organization_id: Organization the session says it acts for
    """

    user_id: int | None
    user_email: str | None = None
    active_organization_id: str | None = None

    @classmethod
    def from_request(cls, request: HttpRequest) -> SessionContext:
        """
        Build a context from a Django or DRF request.

        The active organization is read from the session first, then from
        the X-Active-Organization header.
        """
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return cls(user_id=None)

        session = getattr(request, "session", None)
        organization_id = None
        if session is not None:
            organization_id = session.get(ACTIVE_ORGANIZATION_SESSION_KEY)
        if not organization_id:
            organization_id = request.headers.get(ACTIVE_ORGANIZATION_HEADER)

        return cls(
            user_id=user.pk,
            user_email=user.email,
            active_organization_id=str(organization_id) if organization_id else None,
        )


@dataclass(frozen=True)
class BillingPrincipal:
    """
    The principal a request is allowed to bill.

    Attributes:
        principal_id: Organization id, used as the BillingIdentity key
        principal_type: Always PrincipalType.ORGANIZATION
        email: Organization billing email, falling back to the user's
        organization_id: Same as principal_id
        user_id: Acting user
    """

    principal_id: str
    principal_type: str
    email: str
    organization_id: str
    user_id: int


class BillingIdentityGate(BaseService):
    """Resolves and authorizes billing principals for a session."""

    @classmethod
    def identify(cls, context: SessionContext) -> BillingPrincipal | None:
        """
        Return the billing principal for the session, or None.

        None is returned (never an exception) when there is no user, no
        active organization, or the user is not a member of it. Failed
        membership checks are logged for audit.
        """
        if context.user_id is None:
            return None

        if not context.active_organization_id:
            cls.get_logger().info(
                "No active organization in session",
                extra={"user_id": context.user_id},
            )
            return None

        try:
            membership = (
                OrganizationMember.objects.select_related("organization")
                .filter(
                    organization_id=context.active_organization_id,
                    user_id=context.user_id,
                )
                .first()
            )
        except (DjangoValidationError, ValueError):
            # Not a valid organization id at all
            membership = None

        if membership is None:
            cls.get_logger().warning(
                "Billing membership check failed",
                extra={
                    "user_id": context.user_id,
                    "organization_id": context.active_organization_id,
                },
            )
            return None

        organization = membership.organization
        return BillingPrincipal(
            principal_id=str(organization.id),
            principal_type=PrincipalType.ORGANIZATION,
            email=organization.billing_email or context.user_email or "",
            organization_id=str(organization.id),
            user_id=context.user_id,
        )

    @classmethod
    def authorize(cls, context: SessionContext, principal_id: str) -> BillingPrincipal:
        """
        Require that the session may act for principal_id.

        Raises:
            IdentityMismatchError: No principal, or a different one
        """
        principal = cls.identify(context)
        if principal is None or principal.principal_id != str(principal_id):
            cls.get_logger().warning(
                "Billing identity mismatch",
                extra={
                    "user_id": context.user_id,
                    "requested_principal_id": principal_id,
                },
            )
            raise IdentityMismatchError("Billing identity unavailable")
        return principal
