"""
Payment API views.

This module provides API views for:
- Creating funding intents for bounties
- Releasing held funds to a solver, or refunding them to the creator
- Payout account onboarding links and status
- Balance and activity for a billing principal
- Bounty funding state

Every principal-scoped endpoint goes through BillingIdentityGate; a session
that may not act for the requested principal gets a generic 403 that does
not reveal whether the organization exists.

Related files:
    - serializers.py: Request/response serialization
    - services/: Business logic
    - webhooks/views.py: Processor webhook endpoint
    - urls.py: URL routing
"""

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from payments.exceptions import IdentityMismatchError
from payments.serializers import (
    ActivityPageSerializer,
    ActivityQuerySerializer,
    BalanceSerializer,
    FundingIntentRequestSerializer,
    FundingIntentResponseSerializer,
    FundingStateSerializer,
    PayoutOnboardingResponseSerializer,
    PayoutStatusSerializer,
    PrincipalRequestSerializer,
    RefundRequestSerializer,
    ReleaseRequestSerializer,
    ReleaseResponseSerializer,
)
from payments.services import (
    BalanceProjector,
    BillingIdentityGate,
    FundingService,
    IdentityResolver,
    SessionContext,
)


BILLING_IDENTITY_UNAVAILABLE = "Billing identity unavailable"

ERROR_STATUS_CODES = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "INVALID_IDENTITY": status.HTTP_400_BAD_REQUEST,
    "CARD_DECLINED": status.HTTP_402_PAYMENT_REQUIRED,
    "INSUFFICIENT_FUNDS": status.HTTP_402_PAYMENT_REQUIRED,
    "IDENTITY_MISMATCH": status.HTTP_403_FORBIDDEN,
    "PAYMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_FUNDED": status.HTTP_409_CONFLICT,
    "ALREADY_IN_TERMINAL_STATE": status.HTTP_409_CONFLICT,
    "PAYOUT_ACCOUNT_NOT_READY": status.HTTP_409_CONFLICT,
    "NOT_FUNDED": status.HTTP_409_CONFLICT,
    "RELEASE_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "PROCESSOR_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_TIMEOUT": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_RATE_LIMITED": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _status_for(error_code: str | None) -> int:
    return ERROR_STATUS_CODES.get(error_code or "", status.HTTP_502_BAD_GATEWAY)


def _result_error_response(result: ServiceResult) -> Response:
    return Response(result.to_response(), status=_status_for(result.error_code))


def _exception_response(exc: BaseApplicationError) -> Response:
    return Response(
        {"success": False, **exc.to_dict()},
        status=_status_for(exc.error_code),
    )


def _invalid_request_response(errors: dict, error_code: str = "INVALID_INPUT") -> Response:
    return Response(
        {
            "success": False,
            "error": "Invalid request",
            "error_code": error_code,
            "errors": errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


def _identity_unavailable_response() -> Response:
    return Response(
        {"success": False, "error": BILLING_IDENTITY_UNAVAILABLE},
        status=status.HTTP_403_FORBIDDEN,
    )


def _authorize(request, principal_id):
    """Return the gate's principal for principal_id, or None when denied."""
    try:
        return BillingIdentityGate.authorize(SessionContext.from_request(request), principal_id)
    except IdentityMismatchError:
        return None


def _authorize_bounty_creator(request, bounty_id):
    """
    Return the gate's principal if the session acts for the bounty's creator.

    A bounty nobody funded has no creator yet; any billing principal may
    then ask, and the service answers NOT_FUNDED.
    """
    creator_id = FundingService.get_creator_principal_id(bounty_id)
    if creator_id is None:
        return BillingIdentityGate.identify(SessionContext.from_request(request))
    return _authorize(request, creator_id)


# =============================================================================
# Funding Views
# =============================================================================


class FundingIntentView(APIView):
    """
    API view for funding a bounty.

    POST: Create a processor payment intent for a bounty

    URL: /api/v1/payments/funding-intents/

    Request body:
        {
            "bountyId": "B1",
            "amount": 10000,
            "currency": "usd",
            "principalId": "<organization id>"
        }

    Returns:
        201 {"clientSecret": "...", "intentId": "pi_..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_funding_intent",
        summary="Create funding intent",
        description=(
            "Create a payment intent that funds a bounty. The bounty moves to "
            "held only when the processor confirms the payment by webhook."
        ),
        request=FundingIntentRequestSerializer,
        responses={
            201: OpenApiResponse(
                response=FundingIntentResponseSerializer,
                description="Intent created; confirm it client-side with clientSecret",
            ),
            400: OpenApiResponse(description="INVALID_AMOUNT or INVALID_INPUT"),
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
            409: OpenApiResponse(description="ALREADY_FUNDED"),
            503: OpenApiResponse(description="PROCESSOR_UNAVAILABLE or PROCESSOR_TIMEOUT"),
        },
        tags=["Payments - Funding"],
    )
    def post(self, request):
        serializer = FundingIntentRequestSerializer(data=request.data)
        if not serializer.is_valid():
            error_code = "INVALID_AMOUNT" if "amount" in serializer.errors else "INVALID_INPUT"
            return _invalid_request_response(serializer.errors, error_code)

        data = serializer.validated_data
        principal = _authorize(request, data["principalId"])
        if principal is None:
            return _identity_unavailable_response()

        result = FundingService.create_funding_intent(
            bounty_id=data["bountyId"],
            amount_minor_units=data["amount"],
            currency=data["currency"],
            principal_id=principal.principal_id,
            email=principal.email,
            principal_type=principal.principal_type,
        )
        if not result.success:
            return _result_error_response(result)

        return Response(
            FundingIntentResponseSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class FundingStateView(APIView):
    """
    API view for a bounty's escrow state.

    GET: unfunded, held, released or refunded

    URL: /api/v1/payments/bounties/<bounty_id>/funding-state/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_bounty_funding_state",
        summary="Get bounty funding state",
        responses={200: FundingStateSerializer},
        tags=["Payments - Funding"],
    )
    def get(self, request, bounty_id):
        state = FundingService.get_funding_state(bounty_id)
        return Response(FundingStateSerializer({"bountyId": bounty_id, "state": state}).data)


class ReleaseView(APIView):
    """
    API view for paying out a bounty.

    POST: Transfer the held funds to the solver's payout account. Only the
    organization that funded the bounty may release it.

    URL: /api/v1/payments/bounties/<bounty_id>/release/

    Request body:
        {"solverPrincipalId": "<id>", "amount": 10000}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="release_bounty_funds",
        summary="Release held funds to solver",
        description=(
            "Transfer held funds to the solver. A failed transfer leaves the "
            "bounty held; call again to retry."
        ),
        request=ReleaseRequestSerializer,
        responses={
            200: ReleaseResponseSerializer,
            400: OpenApiResponse(description="INVALID_AMOUNT or INVALID_INPUT"),
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
            409: OpenApiResponse(
                description=(
                    "ALREADY_IN_TERMINAL_STATE, NOT_FUNDED, "
                    "PAYOUT_ACCOUNT_NOT_READY or RELEASE_IN_PROGRESS"
                )
            ),
            503: OpenApiResponse(description="PROCESSOR_UNAVAILABLE or PROCESSOR_TIMEOUT"),
        },
        tags=["Payments - Funding"],
    )
    def post(self, request, bounty_id):
        serializer = ReleaseRequestSerializer(data=request.data)
        if not serializer.is_valid():
            error_code = "INVALID_AMOUNT" if "amount" in serializer.errors else "INVALID_INPUT"
            return _invalid_request_response(serializer.errors, error_code)

        if _authorize_bounty_creator(request, bounty_id) is None:
            return _identity_unavailable_response()

        data = serializer.validated_data
        result = FundingService.release_to_solver(
            bounty_id,
            data["solverPrincipalId"],
            data.get("amount"),
        )
        if not result.success:
            return _result_error_response(result)

        return Response(ReleaseResponseSerializer(result.data).data)


class RefundView(APIView):
    """
    API view for cancelling a funded bounty.

    POST: Refund held funds to the organization that paid them

    URL: /api/v1/payments/bounties/<bounty_id>/refund/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="refund_bounty_funds",
        summary="Refund held funds to creator",
        request=RefundRequestSerializer,
        responses={
            200: FundingStateSerializer,
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
            409: OpenApiResponse(
                description="ALREADY_IN_TERMINAL_STATE, NOT_FUNDED or RELEASE_IN_PROGRESS"
            ),
            503: OpenApiResponse(description="PROCESSOR_UNAVAILABLE or PROCESSOR_TIMEOUT"),
        },
        tags=["Payments - Funding"],
    )
    def post(self, request, bounty_id):
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_request_response(serializer.errors)

        if _authorize_bounty_creator(request, bounty_id) is None:
            return _identity_unavailable_response()

        result = FundingService.refund_funding(
            bounty_id, reason=serializer.validated_data.get("reason")
        )
        if not result.success:
            return _result_error_response(result)

        return Response(
            FundingStateSerializer({"bountyId": bounty_id, "state": result.data.state}).data
        )


# =============================================================================
# Payout Views
# =============================================================================


class PayoutOnboardingView(APIView):
    """
    API view for payout account onboarding.

    POST: Ensure a payout account exists and return a hosted onboarding link

    URL: /api/v1/payments/payout-onboarding/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payout_onboarding_link",
        summary="Create payout onboarding link",
        description=(
            "Create the principal's payout account if needed and return a "
            "short-lived link to the processor's hosted onboarding flow."
        ),
        request=PrincipalRequestSerializer,
        responses={
            200: PayoutOnboardingResponseSerializer,
            400: OpenApiResponse(description="INVALID_INPUT or INVALID_IDENTITY"),
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
            503: OpenApiResponse(description="Processor unavailable"),
        },
        tags=["Payments - Payouts"],
    )
    def post(self, request):
        serializer = PrincipalRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid_request_response(serializer.errors)

        principal = _authorize(request, serializer.validated_data["principalId"])
        if principal is None:
            return _identity_unavailable_response()

        try:
            link = IdentityResolver.create_onboarding_link(
                principal.principal_id,
                principal.email,
                principal.principal_type,
            )
        except BaseApplicationError as e:
            return _exception_response(e)

        return Response(PayoutOnboardingResponseSerializer(link).data)


class PayoutStatusView(APIView):
    """
    API view for payout readiness.

    GET: Whether the principal has a payout account and may receive transfers

    URL: /api/v1/payments/payout-status/?principalId=<id>
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout_status",
        summary="Get payout status",
        parameters=[
            OpenApiParameter(name="principalId", type=str, required=True),
        ],
        responses={
            200: PayoutStatusSerializer,
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
        },
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        serializer = PrincipalRequestSerializer(data=request.query_params)
        if not serializer.is_valid():
            return _invalid_request_response(serializer.errors)

        principal = _authorize(request, serializer.validated_data["principalId"])
        if principal is None:
            return _identity_unavailable_response()

        payout_status = IdentityResolver.get_payout_status(principal.principal_id)
        return Response(PayoutStatusSerializer(payout_status).data)


# =============================================================================
# Balance & Activity Views
# =============================================================================


class BalanceView(APIView):
    """
    API view for a principal's payout balance.

    GET: Available and pending balance in minor units

    URL: /api/v1/payments/balance/?principalId=<id>
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_balance",
        summary="Get balance",
        description="Zeroed for principals without a payout account.",
        parameters=[
            OpenApiParameter(name="principalId", type=str, required=True),
        ],
        responses={
            200: BalanceSerializer,
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
        },
        tags=["Payments - Balance"],
    )
    def get(self, request):
        serializer = PrincipalRequestSerializer(data=request.query_params)
        if not serializer.is_valid():
            return _invalid_request_response(serializer.errors)

        principal = _authorize(request, serializer.validated_data["principalId"])
        if principal is None:
            return _identity_unavailable_response()

        try:
            balance = BalanceProjector.get_balance(principal.principal_id)
        except BaseApplicationError as e:
            return _exception_response(e)

        return Response(BalanceSerializer(balance).data)


class ActivityView(APIView):
    """
    API view for a principal's payment activity.

    GET: Charges and transfers, newest first

    URL: /api/v1/payments/activity/?principalId=<id>&page=1&limit=20
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_activity",
        summary="List payment activity",
        parameters=[
            OpenApiParameter(name="principalId", type=str, required=True),
            OpenApiParameter(name="page", type=int, required=False, default=1),
            OpenApiParameter(
                name="limit",
                type=int,
                required=False,
                default=20,
                description="Page size, 1 to 100",
            ),
        ],
        responses={
            200: ActivityPageSerializer,
            400: OpenApiResponse(description="INVALID_INPUT"),
            403: OpenApiResponse(description=BILLING_IDENTITY_UNAVAILABLE),
        },
        tags=["Payments - Balance"],
    )
    def get(self, request):
        serializer = ActivityQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return _invalid_request_response(serializer.errors)

        data = serializer.validated_data
        principal = _authorize(request, data["principalId"])
        if principal is None:
            return _identity_unavailable_response()

        try:
            activity = BalanceProjector.get_activity(
                principal.principal_id,
                page=data["page"],
                limit=data["limit"],
            )
        except BaseApplicationError as e:
            return _exception_response(e)

        return Response(ActivityPageSerializer(activity).data)
