"""
End-to-end test of a bounty's funding journey.

Walks bounty B1 from an organization's checkout for 10000 usd through the
processor webhook, solver onboarding and the release of the held funds:

1. Member creates a funding intent through the API (bounty stays unfunded)
2. intent.succeeded webhook moves the bounty to held, exactly once
3. Solver onboards; payout_account.updated grants transfer capability
4. Release transfers the funds and moves the bounty to released
5. A second release reports the terminal state and moves no money

Only the processor SDK boundary (StripeAdapter) is replaced.
"""

import json
from unittest.mock import patch

import pytest
from django.conf import settings
from django.urls import reverse

from notifications.models import PaymentNotification
from payments.adapters import (
    AccountLinkResult,
    PayoutAccountResult,
    TransferResult,
)
from payments.models import BillingIdentity, BountyFunding, FundingIntent, WebhookEvent
from payments.services import FundingService, IdentityResolver
from payments.state_machines import FundingState, OnboardingStatus
from payments.webhooks import compute_signature

BOUNTY_ID = "B1"
AMOUNT = 10000
CURRENCY = "usd"
SOLVER_ID = "solver-org"


def _signed_post(client, payload):
    body = json.dumps(payload).encode()
    return client.post(
        reverse("payments:processor_webhook"),
        data=body,
        content_type="application/json",
        HTTP_X_SIGNATURE=compute_signature(settings.PAYMENTS_WEBHOOK_SECRET, body),
    )


@pytest.mark.django_db
class TestBountyFundingJourney:
    def test_fund_hold_release(
        self,
        client,
        org_client,
        principal_id,
        mock_stripe_customer,
        mock_stripe_intent,
        django_capture_on_commit_callbacks,
    ):
        # 1. Checkout
        response = org_client.post(
            reverse("payments:funding_intents"),
            {
                "bountyId": BOUNTY_ID,
                "amount": AMOUNT,
                "currency": CURRENCY,
                "principalId": principal_id,
            },
            format="json",
        )
        assert response.status_code == 201
        intent_id = response.data["intentId"]
        assert FundingService.get_funding_state(BOUNTY_ID) == FundingState.UNFUNDED
        assert BillingIdentity.objects.get(principal_id=principal_id).customer_id == "cus_test123"

        # 2. Processor confirms the payment, then redelivers it
        succeeded = {
            "id": "evt_funded",
            "event": "intent.succeeded",
            "data": {
                "id": intent_id,
                "amount": AMOUNT,
                "currency": CURRENCY,
                "metadata": {"bountyId": BOUNTY_ID, "principalId": principal_id},
            },
        }
        with django_capture_on_commit_callbacks(execute=True):
            assert _signed_post(client, succeeded).status_code == 200

        redelivery = _signed_post(client, succeeded)
        assert redelivery.status_code == 200
        assert redelivery.content == b"Already processed"

        funding = BountyFunding.objects.get(bounty_id=BOUNTY_ID)
        assert funding.state == FundingState.HELD
        assert funding.amount_minor_units == AMOUNT
        assert funding.currency == CURRENCY
        assert funding.creator_principal_id == principal_id
        assert FundingIntent.objects.get(intent_id=intent_id).is_succeeded
        assert PaymentNotification.objects.filter(
            principal_id=principal_id, kind="bounty_funded"
        ).count() == 1

        state = org_client.get(reverse("payments:funding_state", args=[BOUNTY_ID]))
        assert state.data == {"bountyId": BOUNTY_ID, "state": "held"}

        # 3. Solver onboarding
        with patch(
            "payments.services.identity_resolver.StripeAdapter.create_payout_account",
            return_value=PayoutAccountResult(id="acct_solver"),
        ), patch(
            "payments.services.identity_resolver.StripeAdapter.create_account_link",
            return_value=AccountLinkResult(url="https://connect.example.com/s", expires_at=1893456000),
        ):
            link = IdentityResolver.create_onboarding_link(SOLVER_ID, "solver@example.com")
        assert link["account_id"] == "acct_solver"

        not_ready = FundingService.release_to_solver(BOUNTY_ID, SOLVER_ID)
        assert not_ready.error_code == "PAYOUT_ACCOUNT_NOT_READY"

        account_updated = {
            "id": "evt_account",
            "event": "payout_account.updated",
            "data": {
                "id": "acct_solver",
                "chargesEnabled": True,
                "payoutsEnabled": True,
                "detailsSubmitted": True,
                "requirements": {"currentlyDue": [], "pastDue": []},
            },
        }
        assert _signed_post(client, account_updated).status_code == 200
        solver = BillingIdentity.objects.get(principal_id=SOLVER_ID)
        assert solver.onboarding_status == OnboardingStatus.COMPLETE
        assert solver.can_receive_transfers

        # 4. Release
        with patch(
            "payments.services.funding_service.StripeAdapter.create_transfer",
            return_value=TransferResult(
                id="tr_solver",
                amount_minor_units=AMOUNT,
                currency=CURRENCY,
                destination_account="acct_solver",
            ),
        ) as create_transfer:
            with django_capture_on_commit_callbacks(execute=True):
                released = FundingService.release_to_solver(BOUNTY_ID, SOLVER_ID)

            # 5. Second release
            again = FundingService.release_to_solver(BOUNTY_ID, SOLVER_ID)

        assert released.success
        assert released.data.transfer.transfer_id == "tr_solver"
        assert again.error_code == "ALREADY_IN_TERMINAL_STATE"
        create_transfer.assert_called_once()
        assert create_transfer.call_args.kwargs["destination_account"] == "acct_solver"
        assert create_transfer.call_args.kwargs["amount_minor_units"] == AMOUNT

        funding = BountyFunding.objects.get(bounty_id=BOUNTY_ID)
        assert funding.state == FundingState.RELEASED
        assert funding.solver_principal_id == SOLVER_ID
        assert PaymentNotification.objects.filter(
            principal_id=SOLVER_ID, kind="bounty_released", amount_minor_units=AMOUNT
        ).exists()

        # Transfer confirmation arriving afterwards changes nothing
        transfer_created = {
            "id": "evt_transfer",
            "event": "transfer.created",
            "data": {"id": "tr_solver", "amount": AMOUNT, "metadata": {"bountyId": BOUNTY_ID}},
        }
        assert _signed_post(client, transfer_created).status_code == 200
        assert BountyFunding.objects.get(bounty_id=BOUNTY_ID).state == FundingState.RELEASED

        activity = org_client.get(reverse("payments:activity"), {"principalId": principal_id})
        assert [item["processorId"] for item in activity.data["items"]] == [intent_id]
        assert WebhookEvent.objects.filter(status="processed").count() == 3

    def test_failed_transfer_keeps_funds_held(self, held_funding, payout_ready_solver):
        from payments.exceptions import StripeInsufficientFundsError

        with patch(
            "payments.services.funding_service.StripeAdapter.create_transfer",
            side_effect=StripeInsufficientFundsError("Insufficient platform balance"),
        ) as create_transfer:
            result = FundingService.release_to_solver(held_funding.bounty_id, "solver-1")

        assert result.error_code == "INSUFFICIENT_FUNDS"
        create_transfer.assert_called_once()
        assert FundingService.get_funding_state(held_funding.bounty_id) == FundingState.HELD
