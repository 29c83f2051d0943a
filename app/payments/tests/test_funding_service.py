"""
Tests for FundingService: funding intents, escrow and release.
"""

from unittest.mock import patch

import pytest

from notifications.models import PaymentNotification
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeInvalidAccountError,
    StripeTimeoutError,
)
from payments.models import BountyFunding, FundingIntent, PayoutTransfer
from payments.services import FundingService
from payments.state_machines import (
    FundingIntentStatus,
    FundingState,
    TransferStatus,
)
from payments.tests.factories import (
    BillingIdentityFactory,
    FundingIntentFactory,
    HeldBountyFundingFactory,
)


def _reload(funding):
    return BountyFunding.objects.get(pk=funding.pk)


@pytest.mark.django_db
class TestGetFundingState:
    def test_unknown_bounty_is_unfunded(self):
        assert FundingService.get_funding_state("never-seen") == FundingState.UNFUNDED

    def test_held_bounty(self, held_funding):
        assert FundingService.get_funding_state("B1") == FundingState.HELD


@pytest.mark.django_db
class TestCreateFundingIntent:
    def test_creates_intent_and_customer(self, mock_stripe_customer, mock_stripe_intent):
        result = FundingService.create_funding_intent(
            bounty_id="B1",
            amount_minor_units=10000,
            currency="USD",
            principal_id="org-1",
            email="billing@acme.example.com",
        )

        assert result.success
        assert result.data.intent_id == "pi_test123"
        assert result.data.client_secret == "pi_test123_secret_abc"

        params = mock_stripe_intent.call_args.args[0]
        assert params.amount_minor_units == 10000
        assert params.currency == "usd"
        assert params.customer_id == "cus_test123"
        assert params.metadata == {"bountyId": "B1", "principalId": "org-1"}

        intent = FundingIntent.objects.get(intent_id="pi_test123")
        assert intent.status == FundingIntentStatus.CREATED
        assert intent.bounty_funding.state == FundingState.UNFUNDED

    def test_existing_customer_reused(self, mock_stripe_customer, mock_stripe_intent):
        BillingIdentityFactory(principal_id="org-1", customer_id="cus_existing")

        FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "a@example.com")

        mock_stripe_customer.assert_not_called()
        assert mock_stripe_intent.call_args.args[0].customer_id == "cus_existing"

    def test_retried_checkout_uses_new_idempotency_key(
        self, mock_stripe_customer, mock_stripe_intent
    ):
        FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "a@example.com")
        mock_stripe_intent.return_value.id = "pi_second"
        FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "a@example.com")

        first_key = mock_stripe_intent.call_args_list[0].args[0].idempotency_key
        second_key = mock_stripe_intent.call_args_list[1].args[0].idempotency_key
        assert first_key.startswith("fund:B1:1:")
        assert second_key.startswith("fund:B1:2:")

    @pytest.mark.parametrize("amount", [0, -100, 10.5, True, "100"])
    def test_rejects_non_positive_integer_amount(self, amount):
        result = FundingService.create_funding_intent("B1", amount, "usd", "org-1", "a@example.com")

        assert result.error_code == "INVALID_AMOUNT"
        assert not BountyFunding.objects.exists()

    def test_rejects_foreign_currency(self):
        result = FundingService.create_funding_intent("B1", 10000, "eur", "org-1", "a@example.com")

        assert result.error_code == "INVALID_INPUT"
        assert "currency" in result.errors

    def test_rejects_missing_bounty_id(self):
        result = FundingService.create_funding_intent("", 10000, "usd", "org-1", "a@example.com")

        assert result.error_code == "INVALID_INPUT"
        assert "bounty_id" in result.errors

    def test_already_funded_bounty(self, held_funding, mock_stripe_intent):
        result = FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "a@example.com")

        assert result.error_code == "ALREADY_FUNDED"
        mock_stripe_intent.assert_not_called()

    def test_malformed_email_for_new_customer(self, mock_stripe_customer):
        result = FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "not-an-email")

        assert result.error_code == "INVALID_IDENTITY"
        mock_stripe_customer.assert_not_called()

    def test_processor_unavailable(self, mock_stripe_customer, mock_stripe_intent):
        mock_stripe_intent.side_effect = StripeAPIUnavailableError("down")

        result = FundingService.create_funding_intent("B1", 10000, "usd", "org-1", "a@example.com")

        assert result.error_code == "PROCESSOR_UNAVAILABLE"
        assert not FundingIntent.objects.exists()


@pytest.mark.django_db
class TestOnIntentSucceeded:
    def test_moves_unfunded_to_held(self, django_capture_on_commit_callbacks):
        intent = FundingIntentFactory(
            intent_id="pi_1",
            bounty_funding__bounty_id="B1",
            principal_id="org-1",
        )

        with django_capture_on_commit_callbacks(execute=True):
            result = FundingService.on_intent_succeeded(
                "pi_1", {"bountyId": "B1", "principalId": "org-1"}, 10000, "usd"
            )

        funding = _reload(result.data)
        assert funding.state == FundingState.HELD
        assert funding.amount_minor_units == 10000
        assert funding.funding_intent_id == intent.pk
        assert FundingIntent.objects.get(pk=intent.pk).is_succeeded
        assert PaymentNotification.objects.filter(
            principal_id="org-1", kind="bounty_funded", bounty_id="B1"
        ).exists()

    def test_replay_is_noop(self):
        FundingIntentFactory(intent_id="pi_1", bounty_funding__bounty_id="B1")
        FundingService.on_intent_succeeded("pi_1", {"bountyId": "B1"}, 10000)
        held_at = BountyFunding.objects.get(bounty_id="B1").held_at

        result = FundingService.on_intent_succeeded("pi_1", {"bountyId": "B1"}, 10000)

        assert result.success
        funding = BountyFunding.objects.get(bounty_id="B1")
        assert funding.state == FundingState.HELD
        assert funding.held_at == held_at

    def test_second_payment_does_not_change_escrow(self, held_funding, caplog):
        FundingIntentFactory(intent_id="pi_dup", bounty_funding=held_funding)

        result = FundingService.on_intent_succeeded("pi_dup", {"bountyId": "B1"}, 10000)

        assert result.success
        funding = _reload(held_funding)
        assert funding.funding_intent_id == held_funding.funding_intent_id
        assert not FundingIntent.objects.get(intent_id="pi_dup").is_succeeded
        assert "Duplicate funding" in caplog.text

    def test_unknown_intent_is_recorded(self):
        result = FundingService.on_intent_succeeded(
            "pi_external", {"bountyId": "B7", "principalId": "org-9"}, 2500, "USD"
        )

        funding = _reload(result.data)
        assert funding.state == FundingState.HELD
        assert funding.amount_minor_units == 2500
        assert funding.creator_principal_id == "org-9"

    def test_known_intent_without_amount(self):
        FundingIntentFactory(intent_id="pi_1", bounty_funding__bounty_id="B1", amount_minor_units=4200)

        result = FundingService.on_intent_succeeded("pi_1", {"bountyId": "B1"})

        funding = _reload(result.data)
        assert funding.state == FundingState.HELD
        assert funding.amount_minor_units == 4200

    def test_unknown_intent_without_amount_ignored(self):
        result = FundingService.on_intent_succeeded("pi_external", {"bountyId": "B7"}, None)

        assert result.success
        assert result.data is None
        assert FundingService.get_funding_state("B7") == FundingState.UNFUNDED

    def test_missing_bounty_metadata_ignored(self):
        result = FundingService.on_intent_succeeded("pi_1", {}, 10000)

        assert result.success
        assert result.data is None
        assert not BountyFunding.objects.exists()


@pytest.mark.django_db
class TestOnIntentFailed:
    def test_records_failure(self):
        intent = FundingIntentFactory(intent_id="pi_1")

        FundingService.on_intent_failed("pi_1", "Your card was declined.")

        stored = FundingIntent.objects.get(pk=intent.pk)
        assert stored.status == FundingIntentStatus.FAILED
        assert stored.failure_reason == "Your card was declined."
        assert stored.bounty_funding.state == FundingState.UNFUNDED

    def test_does_not_override_success(self, held_funding):
        intent_id = held_funding.funding_intent.intent_id

        FundingService.on_intent_failed(intent_id, "late")

        assert FundingIntent.objects.get(intent_id=intent_id).is_succeeded

    def test_unknown_intent_acknowledged(self):
        assert FundingService.on_intent_canceled("pi_missing").success


@pytest.mark.django_db
class TestReleaseToSolver:
    def test_release_transfers_and_marks_released(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.success
        funding = _reload(held_funding)
        assert funding.state == FundingState.RELEASED
        assert funding.solver_principal_id == "solver-1"

        transfer = PayoutTransfer.objects.get(bounty_funding=funding)
        assert transfer.status == TransferStatus.SUCCEEDED
        assert transfer.transfer_id == "tr_test123"

        kwargs = mock_stripe_transfer.call_args.kwargs
        assert kwargs["amount_minor_units"] == 10000
        assert kwargs["destination_account"] == payout_ready_solver.payout_account_id
        assert kwargs["idempotency_key"].startswith("release:B1:1:")

    def test_second_release_is_terminal(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        FundingService.release_to_solver("B1", "solver-1")

        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "ALREADY_IN_TERMINAL_STATE"
        assert mock_stripe_transfer.call_count == 1

    def test_partial_release(self, held_funding, payout_ready_solver, mock_stripe_transfer):
        result = FundingService.release_to_solver("B1", "solver-1", 4000)

        assert result.success
        assert result.data.transfer.amount_minor_units == 4000

    def test_amount_above_held_rejected(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        result = FundingService.release_to_solver("B1", "solver-1", 20000)

        assert result.error_code == "INVALID_AMOUNT"
        mock_stripe_transfer.assert_not_called()

    def test_unfunded_bounty(self, unfunded_funding, payout_ready_solver, mock_stripe_transfer):
        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "NOT_FUNDED"
        mock_stripe_transfer.assert_not_called()

    def test_solver_without_payout_account(self, held_funding, mock_stripe_transfer):
        BillingIdentityFactory(principal_id="solver-1")

        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "PAYOUT_ACCOUNT_NOT_READY"
        assert _reload(held_funding).state == FundingState.HELD

    def test_solver_still_onboarding(self, held_funding, onboarding_solver, mock_stripe_transfer):
        result = FundingService.release_to_solver("B1", "solver-2")

        assert result.error_code == "PAYOUT_ACCOUNT_NOT_READY"
        mock_stripe_transfer.assert_not_called()

    def test_transfer_failure_leaves_bounty_held(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeInvalidAccountError("No such account")

        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "INVALID_PAYOUT_ACCOUNT"
        assert _reload(held_funding).state == FundingState.HELD
        assert PayoutTransfer.objects.get().status == TransferStatus.FAILED
        assert mock_stripe_transfer.call_count == 1

    def test_release_allowed_again_after_failed_transfer(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeInvalidAccountError("No such account")
        FundingService.release_to_solver("B1", "solver-1")
        mock_stripe_transfer.side_effect = None

        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.success
        assert result.data.transfer.attempt == 2
        assert mock_stripe_transfer.call_args.kwargs["idempotency_key"].startswith("release:B1:2:")

    def test_timeout_leaves_transfer_pending(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeTimeoutError("timed out")

        result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "PROCESSOR_TIMEOUT"
        assert PayoutTransfer.objects.get().status == TransferStatus.PENDING
        assert _reload(held_funding).state == FundingState.HELD

        blocked = FundingService.release_to_solver("B1", "solver-1")
        assert blocked.error_code == "RELEASE_IN_PROGRESS"

    def test_reverify_uses_fresh_capability(
        self, settings, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        settings.PAYOUT_REVERIFY_ON_RELEASE = True
        with patch(
            "payments.services.identity_resolver.StripeAdapter.retrieve_account"
        ) as retrieve:
            from payments.adapters import PayoutAccountResult

            retrieve.return_value = PayoutAccountResult(
                id=payout_ready_solver.payout_account_id,
                details_submitted=True,
                charges_enabled=True,
                payouts_enabled=False,
                currently_due=["external_account"],
            )

            result = FundingService.release_to_solver("B1", "solver-1")

        assert result.error_code == "PAYOUT_ACCOUNT_NOT_READY"
        mock_stripe_transfer.assert_not_called()


@pytest.mark.django_db
class TestTransferWebhooks:
    def test_transfer_created_completes_pending_release(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeTimeoutError("timed out")
        FundingService.release_to_solver("B1", "solver-1")

        FundingService.on_transfer_created("tr_late", {"bountyId": "B1"})

        assert _reload(held_funding).state == FundingState.RELEASED
        transfer = PayoutTransfer.objects.get()
        assert transfer.status == TransferStatus.SUCCEEDED
        assert transfer.transfer_id == "tr_late"

    def test_transfer_failed_unblocks_release(
        self, held_funding, payout_ready_solver, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeTimeoutError("timed out")
        FundingService.release_to_solver("B1", "solver-1")

        FundingService.on_transfer_failed("tr_late", {"bountyId": "B1"}, "account closed")

        transfer = PayoutTransfer.objects.get()
        assert transfer.status == TransferStatus.FAILED
        assert transfer.failure_reason == "account closed"
        assert _reload(held_funding).state == FundingState.HELD

    def test_failure_after_success_is_not_reversed(
        self, held_funding, payout_ready_solver, mock_stripe_transfer, caplog
    ):
        FundingService.release_to_solver("B1", "solver-1")

        FundingService.on_transfer_failed("tr_test123", {"bountyId": "B1"}, "reversed")

        assert PayoutTransfer.objects.get().status == TransferStatus.SUCCEEDED
        assert _reload(held_funding).state == FundingState.RELEASED
        assert "recorded as succeeded" in caplog.text

    def test_unknown_transfer_ignored(self):
        assert FundingService.on_transfer_created("tr_nope", {}).data is None


@pytest.mark.django_db
class TestPendingTransferReconciliation:
    @pytest.fixture
    def stuck_transfer(self, held_funding, payout_ready_solver, mock_stripe_transfer):
        mock_stripe_transfer.side_effect = StripeAPIUnavailableError("connection refused")
        FundingService.release_to_solver("B1", "solver-1")
        mock_stripe_transfer.side_effect = None
        return PayoutTransfer.objects.get()

    def test_stuck_transfer_blocks_release_and_refund(self, stuck_transfer):
        assert stuck_transfer.status == TransferStatus.PENDING
        assert FundingService.release_to_solver("B1", "solver-1").error_code == "RELEASE_IN_PROGRESS"
        assert FundingService.refund_funding("B1").error_code == "RELEASE_IN_PROGRESS"

    def test_reconcile_resends_with_same_idempotency_key(
        self, held_funding, stuck_transfer, mock_stripe_transfer
    ):
        first_call = mock_stripe_transfer.call_args.kwargs

        result = FundingService.reconcile_pending_transfer(stuck_transfer.pk)

        assert result.success
        assert mock_stripe_transfer.call_count == 2
        assert mock_stripe_transfer.call_args.kwargs == first_call
        assert result.data.status == TransferStatus.SUCCEEDED
        assert result.data.transfer_id == "tr_test123"
        assert _reload(held_funding).state == FundingState.RELEASED

    def test_reconcile_permanent_error_fails_transfer(
        self, held_funding, stuck_transfer, mock_stripe_transfer
    ):
        mock_stripe_transfer.side_effect = StripeInvalidAccountError("No such account")

        result = FundingService.reconcile_pending_transfer(stuck_transfer.pk)

        assert result.error_code == "INVALID_PAYOUT_ACCOUNT"
        assert PayoutTransfer.objects.get().status == TransferStatus.FAILED
        assert _reload(held_funding).state == FundingState.HELD

    def test_reconcile_transient_error_stays_pending(self, stuck_transfer, mock_stripe_transfer):
        mock_stripe_transfer.side_effect = StripeTimeoutError("timed out")

        result = FundingService.reconcile_pending_transfer(stuck_transfer.pk)

        assert result.error_code == "PROCESSOR_TIMEOUT"
        assert PayoutTransfer.objects.get().status == TransferStatus.PENDING

    def test_reconcile_settled_transfer_is_noop(self, stuck_transfer, mock_stripe_transfer):
        FundingService.on_transfer_created("tr_late", {"bountyId": "B1"})

        result = FundingService.reconcile_pending_transfer(stuck_transfer.pk)

        assert result.success
        assert mock_stripe_transfer.call_count == 1

    def test_fail_pending_transfer_allows_refund(self, held_funding, stuck_transfer):
        result = FundingService.fail_pending_transfer(stuck_transfer.pk, "not found at Stripe")

        assert result.success
        assert result.data.failure_reason == "not found at Stripe"
        with patch("payments.services.funding_service.StripeAdapter.create_refund"):
            refund = FundingService.refund_funding("B1")
        assert refund.success
        assert _reload(held_funding).state == FundingState.REFUNDED

    def test_fail_settled_transfer_rejected(self, held_funding, payout_ready_solver, mock_stripe_transfer):
        FundingService.release_to_solver("B1", "solver-1")

        result = FundingService.fail_pending_transfer(PayoutTransfer.objects.get().pk, "oops")

        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert PayoutTransfer.objects.get().status == TransferStatus.SUCCEEDED


@pytest.mark.django_db
class TestRefundFunding:
    def test_refund_held_bounty(self, held_funding):
        with patch("payments.services.funding_service.StripeAdapter.create_refund") as refund:
            result = FundingService.refund_funding("B1", reason="bounty withdrawn")

        assert result.success
        assert _reload(held_funding).state == FundingState.REFUNDED
        assert refund.call_args.kwargs["payment_intent_id"] == held_funding.funding_intent.intent_id

    def test_refund_failure_stays_held(self, held_funding):
        with patch(
            "payments.services.funding_service.StripeAdapter.create_refund",
            side_effect=StripeAPIUnavailableError("down"),
        ):
            result = FundingService.refund_funding("B1")

        assert result.error_code == "PROCESSOR_UNAVAILABLE"
        assert _reload(held_funding).state == FundingState.HELD


@pytest.mark.django_db
class TestReleaseNotifications:
    def test_release_notifies_solver(
        self, held_funding, payout_ready_solver, mock_stripe_transfer, mocker
    ):
        dispatch = mocker.patch("payments.services.funding_service.NotificationDispatcher.dispatch")

        FundingService.release_to_solver("B1", "solver-1")

        dispatch.assert_called_once_with(
            principal_id="solver-1",
            kind="bounty_released",
            bounty_id="B1",
            amount_minor_units=10000,
        )

    def test_no_notification_when_transfer_fails(
        self, held_funding, payout_ready_solver, mock_stripe_transfer, mocker
    ):
        dispatch = mocker.patch("payments.services.funding_service.NotificationDispatcher.dispatch")
        mock_stripe_transfer.side_effect = StripeInvalidAccountError("No such account")

        FundingService.release_to_solver("B1", "solver-1")

        dispatch.assert_not_called()
