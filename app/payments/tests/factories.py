"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        BillingIdentityFactory,
        BountyFundingFactory,
        FundingIntentFactory,
    )

    # Solver who can receive transfers
    identity = BillingIdentityFactory(payout_ready=True)

    # Bounty in escrow
    funding = HeldBountyFundingFactory(bounty_id="B1")

Note:
    FSM fields are protected, so factories never pass state/status/plan
    directly. Use the state-specific factories, which drive the real
    transitions.
"""

import factory
from django.utils import timezone

from payments.models import (
    BillingIdentity,
    BountyFunding,
    FundingIntent,
    MembershipBilling,
    PayoutTransfer,
    WebhookEvent,
)
from payments.state_machines import (
    FundingIntentStatus,
    OnboardingStatus,
    PrincipalType,
    WebhookEventStatus,
)


class BillingIdentityFactory(factory.django.DjangoModelFactory):
    """
    Factory for BillingIdentity.

    Traits:
        payout_ready: Connected payout account with onboarding complete
    """

    class Meta:
        model = BillingIdentity

    principal_id = factory.Sequence(lambda n: f"principal-{n}")
    principal_type = PrincipalType.ORGANIZATION
    email = factory.LazyAttribute(lambda o: f"{o.principal_id}@example.com")
    customer_id = factory.Sequence(lambda n: f"cus_test{n:08d}")

    class Params:
        payout_ready = factory.Trait(
            payout_account_id=factory.Sequence(lambda n: f"acct_test{n:08d}"),
            onboarding_status=OnboardingStatus.COMPLETE,
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
            capabilities_synced_at=factory.LazyFunction(timezone.now),
        )


class BountyFundingFactory(factory.django.DjangoModelFactory):
    """Unfunded bounty escrow record."""

    class Meta:
        model = BountyFunding

    bounty_id = factory.Sequence(lambda n: f"B{n}")


class FundingIntentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = FundingIntent

    intent_id = factory.Sequence(lambda n: f"pi_test{n:08d}")
    bounty_funding = factory.SubFactory(BountyFundingFactory)
    principal_id = factory.Sequence(lambda n: f"creator-{n}")
    amount_minor_units = 10000
    currency = "usd"
    status = FundingIntentStatus.CREATED
    client_secret = factory.LazyAttribute(lambda o: f"{o.intent_id}_secret_test")


class HeldBountyFundingFactory(BountyFundingFactory):
    """
    Bounty whose funds are in escrow.

    Creates a succeeded FundingIntent and drives UNFUNDED -> HELD.
    Override the intent with held__amount / held__creator.
    """

    class Meta:
        model = BountyFunding
        skip_postgeneration_save = True

    @factory.post_generation
    def held(obj, create, extracted, **kwargs):
        if not create:
            return
        intent = FundingIntentFactory(
            bounty_funding=obj,
            principal_id=kwargs.get("creator", f"creator-{obj.bounty_id}"),
            amount_minor_units=kwargs.get("amount", 10000),
        )
        intent.mark_succeeded()
        intent.save()
        obj.hold(intent)
        obj.save()


class PayoutTransferFactory(factory.django.DjangoModelFactory):
    """Pending transfer of a held bounty to a solver."""

    class Meta:
        model = PayoutTransfer

    bounty_funding = factory.SubFactory(HeldBountyFundingFactory)
    solver_principal_id = factory.Sequence(lambda n: f"solver-{n}")
    destination_account_id = factory.Sequence(lambda n: f"acct_solver{n:08d}")
    amount_minor_units = 10000
    currency = "usd"
    attempt = 1


class MembershipBillingFactory(factory.django.DjangoModelFactory):
    """Free membership; call activate() for a PRO one."""

    class Meta:
        model = MembershipBilling

    principal_id = factory.Sequence(lambda n: f"member-{n}")


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent

    event_id = factory.Sequence(lambda n: f"evt_test{n:08d}")
    event_type = "intent.succeeded"
    payload = factory.LazyAttribute(
        lambda o: {"id": o.event_id, "event": o.event_type, "data": {}}
    )
    status = WebhookEventStatus.PENDING
