import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
        ),
    ]


def _uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def _version():
    return (
        "version",
        models.PositiveIntegerField(
            default=1, help_text="Version for optimistic locking - incremented on each save"
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="BillingIdentity",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                (
                    "principal_id",
                    models.CharField(
                        help_text="Opaque id of the billing principal (user or organization)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "principal_type",
                    models.CharField(
                        choices=[("user", "User"), ("organization", "Organization")],
                        default="user",
                        help_text="Kind of entity the principal id refers to",
                        max_length=20,
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Email registered with the processor for this principal",
                        max_length=254,
                    ),
                ),
                (
                    "customer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payout_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Connect Express account ID (acct_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "onboarding_status",
                    models.CharField(
                        choices=[
                            ("not_started", "Not Started"),
                            ("in_progress", "In Progress"),
                            ("complete", "Complete"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="not_started",
                        help_text="Current Stripe Connect onboarding status",
                        max_length=20,
                    ),
                ),
                (
                    "charges_enabled",
                    models.BooleanField(
                        default=False, help_text="Whether Stripe has enabled charges for the payout account"
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False, help_text="Whether Stripe has enabled payouts for the payout account"
                    ),
                ),
                (
                    "details_submitted",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the account holder finished submitting onboarding details",
                    ),
                ),
                (
                    "capabilities_synced_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the capability flags were last recorded from the processor",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Billing Identity",
                "verbose_name_plural": "Billing Identities",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="BountyFunding",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                (
                    "bounty_id",
                    models.CharField(
                        help_text="Opaque bounty id supplied by the marketplace",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("unfunded", "Unfunded"),
                            ("held", "Held"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="unfunded",
                        help_text="Current escrow state of the bounty (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(
                        blank=True, help_text="Held amount in the smallest currency unit", null=True
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="ISO 4217 currency code (lowercase) of the held funds",
                        max_length=3,
                    ),
                ),
                (
                    "creator_principal_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Principal that funded the bounty",
                        max_length=255,
                    ),
                ),
                (
                    "solver_principal_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Principal the funds were released to",
                        max_length=255,
                    ),
                ),
                (
                    "held_at",
                    models.DateTimeField(blank=True, help_text="When the funds entered escrow", null=True),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True, help_text="When the funds were released to the solver", null=True
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True, help_text="When the funds were refunded to the creator", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Bounty Funding",
                "verbose_name_plural": "Bounty Fundings",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="FundingIntent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "intent_id",
                    models.CharField(
                        help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, unique=True
                    ),
                ),
                (
                    "principal_id",
                    models.CharField(
                        db_index=True, help_text="Billing principal paying for the bounty", max_length=255
                    ),
                ),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(help_text="Amount in smallest currency unit (e.g., cents)"),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("requires_action", "Requires Action"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="created",
                        help_text="Processor status of the intent",
                        max_length=20,
                    ),
                ),
                (
                    "client_secret",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Client secret used by the payer to confirm the intent",
                        max_length=255,
                    ),
                ),
                (
                    "succeeded_at",
                    models.DateTimeField(
                        blank=True, help_text="When the processor reported the intent as succeeded", null=True
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, help_text="Most recent failure message reported by the processor", null=True
                    ),
                ),
                (
                    "bounty_funding",
                    models.ForeignKey(
                        help_text="Escrow record this intent funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="intents",
                        to="payments.bountyfunding",
                    ),
                ),
            ],
            options={
                "verbose_name": "Funding Intent",
                "verbose_name_plural": "Funding Intents",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["principal_id", "created_at"], name="funding_intent_principal_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_minor_units__gt", 0)),
                        name="funding_intent_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "succeeded")),
                        fields=("bounty_funding",),
                        name="unique_succeeded_intent_per_bounty",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="bountyfunding",
            name="funding_intent",
            field=models.ForeignKey(
                blank=True,
                help_text="Succeeded funding intent that backs the held funds",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="+",
                to="payments.fundingintent",
            ),
        ),
        migrations.CreateModel(
            name="PayoutTransfer",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                (
                    "solver_principal_id",
                    models.CharField(
                        db_index=True, help_text="Billing principal receiving the funds", max_length=255
                    ),
                ),
                (
                    "destination_account_id",
                    models.CharField(
                        help_text="Stripe Connect account receiving the transfer (acct_xxx)", max_length=255
                    ),
                ),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(
                        help_text="Transfer amount in smallest currency unit (e.g., cents)"
                    ),
                ),
                (
                    "currency",
                    models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3),
                ),
                (
                    "attempt",
                    models.PositiveSmallIntegerField(
                        default=1, help_text="Attempt number for this bounty, part of the idempotency key"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("pending", "Pending"), ("succeeded", "Succeeded"), ("failed", "Failed")],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the transfer (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "transfer_id",
                    models.CharField(
                        blank=True, help_text="Stripe Transfer ID (tr_xxx)", max_length=255, null=True, unique=True
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(blank=True, help_text="Detailed reason if the transfer failed", null=True),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the transfer succeeded or failed", null=True
                    ),
                ),
                (
                    "bounty_funding",
                    models.ForeignKey(
                        help_text="Escrow record being paid out",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers",
                        to="payments.bountyfunding",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Transfer",
                "verbose_name_plural": "Payout Transfers",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["solver_principal_id", "created_at"], name="payout_transfer_solver_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_minor_units__gt", 0)),
                        name="payout_transfer_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "succeeded"])),
                        fields=("bounty_funding",),
                        name="unique_active_transfer_per_bounty",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MembershipBilling",
            fields=[
                *_timestamps(),
                _version(),
                _uuid_pk(),
                (
                    "principal_id",
                    models.CharField(
                        help_text="Billing principal that owns the membership", max_length=255, unique=True
                    ),
                ),
                (
                    "plan",
                    django_fsm.FSMField(
                        choices=[("free", "Free"), ("pro", "Pro"), ("past_due", "Past Due")],
                        db_index=True,
                        default="free",
                        help_text="Current membership plan (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Subscription ID (sub_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(blank=True, help_text="End of the current paid period", null=True),
                ),
                (
                    "failed_charge_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Consecutive failed recurring charges in the current period"
                    ),
                ),
                (
                    "last_charge_failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the most recent recurring charge failed", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Membership Billing",
                "verbose_name_plural": "Membership Billings",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "event_id",
                    models.CharField(
                        help_text="Processor event id - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True, help_text="Wire event name (e.g., 'intent.succeeded')", max_length=100
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook envelope (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True),
                ),
                (
                    "error_message",
                    models.TextField(blank=True, help_text="Error message if processing failed", null=True),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of failed processing attempts"),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_event_status_idx"),
                    models.Index(fields=["event_type", "created_at"], name="webhook_event_type_idx"),
                ],
            },
        ),
    ]
