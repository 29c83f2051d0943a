import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PaymentNotification",
            fields=[
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
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "principal_id",
                    models.CharField(
                        db_index=True,
                        help_text="Billing principal the notification is addressed to",
                        max_length=255,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("bounty_funded", "Bounty Funded"),
                            ("bounty_released", "Bounty Released"),
                            ("bounty_refunded", "Bounty Refunded"),
                        ],
                        help_text="What happened to the bounty's funds",
                        max_length=30,
                    ),
                ),
                ("bounty_id", models.CharField(help_text="Bounty the notification refers to", max_length=255)),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(
                        default=0, help_text="Amount in smallest currency unit (e.g., cents)"
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Deduplication key; one notification per kind and bounty",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "read_at",
                    models.DateTimeField(blank=True, help_text="When the notification was read", null=True),
                ),
            ],
            options={
                "verbose_name": "Payment Notification",
                "verbose_name_plural": "Payment Notifications",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["principal_id", "read_at"], name="payment_notif_principal_idx"),
                ],
            },
        ),
    ]
