from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="billingidentity",
            name="payout_account_generation",
            field=models.PositiveIntegerField(
                default=1,
                help_text="Bumped on disconnect so the next account gets a fresh idempotency key",
            ),
        ),
    ]
