"""
Payments app configuration.

This app provides bounty funding and payout infrastructure:
- Billing identities backed by Stripe customers and Connect accounts
- Escrow state for bounties and transfers to solvers
- Membership grace-period billing
- Processor webhook reconciliation
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
