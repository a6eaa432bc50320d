"""
Billing app configuration.

This app provides the payment-schedule engine:
- Payment plan models and schedule generation
- Tenant-scoped Stripe integration
- Invoice orchestration (checkout and daily sweep)
- Settlement reconciliation, refunds and webhook handling
- Course access gating on payment health
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self):
        # Register webhook handlers with the dispatcher
        from billing.webhooks import handlers  # noqa: F401
