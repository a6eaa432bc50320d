"""
Webhook handling for payment events from Stripe.

Each tenant has its own webhook endpoint verified with that tenant's
signing secret. Events are stored idempotently and processed
asynchronously via Celery tasks.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/<uuid:tenant_id>/", stripe_webhook, name="stripe-webhook"),
    ]
"""

from billing.webhooks.handlers import dispatch_webhook, register_handler
from billing.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
