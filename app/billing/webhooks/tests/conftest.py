"""
Pytest fixtures for webhook tests.

Provides stored WebhookEvent rows in each processing status. Events for
specific Stripe objects are built with billing.tests.factories.make_event.
"""

import pytest
from django.utils import timezone

from billing.state_machines import WebhookEventStatus
from billing.tests.factories import make_event


# =============================================================================
# Webhook Event Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook_event(db, tenant):
    return make_event(
        tenant,
        "payment_intent.succeeded",
        {"id": "pi_unknown", "object": "payment_intent", "amount": 20000, "currency": "usd"},
    )


@pytest.fixture
def processed_webhook_event(db, tenant):
    return make_event(
        tenant,
        "payment_intent.succeeded",
        {"id": "pi_done", "object": "payment_intent"},
        status=WebhookEventStatus.PROCESSED,
        processed_at=timezone.now(),
    )


@pytest.fixture
def failed_webhook_event(db, tenant):
    return make_event(
        tenant,
        "invoice.paid",
        {"id": "in_unknown", "object": "invoice"},
        status=WebhookEventStatus.FAILED,
        error_message="Previous processing failed",
        retry_count=1,
    )
