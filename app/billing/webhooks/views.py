"""
Webhook endpoint views for Stripe.

Each tenant's Stripe account posts to its own URL. The view:
1. Verifies the signature with the tenant's webhook secret
2. Creates/retrieves the WebhookEvent record (idempotent per tenant)
3. Queues the event for async processing
4. Returns immediately
"""

from __future__ import annotations

import logging
import uuid

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import ConfigurationError, ProcessorRequestError
from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest, tenant_id: uuid.UUID) -> HttpResponse:
    """
    Receive and queue a tenant's Stripe webhook events.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Missing/invalid signature, invalid payload or tenant
          without webhook credentials
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning(
            "Webhook received without Stripe-Signature header",
            extra={"tenant_id": str(tenant_id)},
        )
        return HttpResponse("Missing signature", status=400)

    # Step 1: Verify signature with the tenant's secret
    try:
        event_data = StripeAdapter.for_tenant(tenant_id).verify_webhook_signature(payload, signature)
    except ConfigurationError as e:
        logger.error(
            "Webhook received for tenant without processor credentials",
            extra={"tenant_id": str(tenant_id), "error": e.message},
        )
        return HttpResponse("Webhook not configured", status=400)
    except ProcessorRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"tenant_id": str(tenant_id), "error": e.message},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields", extra={"tenant_id": str(tenant_id)})
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
            "tenant_id": str(tenant_id),
        },
    )

    # Step 2: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        tenant_id=tenant_id,
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 3: Queue for async processing
    try:
        from billing.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "stripe_event_id": stripe_event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
    except Exception as e:
        # The stored event is picked up by retry_failed_webhooks or Stripe's resend
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"stripe_event_id": stripe_event_id},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
