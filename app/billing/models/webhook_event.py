"""
WebhookEvent model for Stripe webhook event tracking.

Every verified event is stored before processing so duplicates are
detected, failures can be retried by a periodic task and there is an
audit trail of what the processor told us. Event ids are unique per
tenant because each tenant has its own Stripe account.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        tenant=tenant,
        stripe_event_id="evt_123",
        defaults={"event_type": "invoice.paid", "payload": payload},
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stored Stripe webhook event.

    Processing Flow:
        1. Webhook arrives, signature verified with the tenant's secret
        2. Insert/get WebhookEvent by (tenant, stripe_event_id)
        3. If already PROCESSED -> acknowledge as duplicate
        4. Queue processing task; handler routes by event_type
        5. PROCESSED on success, FAILED with error otherwise
        6. retry_failed_webhooks picks up FAILED events later
    """

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.CASCADE,
        related_name="webhook_events",
        help_text="Tenant whose Stripe account sent the event",
    )

    stripe_event_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Stripe Event ID (evt_xxx)",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'invoice.paid')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_web_status_5c2f8d_idx"),
            models.Index(fields=["event_type", "created_at"], name="billing_web_event_t_e913a7_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "stripe_event_id"],
                name="unique_stripe_event_per_tenant",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        """Failed with attempts left."""
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < settings.BILLING_WEBHOOK_MAX_RETRIES
        )

    # ==========================================================================
    # Helper Methods (do not save - caller must save)
    # ==========================================================================

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """The event's data.object, or an empty dict."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
