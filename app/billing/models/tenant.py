"""
Tenant and processor credential models.

Every billing record belongs to a tenant. A tenant brings its own Stripe
account: the engine never uses a global API key, it looks up the tenant's
enabled PaymentIntegrationCredential for every processor call.

Usage:
    from billing.models import PaymentIntegrationCredential, Tenant

    tenant = Tenant.objects.create(name="Acme Academy", slug="acme")
    PaymentIntegrationCredential.objects.create(
        tenant=tenant,
        secret_key="sk_test_...",
        publishable_key="pk_test_...",
        webhook_secret="whsec_...",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Tenant(UUIDPrimaryKeyMixin, BaseModel):
    """
    An organization selling courses and programs.

    Fields:
        name: Display name
        slug: Unique URL-safe identifier
        payment_grace_days: Days past due before course access is suspended
        is_active: Whether the tenant is operating
    """

    name = models.CharField(
        max_length=200,
        help_text="Tenant display name",
    )

    slug = models.SlugField(
        max_length=100,
        unique=True,
        help_text="Unique URL-safe identifier",
    )

    payment_grace_days = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Days past due before access is suspended (blank = platform default)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the tenant is operating",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Tenant"
        verbose_name_plural = "Tenants"

    def __str__(self) -> str:
        return self.name

    @property
    def grace_days(self) -> int:
        """Effective grace period, falling back to BILLING_DEFAULT_GRACE_DAYS."""
        if self.payment_grace_days is not None:
            return self.payment_grace_days
        return settings.BILLING_DEFAULT_GRACE_DAYS


class PaymentIntegrationCredential(UUIDPrimaryKeyMixin, BaseModel):
    """
    Per-tenant processor credentials.

    Read-only from the engine's point of view; at most one enabled
    credential per tenant and integration.

    Fields:
        tenant: Owning tenant
        integration_key: Processor identifier ("stripe")
        secret_key: Server-side API key (sk_xxx)
        publishable_key: Client-side key returned to checkout (pk_xxx)
        webhook_secret: Signing secret for webhook verification (whsec_xxx)
        is_enabled: Whether the credential may be used
    """

    class Integration(models.TextChoices):
        STRIPE = "stripe", "Stripe"

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="payment_credentials",
        help_text="Tenant owning these credentials",
    )

    integration_key = models.CharField(
        max_length=30,
        choices=Integration.choices,
        default=Integration.STRIPE,
        help_text="Payment processor these credentials belong to",
    )

    secret_key = models.CharField(
        max_length=255,
        help_text="Processor secret API key",
    )

    publishable_key = models.CharField(
        max_length=255,
        help_text="Processor publishable key for client-side checkout",
    )

    webhook_secret = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Webhook signing secret",
    )

    is_enabled = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether these credentials may be used",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Integration Credential"
        verbose_name_plural = "Payment Integration Credentials"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "integration_key"],
                condition=models.Q(is_enabled=True),
                name="one_enabled_credential_per_integration",
            ),
        ]

    def __str__(self) -> str:
        state = "enabled" if self.is_enabled else "disabled"
        return f"{self.get_integration_key_display()} credential for {self.tenant_id} ({state})"
