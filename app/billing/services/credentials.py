"""
Processor credential lookup.

The engine never holds a global Stripe key. Every processor call starts by
loading the tenant's enabled credential through CredentialStore.

Usage:
    from billing.services.credentials import CredentialStore

    credential = CredentialStore.get_enabled_processor_credential(tenant.id)
    credential.publishable_key  # returned to checkout
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from billing.exceptions import CredentialNotConfiguredError
from billing.models import PaymentIntegrationCredential


@dataclass(frozen=True)
class ProcessorCredential:
    """Immutable snapshot of a tenant's processor keys."""

    tenant_id: uuid.UUID
    secret_key: str = field(repr=False)
    publishable_key: str
    webhook_secret: str = field(default="", repr=False)


class CredentialStore:
    """Read-only access to PaymentIntegrationCredential rows."""

    @classmethod
    def get_enabled_processor_credential(
        cls,
        tenant_id: uuid.UUID | str,
        integration_key: str = PaymentIntegrationCredential.Integration.STRIPE,
    ) -> ProcessorCredential:
        """
        Load the tenant's enabled credential.

        Raises:
            CredentialNotConfiguredError: No enabled credential with a secret key
        """
        credential = (
            PaymentIntegrationCredential.objects.filter(
                tenant_id=tenant_id,
                integration_key=integration_key,
                is_enabled=True,
            )
            .order_by("-created_at")
            .first()
        )
        if credential is None or not credential.secret_key:
            raise CredentialNotConfiguredError(
                "Payment processor is not configured for this tenant",
                details={"tenant_id": str(tenant_id), "integration_key": integration_key},
            )

        return ProcessorCredential(
            tenant_id=credential.tenant_id,
            secret_key=credential.secret_key,
            publishable_key=credential.publishable_key,
            webhook_secret=credential.webhook_secret or "",
        )
