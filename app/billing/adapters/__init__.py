"""
Payment processor adapters.

All processor calls go through these adapters to ensure tenant-scoped
credentials, consistent error translation, timeouts and observability.

Usage:
    from billing.adapters import StripeAdapter

    adapter = StripeAdapter.for_tenant(tenant_id)
    intent = adapter.create_payment_intent(Decimal("200.00"), "usd", customer_id="cus_123")
"""

from billing.adapters.stripe_adapter import (
    REUSABLE_INTENT_STATUSES,
    CustomerResult,
    IdempotencyKeyGenerator,
    InvoiceResult,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    invoice_payment_intent_id,
    is_retryable_processor_error,
)

__all__ = [
    "REUSABLE_INTENT_STATUSES",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "InvoiceResult",
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "invoice_payment_intent_id",
    "is_retryable_processor_error",
]
