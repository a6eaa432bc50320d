"""
Billing models.

Models:
    Tenant: Organization selling courses
    PaymentIntegrationCredential: Per-tenant Stripe keys
    Course, Program, Product: Catalog the engine reads
    PaymentPlan: Stored payment model configuration
    Enrollment: A learner's purchase and its payment aggregate
    PaymentSchedule: One due payment (FSM-managed status)
    Payment: Ledger mirror of settled charges
    WebhookEvent: Stored Stripe events for idempotent processing
"""

from billing.models.catalog import Course, PaymentPlan, Product, Program
from billing.models.enrollment import Enrollment
from billing.models.payment import Payment
from billing.models.payment_schedule import PaymentSchedule
from billing.models.tenant import PaymentIntegrationCredential, Tenant
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "Course",
    "Enrollment",
    "Payment",
    "PaymentIntegrationCredential",
    "PaymentPlan",
    "PaymentSchedule",
    "Product",
    "Program",
    "Tenant",
    "WebhookEvent",
]
