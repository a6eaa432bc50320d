"""
Pytest fixtures shared by the billing test suites.

Fixtures provide tenants, enrollments and schedule rows in the states the
services act on, plus a mocked StripeAdapter injected into every service
that talks to Stripe.

Usage:
    def test_refund(paid_schedule, mock_adapter):
        mock_adapter.create_refund.return_value = make_refund("re_1", "200.00")
        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Withdrew")
        assert result.success
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from authentication.tests.factories import UserFactory
from billing.adapters import CustomerResult, StripeAdapter
from billing.services import InvoiceOrchestrator, ScheduleManager, SettlementReconciler
from billing.state_machines import ScheduleStatus
from billing.tests.factories import (
    EnrollmentFactory,
    PaymentIntegrationCredentialFactory,
    PaymentScheduleFactory,
    ProductFactory,
    TenantFactory,
    make_intent,
    make_invoice,
    make_refund,
)


# =============================================================================
# Tenant & Catalog Fixtures
# =============================================================================


@pytest.fixture
def tenant(db):
    return TenantFactory()


@pytest.fixture
def credential(db, tenant):
    return PaymentIntegrationCredentialFactory(tenant=tenant)


@pytest.fixture
def user(db):
    """Learner with a cached Stripe customer."""
    return UserFactory(stripe_customer_id="cus_learner")


@pytest.fixture
def staff_user(db):
    return UserFactory(is_staff=True)


@pytest.fixture
def product(db, tenant):
    return ProductFactory(tenant=tenant)


@pytest.fixture
def enrollment(db, tenant, user, product):
    return EnrollmentFactory(
        tenant=tenant,
        user=user,
        product=product,
        total_amount=Decimal("1000.00"),
        stripe_customer_id="cus_learner",
    )


# =============================================================================
# PaymentSchedule State Fixtures
# =============================================================================


@pytest.fixture
def pending_schedule(db, enrollment):
    """Pending row due now."""
    return PaymentScheduleFactory(enrollment=enrollment, payment_number=1)


@pytest.fixture
def future_schedule(db, enrollment):
    """Pending row due in five days."""
    due = timezone.now() + timedelta(days=5)
    return PaymentScheduleFactory(
        enrollment=enrollment,
        payment_number=2,
        scheduled_date=due,
        original_due_date=due,
    )


@pytest.fixture
def processing_schedule(db, enrollment):
    return PaymentScheduleFactory(
        enrollment=enrollment,
        payment_number=1,
        status=ScheduleStatus.PROCESSING,
        stripe_invoice_id="in_processing",
        stripe_payment_intent_id="pi_processing",
    )


@pytest.fixture
def paid_schedule(db, enrollment):
    """Paid 200.00 row with a recorded intent; enrollment aggregate in sync."""
    schedule = PaymentScheduleFactory(
        enrollment=enrollment,
        payment_number=1,
        status=ScheduleStatus.PAID,
        stripe_payment_intent_id="pi_paid",
        paid_date=timezone.now(),
    )
    SettlementReconciler.recompute_paid_amount(enrollment.id)
    return schedule


@pytest.fixture
def failed_schedule(db, enrollment):
    return PaymentScheduleFactory(
        enrollment=enrollment,
        payment_number=1,
        status=ScheduleStatus.FAILED,
        retry_count=1,
        last_error="Your card was declined.",
        stripe_invoice_id="in_failed",
        next_retry_date=timezone.now() - timedelta(hours=1),
    )


# =============================================================================
# Stripe Adapter Fixtures
# =============================================================================


@pytest.fixture
def mock_adapter():
    """
    MagicMock StripeAdapter injected into the services.

    Defaults describe a learner whose customer exists with a saved card.
    """
    adapter = MagicMock(spec=StripeAdapter)
    adapter.publishable_key = "pk_test_123"
    adapter.retrieve_customer.return_value = CustomerResult(id="cus_learner", email="learner@example.com")
    adapter.get_default_payment_method.return_value = "pm_card_visa"
    adapter.list_payment_methods.return_value = ["pm_card_visa"]
    adapter.create_customer.return_value = CustomerResult(id="cus_new", email="learner@example.com")
    adapter.create_payment_intent.return_value = make_intent()
    adapter.cancel_payment_intent.return_value = make_intent(status="canceled")
    adapter.create_invoice.return_value = make_invoice(status="draft", payment_intent_id=None)
    adapter.attach_invoice_item.return_value = "ii_test_123"
    adapter.finalize_invoice.return_value = make_invoice()
    adapter.pay_invoice.return_value = make_invoice(status="paid")
    adapter.retrieve_invoice.return_value = make_invoice()
    adapter.void_invoice.return_value = make_invoice(status="void")
    adapter.create_refund.return_value = make_refund()
    adapter.list_refunds.return_value = []

    factory = lambda tenant_id: adapter  # noqa: E731
    for service in (InvoiceOrchestrator, SettlementReconciler, ScheduleManager):
        service.set_adapter_factory(factory)
    yield adapter
    for service in (InvoiceOrchestrator, SettlementReconciler, ScheduleManager):
        service.set_adapter_factory(None)
