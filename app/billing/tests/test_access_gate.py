"""
Tests for the course access gate.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from billing.services import AccessGate, is_overdue
from billing.state_machines import EnrollmentStatus, ScheduleStatus
from billing.tests.factories import (
    CourseFactory,
    EnrollmentFactory,
    PaymentScheduleFactory,
    ProductFactory,
    ProgramFactory,
)

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=dt_timezone.utc)


def row_due(enrollment, days_ago, status=ScheduleStatus.PENDING, amount="200.00"):
    due = NOW - timedelta(days=days_ago)
    return PaymentScheduleFactory(
        enrollment=enrollment,
        status=status,
        amount=Decimal(amount),
        scheduled_date=due,
        original_due_date=due,
    )


# =============================================================================
# is_overdue
# =============================================================================


@pytest.mark.django_db
class TestIsOverdue:
    def test_past_grace_period(self, enrollment):
        assert is_overdue(row_due(enrollment, days_ago=8), NOW, grace_days=7)

    def test_within_grace_period(self, enrollment):
        assert not is_overdue(row_due(enrollment, days_ago=6), NOW, grace_days=7)

    def test_failed_rows_count(self, enrollment):
        assert is_overdue(row_due(enrollment, days_ago=8, status=ScheduleStatus.FAILED), NOW, grace_days=7)

    @pytest.mark.parametrize(
        "status",
        [ScheduleStatus.PAID, ScheduleStatus.PROCESSING, ScheduleStatus.PAUSED, ScheduleStatus.ADJUSTED],
    )
    def test_other_statuses_never_overdue(self, enrollment, status):
        assert not is_overdue(row_due(enrollment, days_ago=30, status=status), NOW, grace_days=7)


# =============================================================================
# check_access
# =============================================================================


@pytest.mark.django_db
class TestCheckAccess:
    """Tests for AccessGate.check_access()."""

    @pytest.fixture(autouse=True)
    def default_grace_days(self, settings):
        settings.BILLING_DEFAULT_GRACE_DAYS = 7

    def test_healthy_enrollment_has_access(self, enrollment, product):
        row_due(enrollment, days_ago=2)

        decision = AccessGate.check_access(enrollment.user_id, product.course_id, enrollment.tenant_id, now=NOW)

        assert decision.has_access
        assert decision.reason == "OK"
        assert decision.overdue_amount == Decimal("0.00")

    def test_overdue_payments_block_access(self, enrollment, product):
        row_due(enrollment, days_ago=20, amount="200.00")
        row_due(enrollment, days_ago=10, status=ScheduleStatus.FAILED, amount="150.00")
        row_due(enrollment, days_ago=3, amount="500.00")

        decision = AccessGate.check_access(enrollment.user_id, product.course_id, enrollment.tenant_id, now=NOW)

        assert not decision.has_access
        assert decision.reason == "PAYMENT_OVERDUE"
        assert decision.overdue_amount == Decimal("350.00")
        assert decision.overdue_days == 20
        assert decision.to_dict() == {
            "has_access": False,
            "reason": "PAYMENT_OVERDUE",
            "overdue_amount": "350.00",
            "overdue_days": 20,
        }

    def test_tenant_grace_days_override(self, enrollment, product):
        tenant = enrollment.tenant
        tenant.payment_grace_days = 0
        tenant.save()
        row_due(enrollment, days_ago=1)

        decision = AccessGate.check_access(enrollment.user_id, product.course_id, tenant.id, now=NOW)

        assert decision.reason == "PAYMENT_OVERDUE"
        assert decision.overdue_days == 1

    def test_not_enrolled(self, tenant, user):
        course = CourseFactory(tenant=tenant)

        decision = AccessGate.check_access(user.pk, course.id, tenant.id, now=NOW)

        assert not decision.has_access
        assert decision.reason == "NOT_ENROLLED"

    def test_cancelled_enrollment_does_not_grant(self, tenant, user, product):
        EnrollmentFactory(tenant=tenant, user=user, product=product, status=EnrollmentStatus.CANCELLED)

        decision = AccessGate.check_access(user.pk, product.course_id, tenant.id, now=NOW)

        assert decision.reason == "NOT_ENROLLED"

    def test_completed_enrollment_still_grants(self, tenant, user, product):
        EnrollmentFactory(tenant=tenant, user=user, product=product, status=EnrollmentStatus.COMPLETED)

        decision = AccessGate.check_access(user.pk, product.course_id, tenant.id, now=NOW)

        assert decision.has_access

    def test_enrollment_in_other_tenant_ignored(self, enrollment, product):
        other = EnrollmentFactory(user=enrollment.user)

        decision = AccessGate.check_access(enrollment.user_id, product.course_id, other.tenant_id, now=NOW)

        assert decision.reason == "NOT_ENROLLED"

    def test_program_grants_its_courses(self, tenant, user):
        course = CourseFactory(tenant=tenant)
        program = ProgramFactory(tenant=tenant, courses=[course, CourseFactory(tenant=tenant)])
        product = ProductFactory(tenant=tenant, course=None, program=program)
        enrollment = EnrollmentFactory(tenant=tenant, user=user, product=product)
        row_due(enrollment, days_ago=9)

        decision = AccessGate.check_access(user.pk, course.id, tenant.id, now=NOW)

        assert decision.reason == "PAYMENT_OVERDUE"

    def test_overdue_on_any_granting_enrollment_blocks(self, tenant, user, product):
        program = ProgramFactory(tenant=tenant, courses=[product.course])
        bundle = ProductFactory(tenant=tenant, course=None, program=program)
        EnrollmentFactory(tenant=tenant, user=user, product=product)
        row_due(EnrollmentFactory(tenant=tenant, user=user, product=bundle), days_ago=30)

        decision = AccessGate.check_access(user.pk, product.course_id, tenant.id, now=NOW)

        assert decision.reason == "PAYMENT_OVERDUE"

    @freeze_time("2025-03-15 12:00:00")
    def test_defaults_to_current_time(self, enrollment, product):
        row_due(enrollment, days_ago=8)

        decision = AccessGate.check_access(enrollment.user_id, product.course_id, enrollment.tenant_id)

        assert decision.reason == "PAYMENT_OVERDUE"
        assert decision.overdue_days == 8
