"""
Tests for ScheduleManager staff operations.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from billing.exceptions import ProcessorUnavailableError
from billing.models import Enrollment, PaymentSchedule
from billing.services import InvoiceOrchestrator, ScheduleManager
from billing.state_machines import ScheduleStatus
from billing.tests.factories import PaymentScheduleFactory, TenantFactory, make_intent


def reload(schedule):
    return PaymentSchedule.objects.get(pk=schedule.pk)


# =============================================================================
# Adjustments
# =============================================================================


@pytest.mark.django_db
class TestAdjustSchedule:
    """Tests for adjust_schedule()."""

    def test_adjust_amount_moves_enrollment_total(self, pending_schedule, mock_adapter, staff_user):
        result = ScheduleManager.adjust_schedule(
            pending_schedule.id, reason="Scholarship", new_amount="150.00", adjusted_by=staff_user
        )

        assert result.success
        schedule = reload(pending_schedule)
        assert schedule.status == ScheduleStatus.ADJUSTED
        assert schedule.amount == Decimal("150.00")
        assert schedule.original_due_date == pending_schedule.original_due_date

        record = schedule.adjustment_history[-1]
        assert record["action"] == "adjust"
        assert record["by"] == str(staff_user.pk)
        assert record["previous_amount"] == "200.00"
        assert record["new_amount"] == "150.00"

        enrollment = Enrollment.objects.get(pk=pending_schedule.enrollment_id)
        assert enrollment.total_amount == Decimal("950.00")

    def test_adjust_date_keeps_original_due_date(self, pending_schedule, mock_adapter):
        new_date = timezone.now() + timedelta(days=14)

        result = ScheduleManager.adjust_schedule(pending_schedule.id, reason="Hardship", new_date=new_date)

        assert result.success
        schedule = reload(pending_schedule)
        assert schedule.scheduled_date == new_date
        assert schedule.original_due_date == pending_schedule.original_due_date
        assert Enrollment.objects.get(pk=pending_schedule.enrollment_id).total_amount == Decimal("1000.00")

    def test_open_invoice_voided_and_cleared(self, failed_schedule, mock_adapter):
        result = ScheduleManager.adjust_schedule(
            failed_schedule.id, reason="New terms", new_date=timezone.now() + timedelta(days=3)
        )

        assert result.success
        mock_adapter.void_invoice.assert_called_once_with("in_failed")
        assert reload(failed_schedule).stripe_invoice_id is None

    def test_void_failure_does_not_block_adjustment(self, failed_schedule, mock_adapter):
        mock_adapter.void_invoice.side_effect = ProcessorUnavailableError("Stripe down")

        result = ScheduleManager.adjust_schedule(failed_schedule.id, reason="New terms", new_amount="180.00")

        assert result.success
        assert reload(failed_schedule).status == ScheduleStatus.ADJUSTED

    def test_amount_change_cancels_checkout_intent(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(enrollment=enrollment, stripe_payment_intent_id="pi_old")

        result = ScheduleManager.adjust_schedule(schedule.id, reason="Scholarship", new_amount="150.00")

        assert result.success
        mock_adapter.cancel_payment_intent.assert_called_once_with("pi_old")
        assert reload(schedule).stripe_payment_intent_id is None

    def test_date_change_keeps_checkout_intent(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(enrollment=enrollment, stripe_payment_intent_id="pi_open")

        result = ScheduleManager.adjust_schedule(
            schedule.id, reason="Hardship", new_date=timezone.now() + timedelta(days=7)
        )

        assert result.success
        mock_adapter.cancel_payment_intent.assert_not_called()
        assert reload(schedule).stripe_payment_intent_id == "pi_open"

    def test_checkout_after_amount_change_charges_new_amount(self, pending_schedule, mock_adapter):
        mock_adapter.create_payment_intent.return_value = make_intent("pi_old", amount="200.00")
        InvoiceOrchestrator.create_or_reuse_intent(pending_schedule.id)

        ScheduleManager.adjust_schedule(pending_schedule.id, reason="Scholarship", new_amount="150.00")

        mock_adapter.create_payment_intent.return_value = make_intent("pi_new", amount="150.00")

        result = InvoiceOrchestrator.create_or_reuse_intent(pending_schedule.id)

        assert result.success
        assert result.data.intent_id == "pi_new"
        assert result.data.reused is False
        mock_adapter.retrieve_payment_intent.assert_not_called()
        assert mock_adapter.create_payment_intent.call_args.kwargs["amount"] == Decimal("150.00")
        assert reload(pending_schedule).stripe_payment_intent_id == "pi_new"

    def test_adjusted_row_can_be_adjusted_again(self, pending_schedule, mock_adapter):
        ScheduleManager.adjust_schedule(pending_schedule.id, reason="First", new_amount="150.00")

        result = ScheduleManager.adjust_schedule(pending_schedule.id, reason="Second", new_amount="100.00")

        assert result.success
        schedule = reload(pending_schedule)
        assert len(schedule.adjustment_history) == 2
        assert Enrollment.objects.get(pk=schedule.enrollment_id).total_amount == Decimal("900.00")

    def test_reason_required(self, pending_schedule, mock_adapter):
        result = ScheduleManager.adjust_schedule(pending_schedule.id, reason="", new_amount="150.00")

        assert result.error_code == "VALIDATION_ERROR"
        assert "reason" in result.errors

    def test_nothing_to_adjust(self, pending_schedule, mock_adapter):
        result = ScheduleManager.adjust_schedule(pending_schedule.id, reason="Nothing")

        assert result.error_code == "NOTHING_TO_ADJUST"

    @pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
    def test_invalid_amount(self, pending_schedule, mock_adapter, amount):
        result = ScheduleManager.adjust_schedule(pending_schedule.id, reason="Typo", new_amount=amount)

        assert result.error_code == "INVALID_AMOUNT"
        assert reload(pending_schedule).status == ScheduleStatus.PENDING

    def test_unknown_schedule(self, db, mock_adapter):
        result = ScheduleManager.adjust_schedule(
            "00000000-0000-0000-0000-000000000000", reason="Typo", new_amount="10.00"
        )

        assert result.error_code == "SCHEDULE_NOT_FOUND"

    @pytest.mark.parametrize("fixture_name", ["paid_schedule", "processing_schedule"])
    def test_settled_or_in_flight_rows_rejected(self, request, mock_adapter, fixture_name):
        schedule = request.getfixturevalue(fixture_name)

        result = ScheduleManager.adjust_schedule(schedule.id, reason="Late change", new_amount="10.00")

        assert result.error_code == "INVALID_STATE_TRANSITION"
        mock_adapter.void_invoice.assert_not_called()


# =============================================================================
# Pause / Resume
# =============================================================================


@pytest.mark.django_db
class TestPauseResume:
    """Tests for enrollment-wide pause and resume."""

    def test_pause_open_rows_only(self, enrollment, pending_schedule, future_schedule, staff_user, mock_adapter):
        processing = PaymentScheduleFactory(enrollment=enrollment, payment_number=3, status=ScheduleStatus.PROCESSING)
        paid = PaymentScheduleFactory(enrollment=enrollment, payment_number=4, status=ScheduleStatus.PAID)

        result = ScheduleManager.pause_enrollment_payments(enrollment.id, reason="Medical leave", paused_by=staff_user)

        assert result.success
        assert result.data == 2
        for row in (pending_schedule, future_schedule):
            row = reload(row)
            assert row.status == ScheduleStatus.PAUSED
            assert row.paused_by_id == staff_user.pk
            assert row.paused_reason == "Medical leave"
        assert reload(paid).status == ScheduleStatus.PAID
        assert reload(processing).status == ScheduleStatus.PROCESSING
        mock_adapter.void_invoice.assert_not_called()

    def test_pause_requires_reason(self, enrollment):
        result = ScheduleManager.pause_enrollment_payments(enrollment.id, reason=" ")

        assert result.error_code == "VALIDATION_ERROR"

    def test_paused_rows_leave_next_payment_date(self, enrollment, future_schedule):
        ScheduleManager.pause_enrollment_payments(enrollment.id, reason="Leave")

        assert Enrollment.objects.get(pk=enrollment.id).next_payment_date is None

    def test_resume_without_shift(self, enrollment, future_schedule, staff_user):
        ScheduleManager.pause_enrollment_payments(enrollment.id, reason="Leave")

        result = ScheduleManager.resume_enrollment_payments(enrollment.id, resumed_by=staff_user)

        assert result.data == 1
        schedule = reload(future_schedule)
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.scheduled_date == future_schedule.scheduled_date
        assert schedule.resumed_at is not None
        assert [r["action"] for r in schedule.adjustment_history] == ["pause", "resume"]

    def test_resume_shifts_dates_by_pause_length(self, enrollment, future_schedule):
        ScheduleManager.pause_enrollment_payments(enrollment.id, reason="Leave")
        PaymentSchedule.objects.filter(pk=future_schedule.pk).update(
            paused_at=timezone.now() - timedelta(days=10)
        )

        ScheduleManager.resume_enrollment_payments(enrollment.id, shift_dates=True)

        shift = reload(future_schedule).scheduled_date - future_schedule.scheduled_date
        assert timedelta(days=10) <= shift < timedelta(days=10, minutes=1)

    def test_resume_with_nothing_paused(self, enrollment, pending_schedule):
        result = ScheduleManager.resume_enrollment_payments(enrollment.id)

        assert result.success
        assert result.data == 0


# =============================================================================
# Retry
# =============================================================================


@pytest.mark.django_db
class TestRetrySchedule:
    def test_requeues_failed_row(self, failed_schedule, mock_adapter):
        result = ScheduleManager.retry_schedule(failed_schedule.id)

        assert result.success
        mock_adapter.void_invoice.assert_called_once_with("in_failed")
        schedule = reload(failed_schedule)
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.stripe_invoice_id is None
        assert schedule.next_retry_date is None

    def test_restores_adjusted_row(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(
            enrollment=enrollment,
            status=ScheduleStatus.ADJUSTED,
            next_retry_date=timezone.now() + timedelta(days=3),
        )

        result = ScheduleManager.retry_schedule(schedule.id)

        assert result.success
        mock_adapter.void_invoice.assert_not_called()
        schedule = reload(schedule)
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.next_retry_date is None

    @pytest.mark.parametrize("fixture_name", ["pending_schedule", "paid_schedule", "processing_schedule"])
    def test_other_statuses_rejected(self, request, mock_adapter, fixture_name):
        schedule = request.getfixturevalue(fixture_name)

        result = ScheduleManager.retry_schedule(schedule.id)

        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_unknown_schedule(self, db, mock_adapter):
        result = ScheduleManager.retry_schedule("00000000-0000-0000-0000-000000000000")

        assert result.error_code == "SCHEDULE_NOT_FOUND"


# =============================================================================
# Queries
# =============================================================================


@pytest.mark.django_db
class TestQueries:
    """Tests for upcoming and overdue listings."""

    def test_upcoming_payments(self, enrollment, future_schedule, paid_schedule):
        now = timezone.now()
        later = now + timedelta(days=20)
        PaymentScheduleFactory(enrollment=enrollment, payment_number=3, scheduled_date=later, original_due_date=later)

        upcoming = list(ScheduleManager.get_upcoming_payments(days_ahead=7, now=now))

        assert upcoming == [future_schedule]

    def test_upcoming_payments_scoped(self, enrollment, future_schedule):
        other = PaymentScheduleFactory(scheduled_date=timezone.now() + timedelta(days=1))

        assert list(ScheduleManager.get_upcoming_payments(enrollment_id=enrollment.id)) == [future_schedule]
        assert list(ScheduleManager.get_upcoming_payments(tenant_id=other.tenant_id)) == [other]

    def test_overdue_payments_use_each_tenants_grace(self, settings, enrollment):
        settings.BILLING_DEFAULT_GRACE_DAYS = 7
        now = timezone.now()
        nine_days_ago = now - timedelta(days=9)
        overdue = PaymentScheduleFactory(
            enrollment=enrollment, scheduled_date=nine_days_ago, original_due_date=nine_days_ago
        )
        strict_tenant = TenantFactory(payment_grace_days=0)
        yesterday = now - timedelta(days=1)
        strict = PaymentScheduleFactory(
            enrollment__tenant=strict_tenant, scheduled_date=yesterday, original_due_date=yesterday
        )
        within_grace = now - timedelta(days=3)
        PaymentScheduleFactory(enrollment=enrollment, scheduled_date=within_grace, original_due_date=within_grace)

        assert ScheduleManager.get_overdue_payments(now=now) == [overdue, strict]
        assert ScheduleManager.get_overdue_payments(tenant_id=strict_tenant.id, now=now) == [strict]
