"""
Tests for SettlementReconciler.

Settlement, failure backoff, enrollment aggregates and refunds.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.test import override_settings
from django.utils import timezone

from billing.exceptions import DeclinedError
from billing.models import Enrollment, Payment, PaymentSchedule
from billing.services import SettlementReconciler
from billing.services.settlement_reconciler import next_retry_date_for
from billing.state_machines import EnrollmentPaymentStatus, LedgerPaymentStatus, ScheduleStatus
from billing.tests.factories import PaymentFactory, PaymentScheduleFactory, make_invoice, make_refund


def reload(schedule):
    return PaymentSchedule.objects.get(pk=schedule.pk)


def reload_enrollment(enrollment):
    return Enrollment.objects.get(pk=enrollment.pk)


# =============================================================================
# Settlement
# =============================================================================


@pytest.mark.django_db
class TestMarkPaid:
    """Tests for mark_paid()."""

    def test_settles_row_and_updates_enrollment(self, processing_schedule, future_schedule):
        paid_at = timezone.now() - timedelta(minutes=3)

        result = SettlementReconciler.mark_paid(
            processing_schedule, payment_intent_id="pi_settled", invoice_id="in_settled", paid_at=paid_at
        )

        assert result.success
        schedule = reload(processing_schedule)
        assert schedule.status == ScheduleStatus.PAID
        assert schedule.paid_date == paid_at
        assert schedule.stripe_payment_intent_id == "pi_settled"
        assert schedule.stripe_invoice_id == "in_settled"

        enrollment = reload_enrollment(processing_schedule.enrollment)
        assert enrollment.paid_amount == Decimal("200.00")
        assert enrollment.payment_status == EnrollmentPaymentStatus.PARTIAL
        assert enrollment.next_payment_date == future_schedule.scheduled_date

        payment = Payment.objects.get(stripe_payment_intent_id="pi_settled")
        assert payment.payment_schedule_id == schedule.id
        assert payment.amount == Decimal("200.00")
        assert payment.status == LedgerPaymentStatus.SUCCEEDED

    def test_duplicate_settlement_is_noop(self, processing_schedule):
        SettlementReconciler.mark_paid(processing_schedule, payment_intent_id="pi_settled")
        first = reload(processing_schedule)

        result = SettlementReconciler.mark_paid(processing_schedule, payment_intent_id="pi_settled")

        assert result.success
        second = reload(processing_schedule)
        assert second.paid_date == first.paid_date
        assert second.version == first.version
        assert Payment.objects.filter(payment_schedule=processing_schedule).count() == 1
        assert reload_enrollment(processing_schedule.enrollment).paid_amount == Decimal("200.00")

    def test_settling_every_row_marks_enrollment_paid(self, enrollment):
        rows = [
            PaymentScheduleFactory(enrollment=enrollment, amount=Decimal("500.00"), payment_number=n)
            for n in (1, 2)
        ]

        for row in rows:
            SettlementReconciler.mark_paid(row, payment_intent_id=f"pi_{row.payment_number}")

        enrollment = reload_enrollment(enrollment)
        assert enrollment.paid_amount == Decimal("1000.00")
        assert enrollment.payment_status == EnrollmentPaymentStatus.PAID
        assert enrollment.next_payment_date is None

    def test_paused_row_accepts_late_settlement(self, enrollment):
        schedule = PaymentScheduleFactory(enrollment=enrollment, status=ScheduleStatus.PAUSED)

        result = SettlementReconciler.mark_paid(schedule, payment_intent_id="pi_late")

        assert result.success
        assert reload(schedule).status == ScheduleStatus.PAID

    def test_settlement_without_intent_records_invoice_ledger(self, processing_schedule):
        processing_schedule_id = processing_schedule.id
        PaymentSchedule.objects.filter(pk=processing_schedule_id).update(stripe_payment_intent_id=None)

        SettlementReconciler.mark_paid(processing_schedule, invoice_id="in_only")

        payment = Payment.objects.get(payment_schedule_id=processing_schedule_id)
        assert payment.stripe_invoice_id == "in_only"
        assert payment.stripe_payment_intent_id is None


# =============================================================================
# Failures & Backoff
# =============================================================================


class TestNextRetryDate:
    @override_settings(BILLING_MAX_PAYMENT_RETRIES=3)
    @pytest.mark.parametrize("retry_count,days", [(1, 1), (2, 3), (3, 7)])
    def test_backoff(self, retry_count, days):
        now = timezone.now()

        assert next_retry_date_for(retry_count, now) == now + timedelta(days=days)

    @override_settings(BILLING_MAX_PAYMENT_RETRIES=3)
    def test_exhausted(self):
        assert next_retry_date_for(4, timezone.now()) is None


@pytest.mark.django_db
class TestMarkFailed:
    """Tests for mark_failed()."""

    def test_first_failure(self, processing_schedule):
        now = timezone.now()

        result = SettlementReconciler.mark_failed(processing_schedule, "Card declined", now=now)

        assert result.success
        schedule = reload(processing_schedule)
        assert schedule.status == ScheduleStatus.FAILED
        assert schedule.retry_count == 1
        assert schedule.next_retry_date == now + timedelta(days=1)

    def test_repeated_failures_back_off(self, failed_schedule):
        now = timezone.now()

        SettlementReconciler.mark_failed(failed_schedule, "Insufficient funds", now=now)
        schedule = reload(failed_schedule)
        assert schedule.retry_count == 2
        assert schedule.next_retry_date == now + timedelta(days=3)

        SettlementReconciler.mark_failed(failed_schedule, "Expired card", now=now)
        schedule = reload(failed_schedule)
        assert schedule.retry_count == 3
        assert schedule.next_retry_date == now + timedelta(days=7)

        SettlementReconciler.mark_failed(failed_schedule, "Do not honor", now=now)
        schedule = reload(failed_schedule)
        assert schedule.retry_count == 4
        assert schedule.next_retry_date is None
        assert schedule.retries_exhausted

    def test_exhausted_retries_flagged_for_follow_up(self, enrollment):
        schedule = PaymentScheduleFactory(
            enrollment=enrollment, status=ScheduleStatus.PROCESSING, retry_count=3, stripe_invoice_id="in_last"
        )

        with patch("billing.services.settlement_reconciler.logger") as log:
            SettlementReconciler.mark_failed(schedule, "Do not honor")

        assert reload(schedule).retries_exhausted
        log.error.assert_called_once()
        assert log.error.call_args.args[0] == "Payment retries exhausted, manual follow-up required"

    def test_retries_remaining_not_flagged(self, processing_schedule):
        with patch("billing.services.settlement_reconciler.logger") as log:
            SettlementReconciler.mark_failed(processing_schedule, "Card declined")

        log.error.assert_not_called()

    def test_same_failure_recorded_once(self, failed_schedule):
        SettlementReconciler.mark_failed(failed_schedule, failed_schedule.last_error)

        assert reload(failed_schedule).retry_count == 1

    @pytest.mark.parametrize("status", [ScheduleStatus.PAID, ScheduleStatus.REFUNDED, ScheduleStatus.PAUSED])
    def test_rows_not_awaiting_payment_ignored(self, enrollment, status):
        schedule = PaymentScheduleFactory(enrollment=enrollment, status=status)

        result = SettlementReconciler.mark_failed(schedule, "Late failure")

        assert result.success
        schedule = reload(schedule)
        assert schedule.status == status
        assert schedule.retry_count == 0


# =============================================================================
# Enrollment Aggregate
# =============================================================================


@pytest.mark.django_db
class TestRecomputePaidAmount:
    def test_corrects_drift(self, paid_schedule):
        Enrollment.objects.filter(pk=paid_schedule.enrollment_id).update(
            paid_amount=Decimal("999.00"), payment_status=EnrollmentPaymentStatus.PAID
        )

        enrollment = SettlementReconciler.recompute_paid_amount(paid_schedule.enrollment_id)

        assert enrollment.paid_amount == Decimal("200.00")
        assert enrollment.payment_status == EnrollmentPaymentStatus.PARTIAL
        assert enrollment.paid_amount == enrollment.compute_paid_amount()


# =============================================================================
# Refunds
# =============================================================================


@pytest.fixture
def ledger_payment(paid_schedule):
    return PaymentFactory(payment_schedule=paid_schedule, stripe_payment_intent_id="pi_paid")


@pytest.mark.django_db
class TestRefundSchedule:
    """Tests for refund_schedule()."""

    def test_partial_refund(self, paid_schedule, ledger_payment, mock_adapter, staff_user):
        mock_adapter.create_refund.return_value = make_refund("re_partial", "50.00")

        result = SettlementReconciler.refund_schedule(
            paid_schedule.id, reason="Withdrew after week one", amount=Decimal("50.00"), initiated_by=staff_user
        )

        assert result.success
        assert result.data.refund_id == "re_partial"
        assert result.data.amount == Decimal("50.00")

        kwargs = mock_adapter.create_refund.call_args.kwargs
        assert kwargs["payment_intent_id"] == "pi_paid"
        assert kwargs["amount"] == Decimal("50.00")
        assert kwargs["metadata"]["refunded_by"] == str(staff_user.pk)

        schedule = reload(paid_schedule)
        assert schedule.status == ScheduleStatus.PAID
        assert schedule.refunded_amount == Decimal("50.00")
        assert schedule.refund_reason == "Withdrew after week one"

        ledger_payment.refresh_from_db()
        assert ledger_payment.status == LedgerPaymentStatus.PARTIALLY_REFUNDED
        assert ledger_payment.refunded_amount == Decimal("50.00")
        assert ledger_payment.metadata["refund_id"] == "re_partial"

        # Partially refunded rows still count at face value
        assert reload_enrollment(paid_schedule.enrollment).paid_amount == Decimal("200.00")

    def test_refunding_the_remainder_refunds_row(self, paid_schedule, ledger_payment, mock_adapter):
        PaymentSchedule.objects.filter(pk=paid_schedule.pk).update(refunded_amount=Decimal("50.00"))
        mock_adapter.create_refund.return_value = make_refund("re_rest", "150.00")

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Course cancelled")

        assert result.success
        assert result.data.amount == Decimal("150.00")
        assert result.data.to_dict()["schedule_status"] == ScheduleStatus.REFUNDED

        schedule = reload(paid_schedule)
        assert schedule.status == ScheduleStatus.REFUNDED
        assert schedule.refunded_amount == Decimal("200.00")

        enrollment = reload_enrollment(paid_schedule.enrollment)
        assert enrollment.paid_amount == Decimal("0.00")
        assert enrollment.payment_status == EnrollmentPaymentStatus.PENDING

        ledger_payment.refresh_from_db()
        assert ledger_payment.status == LedgerPaymentStatus.REFUNDED

    def test_idempotency_key_tracks_refunded_total(self, paid_schedule, mock_adapter):
        SettlementReconciler.refund_schedule(paid_schedule.id, reason="Goodwill", amount="20.00")
        SettlementReconciler.refund_schedule(paid_schedule.id, reason="Goodwill", amount="20.00")

        keys = [call.kwargs["idempotency_key"] for call in mock_adapter.create_refund.call_args_list]
        assert len(set(keys)) == 2
        assert reload(paid_schedule).refunded_amount == Decimal("40.00")

    def test_refund_recorded_by_webhook_first_counted_once(self, paid_schedule, ledger_payment, mock_adapter):
        def refund_and_notify(**kwargs):
            SettlementReconciler.apply_external_refund(paid_schedule, Decimal("50.00"), refund_id="re_hook")
            return make_refund("re_hook", "50.00", payment_intent_id="pi_paid")

        mock_adapter.create_refund.side_effect = refund_and_notify

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Goodwill", amount="50.00")

        assert result.success
        schedule = reload(paid_schedule)
        assert schedule.refunded_amount == Decimal("50.00")
        assert schedule.status == ScheduleStatus.PAID

    def test_duplicate_submission_counted_once(self, paid_schedule, mock_adapter):
        def concurrent_duplicate(**kwargs):
            # The other submission commits after this one read the row
            PaymentSchedule.objects.filter(pk=paid_schedule.pk).update(refunded_amount=Decimal("20.00"))
            return make_refund("re_dup", "20.00", payment_intent_id="pi_paid")

        mock_adapter.create_refund.side_effect = concurrent_duplicate

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Goodwill", amount="20.00")

        assert result.success
        assert reload(paid_schedule).refunded_amount == Decimal("20.00")

    def test_full_refund_after_webhook_recorded_it(self, paid_schedule, ledger_payment, mock_adapter):
        def refund_and_notify(**kwargs):
            SettlementReconciler.apply_external_refund(paid_schedule, Decimal("200.00"), refund_id="re_full")
            return make_refund("re_full", "200.00", payment_intent_id="pi_paid")

        mock_adapter.create_refund.side_effect = refund_and_notify

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Course cancelled")

        assert result.success
        schedule = reload(paid_schedule)
        assert schedule.status == ScheduleStatus.REFUNDED
        assert schedule.refunded_amount == Decimal("200.00")

    def test_reason_required(self, paid_schedule, mock_adapter):
        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="   ")

        assert result.error_code == "REFUND_REASON_REQUIRED"
        mock_adapter.create_refund.assert_not_called()

    @pytest.mark.parametrize("status", [ScheduleStatus.PENDING, ScheduleStatus.FAILED, ScheduleStatus.REFUNDED])
    def test_only_paid_rows_refundable(self, enrollment, mock_adapter, status):
        schedule = PaymentScheduleFactory(enrollment=enrollment, status=status)

        result = SettlementReconciler.refund_schedule(schedule.id, reason="Withdrew")

        assert result.error_code == "SCHEDULE_NOT_REFUNDABLE"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1.00"), Decimal("200.01"), "abc"])
    def test_amount_bounds(self, paid_schedule, mock_adapter, amount):
        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Withdrew", amount=amount)

        assert result.error_code == "INVALID_REFUND_AMOUNT"
        mock_adapter.create_refund.assert_not_called()

    def test_amount_bounded_by_previous_refunds(self, paid_schedule, mock_adapter):
        PaymentSchedule.objects.filter(pk=paid_schedule.pk).update(refunded_amount=Decimal("150.00"))

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Withdrew", amount="60.00")

        assert result.error_code == "INVALID_REFUND_AMOUNT"
        assert result.details["refundable_amount"] == "50.00"

    def test_unknown_schedule(self, db, mock_adapter):
        result = SettlementReconciler.refund_schedule(
            "00000000-0000-0000-0000-000000000000", reason="Withdrew"
        )

        assert result.error_code == "SCHEDULE_NOT_FOUND"

    def test_processor_failure_leaves_row_unchanged(self, paid_schedule, mock_adapter):
        mock_adapter.create_refund.side_effect = DeclinedError("Charge already disputed")

        result = SettlementReconciler.refund_schedule(paid_schedule.id, reason="Withdrew")

        assert not result.success
        assert result.error_code == "PAYMENT_DECLINED"
        assert reload(paid_schedule).refunded_amount == Decimal("0.00")


@pytest.mark.django_db
class TestChargeReferenceResolution:
    """Tests for the refund reference chain."""

    def test_ledger_intent_used_when_row_has_none(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(enrollment=enrollment, status=ScheduleStatus.PAID)
        PaymentFactory(payment_schedule=schedule, stripe_payment_intent_id="pi_ledger")

        SettlementReconciler.refund_schedule(schedule.id, reason="Withdrew")

        assert mock_adapter.create_refund.call_args.kwargs["payment_intent_id"] == "pi_ledger"

    def test_invoice_intent_used_as_last_resort(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(
            enrollment=enrollment, status=ScheduleStatus.PAID, stripe_invoice_id="in_paid"
        )
        mock_adapter.retrieve_invoice.return_value = make_invoice("in_paid", status="paid", payment_intent_id="pi_inv")

        SettlementReconciler.refund_schedule(schedule.id, reason="Withdrew")

        mock_adapter.retrieve_invoice.assert_called_once_with("in_paid")
        assert mock_adapter.create_refund.call_args.kwargs["payment_intent_id"] == "pi_inv"

    def test_no_reference_found(self, enrollment, mock_adapter):
        schedule = PaymentScheduleFactory(enrollment=enrollment, status=ScheduleStatus.PAID)

        result = SettlementReconciler.refund_schedule(schedule.id, reason="Withdrew")

        assert result.error_code == "PROCESSOR_REFERENCE_NOT_FOUND"
        mock_adapter.create_refund.assert_not_called()


# =============================================================================
# External Refunds
# =============================================================================


@pytest.mark.django_db
class TestApplyExternalRefund:
    """Tests for refunds issued outside the engine."""

    def test_raises_refunded_amount_to_upstream_total(self, paid_schedule, ledger_payment):
        result = SettlementReconciler.apply_external_refund(
            paid_schedule, Decimal("80.00"), reason="requested_by_customer", refund_id="re_dash"
        )

        assert result.success
        schedule = reload(paid_schedule)
        assert schedule.refunded_amount == Decimal("80.00")
        assert schedule.status == ScheduleStatus.PAID
        ledger_payment.refresh_from_db()
        assert ledger_payment.refunded_amount == Decimal("80.00")

    def test_full_upstream_refund(self, paid_schedule):
        SettlementReconciler.apply_external_refund(paid_schedule, Decimal("250.00"))

        schedule = reload(paid_schedule)
        assert schedule.status == ScheduleStatus.REFUNDED
        assert schedule.refunded_amount == Decimal("200.00")
        assert reload_enrollment(paid_schedule.enrollment).paid_amount == Decimal("0.00")

    def test_replay_is_noop(self, paid_schedule):
        SettlementReconciler.apply_external_refund(paid_schedule, Decimal("80.00"))
        version = reload(paid_schedule).version

        SettlementReconciler.apply_external_refund(paid_schedule, Decimal("80.00"))
        SettlementReconciler.apply_external_refund(paid_schedule, Decimal("30.00"))

        schedule = reload(paid_schedule)
        assert schedule.refunded_amount == Decimal("80.00")
        assert schedule.version == version

    def test_unpaid_row_rejected(self, pending_schedule):
        result = SettlementReconciler.apply_external_refund(pending_schedule, Decimal("50.00"))

        assert result.error_code == "SCHEDULE_NOT_REFUNDABLE"
