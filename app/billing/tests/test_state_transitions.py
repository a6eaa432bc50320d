"""
Tests for PaymentSchedule state transitions.

These tests verify that django-fsm allows exactly the transitions of the
schedule lifecycle and rejects everything else.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from billing.exceptions import InvalidStateTransitionError
from billing.models import PaymentSchedule
from billing.state_machines import ScheduleStatus
from billing.tests.factories import PaymentScheduleFactory


def make_schedule(status=ScheduleStatus.PENDING, **kwargs):
    return PaymentScheduleFactory(status=status, **kwargs)


# =============================================================================
# Valid Transitions
# =============================================================================


@pytest.mark.django_db
class TestValidTransitions:
    """Tests for the allowed lifecycle paths."""

    def test_pending_to_processing_to_paid(self):
        schedule = make_schedule()

        schedule.start_processing()
        schedule.save()
        assert schedule.status == ScheduleStatus.PROCESSING

        paid_at = timezone.now()
        schedule.mark_paid(paid_at=paid_at)
        schedule.save()

        schedule = PaymentSchedule.objects.get(pk=schedule.pk)
        assert schedule.status == ScheduleStatus.PAID
        assert schedule.paid_date == paid_at

    def test_mark_failed_records_attempt(self):
        schedule = make_schedule(status=ScheduleStatus.PROCESSING)
        retry_at = timezone.now() + timedelta(days=1)

        schedule.mark_failed("Card declined", next_retry_date=retry_at)
        schedule.save()

        assert schedule.status == ScheduleStatus.FAILED
        assert schedule.retry_count == 1
        assert schedule.last_error == "Card declined"
        assert schedule.next_retry_date == retry_at

    def test_mark_paid_clears_failure_state(self):
        schedule = make_schedule(
            status=ScheduleStatus.FAILED,
            last_error="Card declined",
            next_retry_date=timezone.now(),
        )

        schedule.mark_paid()

        assert schedule.status == ScheduleStatus.PAID
        assert schedule.last_error is None
        assert schedule.next_retry_date is None
        assert schedule.paid_date is not None

    def test_failed_row_retried_by_sweep(self):
        schedule = make_schedule(status=ScheduleStatus.FAILED)

        schedule.start_processing()

        assert schedule.status == ScheduleStatus.PROCESSING

    def test_requeue_clears_invoice(self):
        schedule = make_schedule(status=ScheduleStatus.FAILED, stripe_invoice_id="in_old")

        schedule.requeue()

        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.stripe_invoice_id is None

    def test_adjust_and_restore(self):
        schedule = make_schedule(next_retry_date=timezone.now() + timedelta(days=1))

        schedule.adjust({"action": "adjust", "reason": "Hardship"})
        assert schedule.status == ScheduleStatus.ADJUSTED
        assert schedule.adjustment_history == [{"action": "adjust", "reason": "Hardship"}]

        schedule.restore()
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.next_retry_date is None

    def test_pause_and_resume(self):
        schedule = make_schedule(status=ScheduleStatus.FAILED)

        schedule.pause({"action": "pause", "reason": "Medical leave"})
        assert schedule.status == ScheduleStatus.PAUSED
        assert schedule.paused_reason == "Medical leave"
        assert schedule.paused_at is not None

        schedule.resume({"action": "resume"})
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.resumed_at is not None
        assert [record["action"] for record in schedule.adjustment_history] == ["pause", "resume"]

    def test_paused_row_accepts_late_settlement(self):
        schedule = make_schedule(status=ScheduleStatus.PAUSED)

        schedule.mark_paid()

        assert schedule.status == ScheduleStatus.PAID

    def test_refund_full(self):
        schedule = make_schedule(status=ScheduleStatus.PAID)

        schedule.refund_full()

        assert schedule.status == ScheduleStatus.REFUNDED


# =============================================================================
# Invalid Transitions
# =============================================================================


@pytest.mark.django_db
class TestInvalidTransitions:
    """Tests for transitions django-fsm must reject."""

    @pytest.mark.parametrize(
        "status,transition",
        [
            (ScheduleStatus.PAID, "start_processing"),
            (ScheduleStatus.PAID, "mark_failed"),
            (ScheduleStatus.REFUNDED, "mark_paid"),
            (ScheduleStatus.PENDING, "refund_full"),
            (ScheduleStatus.PROCESSING, "pause"),
            (ScheduleStatus.PENDING, "requeue"),
            (ScheduleStatus.PAUSED, "start_processing"),
        ],
    )
    def test_rejected(self, status, transition):
        schedule = make_schedule(status=status)
        args = {
            "mark_failed": ("error",),
            "pause": ({"action": "pause"},),
        }.get(transition, ())

        with pytest.raises(TransitionNotAllowed):
            getattr(schedule, transition)(*args)

        assert schedule.status == status

    def test_apply_transition_wraps_error(self):
        schedule = make_schedule(status=ScheduleStatus.REFUNDED)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            schedule.apply_transition("start_processing")

        assert exc_info.value.error_code == "INVALID_STATE_TRANSITION"
        assert exc_info.value.details["status"] == ScheduleStatus.REFUNDED

    def test_status_cannot_be_assigned_directly(self):
        schedule = make_schedule()

        with pytest.raises(AttributeError):
            schedule.status = ScheduleStatus.PAID
