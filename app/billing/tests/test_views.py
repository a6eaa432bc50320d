"""
Tests for the billing API views.

Tests cover:
- Checkout intent creation and ownership checks
- Staff refunds
- Course access decisions
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from billing.exceptions import ProcessorUnavailableError
from billing.models import PaymentSchedule
from billing.state_machines import ScheduleStatus
from billing.tests.factories import CourseFactory, PaymentScheduleFactory, make_refund


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for(api_client):
    def _client(user):
        api_client.force_authenticate(user=user)
        return api_client

    return _client


def intent_url(schedule):
    return reverse("billing:schedule-intent", kwargs={"schedule_id": schedule.id})


def refund_url(schedule):
    return reverse("billing:schedule-refund", kwargs={"schedule_id": schedule.id})


# =============================================================================
# Checkout Intent
# =============================================================================


@pytest.mark.django_db
class TestScheduleIntentView:
    """Tests for POST /schedules/{id}/intent/."""

    def test_owner_gets_client_secret(self, client_for, user, pending_schedule, mock_adapter):
        response = client_for(user).post(intent_url(pending_schedule))

        assert response.status_code == 200
        assert response.data == {
            "client_secret": "pi_test_123_secret_abc",
            "intent_id": "pi_test_123",
            "publishable_key": "pk_test_123",
            "reused": False,
        }

    def test_other_learner_gets_404(self, client_for, pending_schedule, mock_adapter):
        response = client_for(UserFactory()).post(intent_url(pending_schedule))

        assert response.status_code == 404
        assert response.data["error_code"] == "SCHEDULE_NOT_FOUND"
        mock_adapter.create_payment_intent.assert_not_called()

    def test_staff_may_create_for_any_row(self, client_for, staff_user, pending_schedule, mock_adapter):
        response = client_for(staff_user).post(intent_url(pending_schedule))

        assert response.status_code == 200

    def test_paid_row_conflicts(self, client_for, user, paid_schedule, mock_adapter):
        response = client_for(user).post(intent_url(paid_schedule))

        assert response.status_code == 409
        assert response.data["error_code"] == "SCHEDULE_ALREADY_PAID"

    def test_processor_outage_is_503(self, client_for, user, pending_schedule, mock_adapter):
        mock_adapter.create_payment_intent.side_effect = ProcessorUnavailableError("Stripe down")

        response = client_for(user).post(intent_url(pending_schedule))

        assert response.status_code == 503
        assert response.data["error_code"] == "PROCESSOR_UNAVAILABLE"

    def test_requires_authentication(self, api_client, pending_schedule):
        response = api_client.post(intent_url(pending_schedule))

        assert response.status_code == 401


# =============================================================================
# Refunds
# =============================================================================


@pytest.mark.django_db
class TestScheduleRefundView:
    """Tests for POST /schedules/{id}/refund/."""

    def test_staff_refund(self, client_for, staff_user, paid_schedule, mock_adapter):
        mock_adapter.create_refund.return_value = make_refund("re_view", "50.00", payment_intent_id="pi_paid")

        response = client_for(staff_user).post(
            refund_url(paid_schedule), {"amount": "50.00", "reason": "Course withdrawn"}, format="json"
        )

        assert response.status_code == 200
        assert response.data["refund_id"] == "re_view"
        assert response.data["schedule_status"] == ScheduleStatus.PAID
        assert response.data["refunded_amount"] == "50.00"
        schedule = PaymentSchedule.objects.get(pk=paid_schedule.pk)
        assert schedule.refunded_amount == Decimal("50.00")

    def test_learner_forbidden(self, client_for, user, paid_schedule, mock_adapter):
        response = client_for(user).post(refund_url(paid_schedule), {"reason": "Please"}, format="json")

        assert response.status_code == 403
        mock_adapter.create_refund.assert_not_called()

    def test_reason_required(self, client_for, staff_user, paid_schedule, mock_adapter):
        response = client_for(staff_user).post(refund_url(paid_schedule), {"amount": "10.00"}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert "reason" in response.data["errors"]

    def test_amount_must_be_positive(self, client_for, staff_user, paid_schedule, mock_adapter):
        response = client_for(staff_user).post(
            refund_url(paid_schedule), {"amount": "0.00", "reason": "Test"}, format="json"
        )

        assert response.status_code == 400
        assert "amount" in response.data["errors"]

    def test_amount_above_refundable_rejected(self, client_for, staff_user, paid_schedule, mock_adapter):
        response = client_for(staff_user).post(
            refund_url(paid_schedule), {"amount": "500.00", "reason": "Test"}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_REFUND_AMOUNT"

    def test_unpaid_row_conflicts(self, client_for, staff_user, pending_schedule, mock_adapter):
        response = client_for(staff_user).post(refund_url(pending_schedule), {"reason": "Test"}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "SCHEDULE_NOT_REFUNDABLE"


# =============================================================================
# Course Access
# =============================================================================


@pytest.mark.django_db
class TestCourseAccessView:
    """Tests for GET /courses/{id}/access/."""

    def test_enrolled_learner_in_good_standing(self, client_for, user, product, pending_schedule):
        url = reverse("billing:course-access", kwargs={"course_id": product.course.id})

        response = client_for(user).get(url)

        assert response.status_code == 200
        assert response.data == {
            "has_access": True,
            "reason": "OK",
            "overdue_amount": "0.00",
            "overdue_days": 0,
        }

    def test_overdue_learner_denied_with_200(self, client_for, user, enrollment, product):
        due = timezone.now() - timedelta(days=40)
        PaymentScheduleFactory(enrollment=enrollment, payment_number=3, scheduled_date=due, original_due_date=due)
        url = reverse("billing:course-access", kwargs={"course_id": product.course.id})

        response = client_for(user).get(url)

        assert response.status_code == 200
        assert response.data["has_access"] is False
        assert response.data["reason"] == "PAYMENT_OVERDUE"
        assert response.data["overdue_amount"] == "200.00"
        assert response.data["overdue_days"] >= 40

    def test_not_enrolled(self, client_for, tenant):
        course = CourseFactory(tenant=tenant)
        url = reverse("billing:course-access", kwargs={"course_id": course.id})

        response = client_for(UserFactory()).get(url)

        assert response.status_code == 200
        assert response.data["reason"] == "NOT_ENROLLED"

    def test_unknown_course_404(self, client_for, user):
        url = reverse("billing:course-access", kwargs={"course_id": "00000000-0000-0000-0000-000000000000"})

        response = client_for(user).get(url)

        assert response.status_code == 404
        assert response.data["error_code"] == "COURSE_NOT_FOUND"
