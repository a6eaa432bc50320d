"""
URL configuration for the billing app.

Billing - Checkout:
    POST /schedules/{schedule_id}/intent/      - Create or reuse payment intent

Billing - Refunds:
    POST /schedules/{schedule_id}/refund/      - Staff refund

Billing - Access:
    GET /courses/{course_id}/access/           - Course access decision

Webhooks:
    POST /webhooks/stripe/{tenant_id}/         - Per-tenant Stripe webhook endpoint

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import CourseAccessView, ScheduleIntentView, ScheduleRefundView
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path(
        "schedules/<uuid:schedule_id>/intent/",
        ScheduleIntentView.as_view(),
        name="schedule-intent",
    ),
    path(
        "schedules/<uuid:schedule_id>/refund/",
        ScheduleRefundView.as_view(),
        name="schedule-refund",
    ),
    path(
        "courses/<uuid:course_id>/access/",
        CourseAccessView.as_view(),
        name="course-access",
    ),
    path(
        "webhooks/stripe/<uuid:tenant_id>/",
        stripe_webhook,
        name="stripe-webhook",
    ),
]
