"""
API views for checkout, admin refunds and course access.

Provides:
- ScheduleIntentView: Create or reuse the PaymentIntent for a schedule row
- ScheduleRefundView: Staff refund of a paid schedule row
- CourseAccessView: Payment-health check for a course
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult

from billing.models import Course, PaymentSchedule
from billing.serializers import (
    AccessDecisionSerializer,
    ErrorResponseSerializer,
    IntentResponseSerializer,
    RefundRequestSerializer,
    RefundResponseSerializer,
)
from billing.services import AccessGate, InvoiceOrchestrator, SettlementReconciler

# HTTP status for service failure codes; anything unlisted is a 502 from the processor
ERROR_CODE_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "REFUND_REASON_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "INVALID_REFUND_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "PROCESSOR_REFERENCE_NOT_FOUND": status.HTTP_400_BAD_REQUEST,
    "PROCESSOR_INVALID_REQUEST": status.HTTP_400_BAD_REQUEST,
    "PAYMENT_DECLINED": status.HTTP_402_PAYMENT_REQUIRED,
    "INSUFFICIENT_FUNDS": status.HTTP_402_PAYMENT_REQUIRED,
    "SCHEDULE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "SCHEDULE_ALREADY_PAID": status.HTTP_409_CONFLICT,
    "SCHEDULE_NOT_INVOICEABLE": status.HTTP_409_CONFLICT,
    "SCHEDULE_NOT_REFUNDABLE": status.HTTP_409_CONFLICT,
    "INVALID_STATE_TRANSITION": status.HTTP_409_CONFLICT,
    "SCHEDULE_UPDATE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "CREDENTIAL_NOT_CONFIGURED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_NOT_CONFIGURED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_AUTHENTICATION_FAILED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_RATE_LIMITED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "PROCESSOR_TIMEOUT": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(result: ServiceResult) -> Response:
    return Response(
        result.to_response(),
        status=ERROR_CODE_STATUS.get(result.error_code, status.HTTP_502_BAD_GATEWAY),
    )


class ScheduleIntentView(APIView):
    """
    Create or reuse the checkout PaymentIntent for a schedule row.

    POST /api/v1/billing/schedules/{schedule_id}/intent/

    Authentication:
        Requires valid JWT token. Learners may only pay their own rows.

    Response:
        200 OK: client_secret, intent_id, publishable_key
        404 Not Found: Row doesn't exist or belongs to someone else
        409 Conflict: Row already paid or not payable
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_schedule_intent",
        summary="Create or reuse payment intent",
        description=(
            "Return a PaymentIntent client secret for paying one schedule row. "
            "The stored intent is reused while Stripe still accepts it."
        ),
        request=None,
        responses={
            200: OpenApiResponse(response=IntentResponseSerializer, description="Intent ready"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Schedule not found"),
            409: OpenApiResponse(response=ErrorResponseSerializer, description="Already paid"),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request, schedule_id):
        visible = PaymentSchedule.objects.filter(pk=schedule_id)
        if not request.user.is_staff:
            visible = visible.filter(enrollment__user=request.user)
        if not visible.exists():
            return Response(
                {"success": False, "error": "Payment schedule not found", "error_code": "SCHEDULE_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )

        result = InvoiceOrchestrator.create_or_reuse_intent(schedule_id)
        if not result.success:
            return error_response(result)
        return Response(IntentResponseSerializer(result.data).data)


class ScheduleRefundView(APIView):
    """
    Refund part or all of a paid schedule row.

    POST /api/v1/billing/schedules/{schedule_id}/refund/

    Authentication:
        Staff only.

    Request:
        - amount (optional): Amount to refund; omitted means what remains
        - reason (required): Why the refund is issued
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="refund_schedule",
        summary="Refund schedule payment",
        description="Issue a Stripe refund for a paid schedule row and record it.",
        request=RefundRequestSerializer,
        responses={
            200: OpenApiResponse(response=RefundResponseSerializer, description="Refund issued"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid amount or reason"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Schedule not found"),
            409: OpenApiResponse(response=ErrorResponseSerializer, description="Payment not refundable"),
        },
        tags=["Billing - Refunds"],
    )
    def post(self, request, schedule_id):
        serializer = RefundRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {
                    "success": False,
                    "error": "Invalid refund request",
                    "error_code": "VALIDATION_ERROR",
                    "errors": serializer.errors,
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = SettlementReconciler.refund_schedule(
            schedule_id=schedule_id,
            reason=serializer.validated_data["reason"],
            amount=serializer.validated_data.get("amount"),
            initiated_by=request.user,
        )
        if not result.success:
            return error_response(result)
        return Response(RefundResponseSerializer(result.data.to_dict()).data)


class CourseAccessView(APIView):
    """
    Whether the current learner may open a course's content.

    GET /api/v1/billing/courses/{course_id}/access/

    Response:
        200 OK: Access decision (has_access may be false)
        404 Not Found: Course doesn't exist
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="check_course_access",
        summary="Check course access",
        description=(
            "Denies access while any payment for an enrollment granting the "
            "course is overdue beyond the tenant's grace period."
        ),
        responses={
            200: OpenApiResponse(response=AccessDecisionSerializer, description="Access decision"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Course not found"),
        },
        tags=["Billing - Access"],
    )
    def get(self, request, course_id):
        course = Course.objects.filter(pk=course_id).only("id", "tenant_id").first()
        if course is None:
            return Response(
                {"success": False, "error": "Course not found", "error_code": "COURSE_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )

        decision = AccessGate.check_access(request.user.id, course.id, course.tenant_id)
        return Response(AccessDecisionSerializer(decision).data)
