"""
Serializers for the billing API.

Request serializers validate input; response serializers document the
payloads for the OpenAPI schema and render service results.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers


class IntentResponseSerializer(serializers.Serializer):
    """Checkout data for confirming a payment client-side."""

    client_secret = serializers.CharField()
    intent_id = serializers.CharField()
    publishable_key = serializers.CharField()
    reused = serializers.BooleanField()


class RefundRequestSerializer(serializers.Serializer):
    """
    Admin refund request.

    Omit amount to refund everything that remains on the payment.
    """

    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal("0.01"),
    )
    reason = serializers.CharField(max_length=500, allow_blank=False, trim_whitespace=True)


class RefundResponseSerializer(serializers.Serializer):
    refund_id = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField()
    status = serializers.CharField()
    schedule_id = serializers.UUIDField()
    schedule_status = serializers.CharField()
    refunded_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class AccessDecisionSerializer(serializers.Serializer):
    has_access = serializers.BooleanField()
    reason = serializers.CharField()
    overdue_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    overdue_days = serializers.IntegerField()


class ErrorResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField(default=False)
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
    errors = serializers.DictField(required=False)
    details = serializers.DictField(required=False)
