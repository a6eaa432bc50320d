"""
Enrollment model.

An enrollment is one learner's purchase of one product. The enrollment
workflow owns its lifecycle status; the billing engine only writes
paid_amount, payment_status, next_payment_date and the processor customer
reference.

Usage:
    from billing.models import Enrollment

    enrollment.paid_amount == enrollment.compute_paid_amount()  # invariant
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Sum

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import (
    EnrollmentPaymentStatus,
    EnrollmentStatus,
    ScheduleStatus,
)


class Enrollment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A learner's enrollment in a product.

    Fields:
        tenant/user/product: Who bought what from whom
        payment_plan: Plan the schedule was generated from
        status: Enrollment lifecycle (owned by the enrollment workflow)
        total_amount: Amount owed across all schedule rows
        paid_amount: Sum of paid schedule rows' face amounts
        payment_status: pending, partial or paid
        stripe_customer_id: Preferred processor customer reference
        next_payment_date: Earliest open schedule row's due date

    Invariant:
        paid_amount equals the sum of `paid` schedule rows; see
        compute_paid_amount() and SettlementReconciler.recompute_paid_amount().
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.PROTECT,
        related_name="enrollments",
        help_text="Tenant the enrollment belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="enrollments",
        help_text="Enrolled learner",
    )

    product = models.ForeignKey(
        "billing.Product",
        on_delete=models.PROTECT,
        related_name="enrollments",
        help_text="Product purchased",
    )

    payment_plan = models.ForeignKey(
        "billing.PaymentPlan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
        help_text="Plan used to generate the payment schedule",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=EnrollmentStatus.choices,
        default=EnrollmentStatus.PENDING,
        db_index=True,
        help_text="Enrollment lifecycle status",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=EnrollmentPaymentStatus.choices,
        default=EnrollmentPaymentStatus.PENDING,
        db_index=True,
        help_text="Aggregate payment status derived from schedule rows",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total owed (major currency units)",
    )

    paid_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Sum of paid schedule rows (major currency units)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Processor & Dates
    # ==========================================================================

    stripe_customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Customer ID (cus_xxx) carrying the saved payment method",
    )

    enrolled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the learner enrolled",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When access ends, if ever",
    )

    next_payment_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Due date of the earliest open schedule row",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Enrollment"
        verbose_name_plural = "Enrollments"
        indexes = [
            models.Index(fields=["tenant", "user"], name="billing_enr_tenant__8d0e4a_idx"),
            models.Index(fields=["tenant", "payment_status"], name="billing_enr_tenant__c27f91_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "product"],
                name="one_enrollment_per_user_product",
            ),
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="enrollment_total_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(paid_amount__gte=0),
                name="enrollment_paid_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Enrollment({self.id}, {self.status}, {self.paid_amount}/{self.total_amount})"

    def compute_paid_amount(self) -> Decimal:
        """Sum of the face amounts of this enrollment's paid schedule rows."""
        total = self.payment_schedules.filter(status=ScheduleStatus.PAID).aggregate(
            total=Sum("amount")
        )["total"]
        return total or Decimal("0.00")
