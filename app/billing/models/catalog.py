"""
Catalog models the billing engine reads: courses, programs, products and
payment plans.

A Product sells either a single Course or a Program of courses. A
PaymentPlan is the stored configuration of a payment model; it converts
itself to the pure PaymentModel used for schedule generation.

Usage:
    from billing.models import PaymentPlan

    plan = PaymentPlan.objects.create(
        tenant=tenant,
        name="20% deposit + 4 monthly",
        plan_type=PaymentModelType.DEPOSIT_THEN_PLAN,
        deposit_type=DepositType.PERCENTAGE,
        deposit_percentage=Decimal("20"),
        installment_count=4,
    )
    items = build_schedule(product.price, product.currency, plan.to_payment_model())
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from core.models import BaseModel
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

from billing.plans.types import (
    DepositThenPlanModel,
    FreeModel,
    OneTimeModel,
    PaymentModel,
    SubscriptionModel,
)
from billing.state_machines import (
    DepositType,
    InstallmentFrequency,
    PaymentModelType,
    ProductType,
    SubscriptionInterval,
)


class Course(UUIDPrimaryKeyMixin, BaseModel):
    """A course whose lesson content is gated on payment health."""

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.CASCADE,
        related_name="courses",
        help_text="Tenant offering the course",
    )

    title = models.CharField(
        max_length=255,
        help_text="Course title",
    )

    class Meta:
        ordering = ["title"]

    def __str__(self) -> str:
        return self.title


class Program(UUIDPrimaryKeyMixin, BaseModel):
    """A bundle of courses sold together."""

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.CASCADE,
        related_name="programs",
        help_text="Tenant offering the program",
    )

    title = models.CharField(
        max_length=255,
        help_text="Program title",
    )

    courses = models.ManyToManyField(
        Course,
        blank=True,
        related_name="programs",
        help_text="Courses included in the program",
    )

    class Meta:
        ordering = ["title"]

    def __str__(self) -> str:
        return self.title


class PaymentPlan(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stored payment model configuration.

    Fields are grouped by plan_type; only the group for the plan's type is
    read by to_payment_model().

    Auto-detection:
        Active plans with auto_detect_enabled are matched against a product
        (and optionally the learner) by descending priority; a plan matches
        when all of its auto_detect_rules match. See billing.plans.detection.
    """

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.CASCADE,
        related_name="payment_plans",
        help_text="Tenant owning the plan",
    )

    name = models.CharField(
        max_length=200,
        help_text="Plan name shown to admins and learners",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Optional plan description",
    )

    plan_type = models.CharField(
        max_length=30,
        choices=PaymentModelType.choices,
        default=PaymentModelType.ONE_TIME,
        help_text="Payment model used to generate schedules",
    )

    # ==========================================================================
    # Deposit + Installments
    # ==========================================================================

    deposit_type = models.CharField(
        max_length=20,
        choices=DepositType.choices,
        default=DepositType.NONE,
        help_text="How the deposit is computed",
    )

    deposit_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Fixed deposit amount (major currency units)",
    )

    deposit_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Deposit as a percentage of the total (0-100)",
    )

    installment_count = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Number of installments after the deposit",
    )

    installment_frequency = models.CharField(
        max_length=20,
        choices=InstallmentFrequency.choices,
        default=InstallmentFrequency.MONTHLY,
        help_text="Spacing between installment due dates",
    )

    custom_frequency_days = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Days between installments when frequency is custom",
    )

    # ==========================================================================
    # Subscription
    # ==========================================================================

    subscription_interval = models.CharField(
        max_length=20,
        choices=SubscriptionInterval.choices,
        default=SubscriptionInterval.MONTHLY,
        help_text="Billing interval for subscriptions",
    )

    subscription_trial_days = models.PositiveSmallIntegerField(
        default=0,
        help_text="Days before the first subscription charge",
    )

    subscription_billing_cycles = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text="Number of cycles the product price is spread over",
    )

    # ==========================================================================
    # Auto-detection & Status
    # ==========================================================================

    auto_detect_enabled = models.BooleanField(
        default=False,
        help_text="Whether the plan takes part in auto-detection",
    )

    auto_detect_rules = models.JSONField(
        default=list,
        blank=True,
        help_text="Rules that must all match, e.g. "
        '[{"condition": "price_range", "operator": "between", "min": 500, "max": 5000}]',
    )

    priority = models.IntegerField(
        default=0,
        db_index=True,
        help_text="Higher priority plans are evaluated first",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the plan can be assigned",
    )

    is_default = models.BooleanField(
        default=False,
        help_text="Tenant-wide fallback plan",
    )

    class Meta:
        ordering = ["-priority", "name"]
        verbose_name = "Payment Plan"
        verbose_name_plural = "Payment Plans"
        indexes = [
            models.Index(fields=["tenant", "is_active", "auto_detect_enabled"], name="billing_pay_tenant__5b1c2e_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.plan_type})"

    def to_payment_model(self) -> PaymentModel:
        """
        Convert the stored configuration to a PaymentModel variant.

        Raises:
            ValidationError: If the stored parameters are invalid
        """
        if self.plan_type == PaymentModelType.FREE:
            return FreeModel()
        if self.plan_type == PaymentModelType.DEPOSIT_THEN_PLAN:
            return DepositThenPlanModel(
                installments=self.installment_count or 0,
                deposit_type=self.deposit_type,
                deposit_amount=self.deposit_amount,
                deposit_percentage=self.deposit_percentage,
                frequency=self.installment_frequency,
                custom_frequency_days=self.custom_frequency_days,
            )
        if self.plan_type == PaymentModelType.SUBSCRIPTION:
            return SubscriptionModel(
                interval=self.subscription_interval,
                trial_days=self.subscription_trial_days,
                billing_cycles=self.subscription_billing_cycles,
            )
        return OneTimeModel()


class Product(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Something a learner enrolls in and pays for: a course or a program.

    Plan selection fields:
        forced_payment_plan: Always used when set
        auto_assign_payment_plan: Run auto-detection rules
        default_payment_plan: Fallback when nothing else applies
    """

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.CASCADE,
        related_name="products",
        help_text="Tenant selling the product",
    )

    name = models.CharField(
        max_length=255,
        help_text="Product name",
    )

    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.COURSE,
        help_text="Whether the product grants a course or a program",
    )

    course = models.ForeignKey(
        Course,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="products",
        help_text="Course granted (course products)",
    )

    program = models.ForeignKey(
        Program,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="products",
        help_text="Program granted (program products)",
    )

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Price in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    auto_assign_payment_plan = models.BooleanField(
        default=False,
        help_text="Pick the plan with auto-detection rules",
    )

    default_payment_plan = models.ForeignKey(
        PaymentPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="default_for_products",
        help_text="Plan used when no other plan applies",
    )

    forced_payment_plan = models.ForeignKey(
        PaymentPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="forced_for_products",
        help_text="Plan always used for this product",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the product can be purchased",
    )

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(course__isnull=False, program__isnull=True)
                    | models.Q(course__isnull=True, program__isnull=False)
                ),
                name="product_grants_course_or_program",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="product_price_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.price} {self.currency.upper()})"
