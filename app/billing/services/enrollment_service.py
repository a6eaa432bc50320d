"""
Enrollment creation for the enrollment workflow.

Builds the payment schedule for a product purchase and persists the
enrollment and all of its schedule rows in one transaction, so a
schedule is never partially written.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

from billing.models import Enrollment, PaymentPlan, PaymentSchedule, Product
from billing.plans import build_schedule
from billing.plans.detection import PlanDetector
from billing.services.settlement_reconciler import SettlementReconciler

logger = logging.getLogger(__name__)


class EnrollmentService(BaseService):
    """Creates enrollments together with their generated payment schedule."""

    @classmethod
    def create_enrollment(
        cls,
        user,
        product: Product,
        payment_plan_id=None,
        start_date: datetime | None = None,
        user_metadata: dict | None = None,
    ) -> ServiceResult[Enrollment]:
        """
        Enroll a learner in a product.

        Args:
            user: Learner enrolling
            product: Product purchased
            payment_plan_id: Plan chosen by the learner; detected when omitted
            start_date: Day-0 due date (defaults to now)
            user_metadata: Learner attributes for plan auto-detection

        Returns:
            ServiceResult with the Enrollment. Failure codes include
            PRODUCT_INACTIVE, ALREADY_ENROLLED, PAYMENT_PLAN_NOT_FOUND and
            the plan validation codes.
        """
        if not product.is_active:
            return ServiceResult.failure("This product is not available", error_code="PRODUCT_INACTIVE")

        if Enrollment.objects.filter(user=user, product=product).exists():
            return ServiceResult.failure(
                "Learner is already enrolled in this product",
                error_code="ALREADY_ENROLLED",
            )

        try:
            plan = cls._select_plan(product, payment_plan_id, user_metadata)
            items = build_schedule(
                product.price,
                product.currency,
                plan.to_payment_model(),
                start_date=start_date,
                expected_currency=product.currency,
            )
        except ValidationError as e:
            return cls.handle_exception(e, "schedule generation", logging.WARNING)

        try:
            with transaction.atomic():
                enrollment = Enrollment.objects.create(
                    tenant_id=product.tenant_id,
                    user=user,
                    product=product,
                    payment_plan=plan,
                    total_amount=sum((item.amount for item in items), Decimal("0")),
                    currency=items[0].currency,
                    stripe_customer_id=getattr(user, "stripe_customer_id", None) or None,
                    enrolled_at=timezone.now(),
                )
                PaymentSchedule.objects.bulk_create(
                    [
                        PaymentSchedule(
                            tenant_id=product.tenant_id,
                            enrollment=enrollment,
                            payment_number=item.payment_number,
                            payment_type=item.payment_type,
                            amount=item.amount,
                            currency=item.currency,
                            scheduled_date=item.due_date,
                            original_due_date=item.due_date,
                        )
                        for item in items
                        if item.is_chargeable
                    ]
                )
                enrollment = SettlementReconciler.recompute_paid_amount(enrollment.id)
        except IntegrityError:
            logger.warning(
                "Concurrent enrollment insert rejected",
                extra={"user_id": str(user.pk), "product_id": str(product.id)},
            )
            return ServiceResult.failure(
                "Learner is already enrolled in this product",
                error_code="ALREADY_ENROLLED",
            )

        logger.info(
            "Enrollment created",
            extra={
                "enrollment_id": str(enrollment.id),
                "product_id": str(product.id),
                "plan_id": str(plan.id),
                "payments": len([item for item in items if item.is_chargeable]),
                "total_amount": str(enrollment.total_amount),
            },
        )
        return ServiceResult.success(enrollment)

    @classmethod
    def _select_plan(cls, product: Product, payment_plan_id, user_metadata: dict | None) -> PaymentPlan:
        if payment_plan_id is None:
            return PlanDetector.detect(product, user_metadata)

        plan = PaymentPlan.objects.filter(
            pk=payment_plan_id, tenant_id=product.tenant_id, is_active=True
        ).first()
        if plan is None:
            raise ValidationError(
                "Payment plan not found",
                error_code="PAYMENT_PLAN_NOT_FOUND",
                details={"payment_plan_id": str(payment_plan_id)},
            )
        return plan
