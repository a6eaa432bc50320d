"""
Course access gate.

Course content is available while the learner's payments are healthy. A
payment is overdue once it is pending or failed and its due date lies
further in the past than the tenant's grace period. Overdue is derived at
read time and never stored; enrollment status is never consulted beyond
excluding cancelled enrollments, and never changed.

Usage:
    from billing.services import AccessGate

    decision = AccessGate.check_access(request.user.id, course.id, tenant.id)
    if not decision.has_access:
        return Response(decision.to_dict(), status=403)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from django.db.models import Min, Q, Sum
from django.utils import timezone

from billing.models import Enrollment, PaymentSchedule, Tenant
from billing.state_machines import OVERDUE_ELIGIBLE_STATUSES, EnrollmentStatus

logger = logging.getLogger(__name__)


@dataclass
class AccessDecision:
    """
    Whether a learner may open a course's content.

    Attributes:
        has_access: Access granted
        reason: OK, NOT_ENROLLED or PAYMENT_OVERDUE
        overdue_amount: Sum of overdue rows' face amounts
        overdue_days: Days since the oldest overdue row was due
    """

    has_access: bool
    reason: str
    overdue_amount: Decimal = Decimal("0.00")
    overdue_days: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_access": self.has_access,
            "reason": self.reason,
            "overdue_amount": str(self.overdue_amount),
            "overdue_days": self.overdue_days,
        }


def is_overdue(schedule: PaymentSchedule, now: datetime, grace_days: int) -> bool:
    """Pending or failed and due more than `grace_days` days ago."""
    return (
        schedule.status in OVERDUE_ELIGIBLE_STATUSES
        and schedule.scheduled_date < now - timedelta(days=grace_days)
    )


class AccessGate:
    """Payment-health check for course content."""

    @classmethod
    def enrollments_granting(cls, user_id, course_id, tenant_id):
        """Non-cancelled enrollments whose product grants the course directly or via a program."""
        return (
            Enrollment.objects.filter(user_id=user_id, tenant_id=tenant_id)
            .exclude(status=EnrollmentStatus.CANCELLED)
            .filter(Q(product__course_id=course_id) | Q(product__program__courses__id=course_id))
            .distinct()
        )

    @classmethod
    def check_access(
        cls,
        user_id: uuid.UUID | int,
        course_id: uuid.UUID | str,
        tenant_id: uuid.UUID | str,
        now: datetime | None = None,
    ) -> AccessDecision:
        now = now or timezone.now()
        enrollment_ids = list(
            cls.enrollments_granting(user_id, course_id, tenant_id).values_list("id", flat=True)
        )
        if not enrollment_ids:
            return AccessDecision(has_access=False, reason="NOT_ENROLLED")

        tenant = Tenant.objects.get(pk=tenant_id)
        cutoff = now - timedelta(days=tenant.grace_days)

        overdue = PaymentSchedule.objects.filter(
            enrollment_id__in=enrollment_ids,
            status__in=OVERDUE_ELIGIBLE_STATUSES,
            scheduled_date__lt=cutoff,
        ).aggregate(total=Sum("amount"), oldest=Min("scheduled_date"))

        if overdue["oldest"] is None:
            return AccessDecision(has_access=True, reason="OK")

        decision = AccessDecision(
            has_access=False,
            reason="PAYMENT_OVERDUE",
            overdue_amount=overdue["total"] or Decimal("0.00"),
            overdue_days=(now - overdue["oldest"]).days,
        )
        logger.info(
            "Course access denied for overdue payments",
            extra={
                "user_id": str(user_id),
                "course_id": str(course_id),
                "tenant_id": str(tenant_id),
                "overdue_amount": str(decision.overdue_amount),
                "overdue_days": decision.overdue_days,
            },
        )
        return decision
