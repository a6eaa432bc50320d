"""
Administrative schedule management.

Staff can move a payment's due date or amount, pause and resume an
enrollment's payments and requeue a failed payment. Every change appends
an audit record to the row's adjustment_history.

Usage:
    from billing.services import ScheduleManager

    result = ScheduleManager.adjust_schedule(
        schedule_id,
        new_date=timezone.now() + timedelta(days=14),
        reason="Hardship extension",
        adjusted_by=request.user,
    )
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import StripeAdapter
from billing.exceptions import ConfigurationError, InvalidStateTransitionError, ProcessorError
from billing.models import Enrollment, PaymentSchedule, Tenant
from billing.money import quantize_amount
from billing.services.access_gate import is_overdue
from billing.services.settlement_reconciler import SettlementReconciler
from billing.state_machines import (
    INVOICEABLE_STATUSES,
    OPEN_STATUSES,
    OVERDUE_ELIGIBLE_STATUSES,
    ScheduleStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from django.db.models import QuerySet


logger = logging.getLogger(__name__)

# Transition that returns a row to pending, by current status
RETRY_TRANSITIONS = {
    ScheduleStatus.FAILED: "requeue",
    ScheduleStatus.ADJUSTED: "restore",
}


def _audit_record(action: str, actor, reason: str | None, **changes: Any) -> dict[str, Any]:
    return {
        "action": action,
        "at": timezone.now().isoformat(),
        "by": str(actor.pk) if actor is not None else None,
        "reason": reason,
        **changes,
    }


class ScheduleManager(BaseService):
    """Staff operations on payment schedule rows."""

    # Adapter factory - can be injected for testing
    _adapter_factory: Callable[[Any], StripeAdapter] | None = None

    @classmethod
    def get_adapter(cls, tenant_id) -> StripeAdapter:
        factory = cls._adapter_factory or StripeAdapter.for_tenant
        return factory(tenant_id)

    @classmethod
    def set_adapter_factory(cls, factory: Callable[[Any], StripeAdapter] | None) -> None:
        """Set the adapter factory (for testing)."""
        cls._adapter_factory = factory

    # =========================================================================
    # Adjustments
    # =========================================================================

    @classmethod
    def adjust_schedule(
        cls,
        schedule_id: uuid.UUID | str,
        reason: str,
        new_amount: Decimal | str | None = None,
        new_date: datetime | None = None,
        adjusted_by=None,
    ) -> ServiceResult[PaymentSchedule]:
        """
        Override a payment's amount and/or due date.

        The enrollment total moves by the amount difference. An open
        invoice for the old terms is voided and a checkout intent for the
        old amount is cancelled (both best-effort) so the next charge uses
        the new terms.
        """
        validation = cls.validate_required(reason=reason)
        if validation:
            return validation
        if new_amount is None and new_date is None:
            return ServiceResult.failure(
                "Provide a new amount or a new due date",
                error_code="NOTHING_TO_ADJUST",
            )

        schedule = PaymentSchedule.objects.filter(pk=schedule_id).first()
        if schedule is None:
            return ServiceResult.failure("Payment schedule not found", error_code="SCHEDULE_NOT_FOUND")

        if new_amount is not None:
            try:
                new_amount = quantize_amount(new_amount, schedule.currency)
            except (InvalidOperation, ValueError, TypeError):
                return ServiceResult.failure(f"Invalid amount: {new_amount!r}", error_code="INVALID_AMOUNT")
            if new_amount <= 0:
                return ServiceResult.failure("Amount must be positive", error_code="INVALID_AMOUNT")

        if schedule.status not in INVOICEABLE_STATUSES:
            return ServiceResult.failure(
                f"Cannot adjust a payment in status '{schedule.status}'",
                error_code=InvalidStateTransitionError.default_error_code,
            )

        amount_changed = new_amount is not None and new_amount != schedule.amount
        if schedule.stripe_invoice_id:
            cls._void_invoice(schedule)
        elif schedule.stripe_payment_intent_id and amount_changed:
            cls._cancel_intent(schedule)
        release_intent = bool(schedule.stripe_invoice_id) or amount_changed

        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)
                record = _audit_record(
                    "adjust",
                    adjusted_by,
                    reason,
                    previous_amount=str(locked.amount),
                    new_amount=str(new_amount) if new_amount is not None else None,
                    previous_date=locked.scheduled_date.isoformat(),
                    new_date=new_date.isoformat() if new_date else None,
                )
                delta = (new_amount - locked.amount) if new_amount is not None else Decimal("0")

                locked.apply_transition("adjust", record)
                if new_amount is not None:
                    locked.amount = new_amount
                if new_date is not None:
                    locked.scheduled_date = new_date
                locked.stripe_invoice_id = None
                if release_intent:
                    locked.stripe_payment_intent_id = None
                locked.save()

                if delta:
                    enrollment = Enrollment.objects.select_for_update().get(pk=locked.enrollment_id)
                    enrollment.total_amount = enrollment.total_amount + delta
                    enrollment.save(update_fields=["total_amount", "updated_at"])
                SettlementReconciler.recompute_paid_amount(locked.enrollment_id)
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "adjust_schedule", logging.WARNING)

        logger.info("Schedule adjusted", extra={"schedule_id": str(locked.id), **record})
        return ServiceResult.success(locked)

    # =========================================================================
    # Pause / Resume
    # =========================================================================

    @classmethod
    def pause_enrollment_payments(
        cls,
        enrollment_id: uuid.UUID | str,
        reason: str,
        paused_by=None,
    ) -> ServiceResult[int]:
        """Pause every open (pending, failed or adjusted) row. Returns the count."""
        validation = cls.validate_required(reason=reason)
        if validation:
            return validation

        record = _audit_record("pause", paused_by, reason)
        with transaction.atomic():
            rows = list(
                PaymentSchedule.objects.select_for_update().filter(
                    enrollment_id=enrollment_id, status__in=INVOICEABLE_STATUSES
                )
            )
            for row in rows:
                row.apply_transition("pause", record, paused_by=paused_by)
                row.save()
            SettlementReconciler.recompute_paid_amount(enrollment_id)

        logger.info(
            "Enrollment payments paused",
            extra={"enrollment_id": str(enrollment_id), "count": len(rows)},
        )
        return ServiceResult.success(len(rows))

    @classmethod
    def resume_enrollment_payments(
        cls,
        enrollment_id: uuid.UUID | str,
        resumed_by=None,
        shift_dates: bool = False,
    ) -> ServiceResult[int]:
        """
        Resume paused rows.

        With shift_dates, due dates move forward by the time spent paused.
        """
        now = timezone.now()
        record = _audit_record("resume", resumed_by, None, shift_dates=shift_dates)
        with transaction.atomic():
            rows = list(
                PaymentSchedule.objects.select_for_update().filter(
                    enrollment_id=enrollment_id, status=ScheduleStatus.PAUSED
                )
            )
            for row in rows:
                if shift_dates and row.paused_at:
                    row.scheduled_date = row.scheduled_date + (now - row.paused_at)
                row.apply_transition("resume", record)
                row.save()
            SettlementReconciler.recompute_paid_amount(enrollment_id)

        logger.info(
            "Enrollment payments resumed",
            extra={"enrollment_id": str(enrollment_id), "count": len(rows)},
        )
        return ServiceResult.success(len(rows))

    # =========================================================================
    # Retry
    # =========================================================================

    @classmethod
    def retry_schedule(cls, schedule_id: uuid.UUID | str) -> ServiceResult[PaymentSchedule]:
        """
        Return a failed or adjusted row to pending for the next sweep.

        Failed rows get a fresh invoice; both lose any retry backoff.
        """
        schedule = PaymentSchedule.objects.filter(pk=schedule_id).first()
        if schedule is None:
            return ServiceResult.failure("Payment schedule not found", error_code="SCHEDULE_NOT_FOUND")
        transition = RETRY_TRANSITIONS.get(schedule.status)
        if transition is None:
            return ServiceResult.failure(
                f"Only failed or adjusted payments can be retried (status is '{schedule.status}')",
                error_code=InvalidStateTransitionError.default_error_code,
            )

        if schedule.stripe_invoice_id:
            cls._void_invoice(schedule)

        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)
                locked.apply_transition(transition)
                locked.save()
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "retry_schedule", logging.WARNING)

        logger.info("Schedule requeued", extra={"schedule_id": str(locked.id), "transition": transition})
        return ServiceResult.success(locked)

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_upcoming_payments(
        cls,
        days_ahead: int = 7,
        enrollment_id: uuid.UUID | str | None = None,
        tenant_id: uuid.UUID | str | None = None,
        now: datetime | None = None,
    ) -> QuerySet[PaymentSchedule]:
        """Open rows due between now and `days_ahead` days from now."""
        now = now or timezone.now()
        queryset = PaymentSchedule.objects.filter(
            status__in=OPEN_STATUSES,
            scheduled_date__gte=now,
            scheduled_date__lte=now + timedelta(days=days_ahead),
        ).order_by("scheduled_date")
        if enrollment_id is not None:
            queryset = queryset.filter(enrollment_id=enrollment_id)
        if tenant_id is not None:
            queryset = queryset.filter(tenant_id=tenant_id)
        return queryset

    @classmethod
    def get_overdue_payments(
        cls,
        tenant_id: uuid.UUID | str | None = None,
        now: datetime | None = None,
    ) -> list[PaymentSchedule]:
        """Rows past their tenant's grace period, oldest first."""
        now = now or timezone.now()
        candidates = (
            PaymentSchedule.objects.select_related("tenant")
            .filter(status__in=OVERDUE_ELIGIBLE_STATUSES, scheduled_date__lt=now)
            .order_by("scheduled_date")
        )
        if tenant_id is not None:
            grace_days = Tenant.objects.get(pk=tenant_id).grace_days
            return list(
                candidates.filter(
                    tenant_id=tenant_id, scheduled_date__lt=now - timedelta(days=grace_days)
                )
            )
        return [row for row in candidates if is_overdue(row, now, row.tenant.grace_days)]

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _void_invoice(cls, schedule: PaymentSchedule) -> None:
        """Void the row's stale invoice; failures are logged, not raised."""
        try:
            cls.get_adapter(schedule.tenant_id).void_invoice(schedule.stripe_invoice_id)
        except (ConfigurationError, ProcessorError) as e:
            logger.warning(
                "Could not void stale invoice",
                extra={
                    "schedule_id": str(schedule.id),
                    "invoice_id": schedule.stripe_invoice_id,
                    "error": e.message,
                },
            )

    @classmethod
    def _cancel_intent(cls, schedule: PaymentSchedule) -> None:
        """Cancel the row's checkout intent; failures are logged, not raised."""
        try:
            cls.get_adapter(schedule.tenant_id).cancel_payment_intent(schedule.stripe_payment_intent_id)
        except (ConfigurationError, ProcessorError) as e:
            logger.warning(
                "Could not cancel stale checkout intent",
                extra={
                    "schedule_id": str(schedule.id),
                    "payment_intent_id": schedule.stripe_payment_intent_id,
                    "error": e.message,
                },
            )
