"""
Settlement reconciler: applies processor outcomes to schedule rows.

Webhook handlers, the invoice orchestrator and the admin refund endpoint
all converge here. Every entry point is idempotent: applying the same
outcome twice leaves the row, the ledger mirror and the enrollment
aggregate exactly as applying it once.

Refund Flow:
    1. Validate reason, status and amount bounds
    2. Resolve a charge reference (schedule intent -> ledger intent ->
       ledger invoice -> schedule invoice)
    3. Create the Stripe refund OUTSIDE any transaction
    4. Update the schedule row under a row lock
    5. Mirror onto the ledger and recompute paid_amount (best-effort)

Usage:
    from billing.services import SettlementReconciler

    result = SettlementReconciler.refund_schedule(
        schedule_id=schedule.id,
        amount=Decimal("50.00"),
        reason="Learner withdrew after week one",
        initiated_by=request.user,
    )
    if result.success:
        print(result.data.refund_id)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

from billing.adapters import IdempotencyKeyGenerator, StripeAdapter
from billing.exceptions import (
    ConfigurationError,
    InvalidStateTransitionError,
    ProcessorError,
    ReferenceNotFoundError,
)
from billing.models import Enrollment, Payment, PaymentSchedule
from billing.money import quantize_amount
from billing.state_machines import (
    OPEN_STATUSES,
    EnrollmentPaymentStatus,
    LedgerPaymentStatus,
    ScheduleStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)


# Days to wait before the sweep retries a failed row, by failure number
RETRY_BACKOFF_DAYS = (1, 3, 7)

SETTLED_STATUSES = (ScheduleStatus.PAID, ScheduleStatus.REFUNDED)


@dataclass
class RefundOutcome:
    """Result of a successful refund."""

    refund_id: str
    amount: Decimal
    currency: str
    status: str
    schedule: PaymentSchedule

    def to_dict(self) -> dict[str, Any]:
        return {
            "refund_id": self.refund_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "schedule_id": str(self.schedule.id),
            "schedule_status": self.schedule.status,
            "refunded_amount": str(self.schedule.refunded_amount),
        }


def next_retry_date_for(retry_count: int, now: datetime) -> datetime | None:
    """
    When the sweep may retry after the given number of failures.

    Returns None once BILLING_MAX_PAYMENT_RETRIES retries have been used.
    """
    if retry_count > settings.BILLING_MAX_PAYMENT_RETRIES:
        return None
    index = min(retry_count, len(RETRY_BACKOFF_DAYS)) - 1
    return now + timedelta(days=RETRY_BACKOFF_DAYS[index])


class SettlementReconciler(BaseService):
    """
    Applies paid, failed and refunded outcomes to PaymentSchedule rows.

    Row mutations run under select_for_update inside a transaction; the
    Stripe refund call never does.
    """

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
    # Settlement
    # =========================================================================

    @classmethod
    def mark_paid(
        cls,
        schedule: PaymentSchedule,
        payment_intent_id: str | None = None,
        invoice_id: str | None = None,
        paid_at: datetime | None = None,
    ) -> ServiceResult[PaymentSchedule]:
        """
        Record that a schedule row settled.

        Already-settled rows are left untouched. The ledger mirror is
        created once per intent (or invoice) and the enrollment aggregate
        is recomputed in the same transaction.
        """
        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)

                if locked.status in SETTLED_STATUSES:
                    logger.info(
                        "Schedule already settled, ignoring duplicate settlement",
                        extra={"schedule_id": str(locked.id), "status": locked.status},
                    )
                    return ServiceResult.success(locked)

                if payment_intent_id:
                    locked.stripe_payment_intent_id = payment_intent_id
                if invoice_id:
                    locked.stripe_invoice_id = invoice_id
                locked.apply_transition("mark_paid", paid_at=paid_at)
                locked.save()

                cls.recompute_paid_amount(locked.enrollment_id)
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "mark_paid", logging.WARNING)

        cls._record_ledger_payment(locked)

        logger.info(
            "Schedule marked paid",
            extra={
                "schedule_id": str(locked.id),
                "enrollment_id": str(locked.enrollment_id),
                "payment_intent_id": locked.stripe_payment_intent_id,
                "invoice_id": locked.stripe_invoice_id,
            },
        )
        return ServiceResult.success(locked)

    @classmethod
    def mark_failed(
        cls,
        schedule: PaymentSchedule,
        error_message: str,
        now: datetime | None = None,
    ) -> ServiceResult[PaymentSchedule]:
        """
        Record a failed collection attempt.

        Increments retry_count and schedules the next sweep retry with
        backoff (+1d, +3d, +7d). Settled or paused rows are not touched,
        and repeating the failure already recorded is a no-op.
        """
        now = now or timezone.now()
        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)

                if locked.status in (*SETTLED_STATUSES, ScheduleStatus.PAUSED):
                    logger.info(
                        "Ignoring failure for schedule not awaiting payment",
                        extra={"schedule_id": str(locked.id), "status": locked.status},
                    )
                    return ServiceResult.success(locked)

                if locked.status == ScheduleStatus.FAILED and locked.last_error == error_message:
                    return ServiceResult.success(locked)

                retry_number = locked.retry_count + 1
                locked.apply_transition(
                    "mark_failed",
                    error_message,
                    next_retry_date=next_retry_date_for(retry_number, now),
                )
                locked.save()
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "mark_failed", logging.WARNING)

        logger.warning(
            "Schedule payment failed",
            extra={
                "schedule_id": str(locked.id),
                "retry_count": locked.retry_count,
                "next_retry_date": locked.next_retry_date.isoformat() if locked.next_retry_date else None,
                "error": error_message,
            },
        )
        if locked.retries_exhausted:
            logger.error(
                "Payment retries exhausted, manual follow-up required",
                extra={"schedule_id": str(locked.id), "enrollment_id": str(locked.enrollment_id)},
            )
        return ServiceResult.success(locked)

    # =========================================================================
    # Enrollment Aggregate
    # =========================================================================

    @classmethod
    def recompute_paid_amount(cls, enrollment_id: uuid.UUID | str) -> Enrollment:
        """
        Recompute paid_amount, payment_status and next_payment_date.

        paid_amount is the sum of the face amounts of `paid` rows; refunded
        rows no longer count.
        """
        with transaction.atomic():
            enrollment = Enrollment.objects.select_for_update().get(pk=enrollment_id)
            paid_amount = enrollment.compute_paid_amount()

            if paid_amount >= enrollment.total_amount:
                payment_status = EnrollmentPaymentStatus.PAID
            elif paid_amount > 0:
                payment_status = EnrollmentPaymentStatus.PARTIAL
            else:
                payment_status = EnrollmentPaymentStatus.PENDING

            next_row = (
                enrollment.payment_schedules.filter(status__in=OPEN_STATUSES)
                .order_by("scheduled_date")
                .only("scheduled_date")
                .first()
            )

            enrollment.paid_amount = paid_amount
            enrollment.payment_status = payment_status
            enrollment.next_payment_date = next_row.scheduled_date if next_row else None
            enrollment.save(
                update_fields=["paid_amount", "payment_status", "next_payment_date", "updated_at"]
            )
        return enrollment

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def refund_schedule(
        cls,
        schedule_id: uuid.UUID | str,
        reason: str,
        amount: Decimal | str | None = None,
        initiated_by=None,
    ) -> ServiceResult[RefundOutcome]:
        """
        Refund part or all of a paid schedule row.

        Args:
            schedule_id: Row to refund
            reason: Why the refund is issued (required)
            amount: Amount in major units; None refunds what remains
            initiated_by: Staff user issuing the refund

        Returns:
            ServiceResult with RefundOutcome. Failure codes include
            REFUND_REASON_REQUIRED, SCHEDULE_NOT_REFUNDABLE,
            INVALID_REFUND_AMOUNT, PROCESSOR_REFERENCE_NOT_FOUND and
            SCHEDULE_UPDATE_FAILED (refund issued, row not updated).
        """
        if not reason or not str(reason).strip():
            return ServiceResult.failure(
                "A refund reason is required",
                error_code="REFUND_REASON_REQUIRED",
                errors={"reason": ["This field is required."]},
            )

        schedule = (
            PaymentSchedule.objects.select_related("enrollment").filter(pk=schedule_id).first()
        )
        if schedule is None:
            return ServiceResult.failure("Payment schedule not found", error_code="SCHEDULE_NOT_FOUND")

        if schedule.status != ScheduleStatus.PAID:
            return ServiceResult.failure(
                f"Only paid payments can be refunded (status is '{schedule.status}')",
                error_code="SCHEDULE_NOT_REFUNDABLE",
                details={"schedule_id": str(schedule.id), "status": schedule.status},
            )

        try:
            refund_amount = cls._validate_refund_amount(schedule, amount)
        except ValidationError as e:
            return ServiceResult.from_exception(e)

        try:
            adapter = cls.get_adapter(schedule.tenant_id)
            payment_intent_id = cls._resolve_charge_reference(schedule, adapter)
            refunded_before = schedule.refunded_amount
            refund = adapter.create_refund(
                payment_intent_id=payment_intent_id,
                amount=refund_amount,
                currency=schedule.currency,
                reason=reason,
                metadata={
                    "tenant_id": str(schedule.tenant_id),
                    "schedule_id": str(schedule.id),
                    "enrollment_id": str(schedule.enrollment_id),
                    "refund_reason": str(reason)[:500],
                    "refunded_by": str(initiated_by.pk) if initiated_by is not None else "",
                },
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "create_refund",
                    f"{schedule.id}:{refunded_before}",
                    attempt=str(refund_amount),
                ),
            )
        except ReferenceNotFoundError as e:
            return cls.handle_exception(e, "refund reference lookup", logging.WARNING)
        except (ConfigurationError, ProcessorError) as e:
            return cls.handle_exception(e, "refund creation", logging.WARNING)

        now = timezone.now()
        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)
                # A charge.refunded webhook or a duplicate submission may have
                # recorded this refund already
                locked.refunded_amount = min(
                    max(locked.refunded_amount, refunded_before + refund_amount), locked.amount
                )
                locked.refunded_at = now
                locked.refund_reason = reason
                if locked.refunded_amount >= locked.amount and locked.status == ScheduleStatus.PAID:
                    locked.apply_transition("refund_full")
                locked.save()
        except Exception as e:
            logger.exception(
                "Stripe refund succeeded but schedule update failed",
                extra={"schedule_id": str(schedule.id), "refund_id": refund.id},
            )
            return ServiceResult.failure(
                "Refund was issued but the payment record could not be updated",
                error_code="SCHEDULE_UPDATE_FAILED",
                details={"refund_id": refund.id, "schedule_id": str(schedule.id), "error": str(e)},
            )

        cls._mirror_refund(locked, payment_intent_id, refund.id, reason, now)
        cls._recompute_best_effort(locked.enrollment_id)

        logger.info(
            "Schedule refunded",
            extra={
                "schedule_id": str(locked.id),
                "refund_id": refund.id,
                "amount": str(refund_amount),
                "refunded_amount": str(locked.refunded_amount),
                "status": locked.status,
                "initiated_by": str(initiated_by.pk) if initiated_by is not None else None,
            },
        )
        return ServiceResult.success(
            RefundOutcome(
                refund_id=refund.id,
                amount=refund_amount,
                currency=schedule.currency,
                status=refund.status,
                schedule=locked,
            )
        )

    @classmethod
    def apply_external_refund(
        cls,
        schedule: PaymentSchedule,
        upstream_refunded_total: Decimal,
        reason: str | None = None,
        refund_id: str | None = None,
        refunded_at: datetime | None = None,
    ) -> ServiceResult[PaymentSchedule]:
        """
        Bring a row's refunded_amount up to the total Stripe reports.

        Used for refunds issued outside the engine (Stripe dashboard,
        disputes). Totals at or below what is already recorded are no-ops,
        so replays and refunds the engine issued itself change nothing.
        """
        refunded_at = refunded_at or timezone.now()
        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)

                if locked.status not in SETTLED_STATUSES:
                    return ServiceResult.failure(
                        f"Cannot apply a refund to a payment in status '{locked.status}'",
                        error_code="SCHEDULE_NOT_REFUNDABLE",
                        details={"schedule_id": str(locked.id), "status": locked.status},
                    )

                total = min(quantize_amount(upstream_refunded_total, locked.currency), locked.amount)
                if total <= locked.refunded_amount:
                    return ServiceResult.success(locked)

                locked.refunded_amount = total
                locked.refunded_at = refunded_at
                if reason:
                    locked.refund_reason = reason
                if total >= locked.amount and locked.status == ScheduleStatus.PAID:
                    locked.apply_transition("refund_full")
                locked.save()
        except InvalidStateTransitionError as e:
            return cls.handle_exception(e, "apply_external_refund", logging.WARNING)

        cls._mirror_refund(locked, locked.stripe_payment_intent_id, refund_id, reason, refunded_at)
        cls._recompute_best_effort(locked.enrollment_id)

        logger.info(
            "Applied external refund to schedule",
            extra={
                "schedule_id": str(locked.id),
                "refunded_amount": str(locked.refunded_amount),
                "refund_id": refund_id,
            },
        )
        return ServiceResult.success(locked)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate_refund_amount(schedule: PaymentSchedule, amount: Decimal | str | None) -> Decimal:
        remaining = schedule.refundable_amount
        if amount is None:
            return remaining

        try:
            value = quantize_amount(amount, schedule.currency)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(
                f"Invalid refund amount: {amount!r}",
                error_code="INVALID_REFUND_AMOUNT",
            )
        if value <= 0 or value > remaining:
            raise ValidationError(
                f"Refund amount must be greater than 0 and at most {remaining}",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount": str(value), "refundable_amount": str(remaining)},
            )
        return value

    @staticmethod
    def _resolve_charge_reference(schedule: PaymentSchedule, adapter: StripeAdapter) -> str:
        """
        Find the PaymentIntent to refund.

        Raises:
            ReferenceNotFoundError: No reference resolves to an intent
        """
        if schedule.stripe_payment_intent_id:
            return schedule.stripe_payment_intent_id

        ledger = Payment.objects.filter(payment_schedule=schedule).order_by("-created_at")
        ledger_intent = (
            ledger.exclude(stripe_payment_intent_id__isnull=True)
            .values_list("stripe_payment_intent_id", flat=True)
            .first()
        )
        if ledger_intent:
            return ledger_intent

        invoice_ids = [
            *ledger.exclude(stripe_invoice_id__isnull=True).values_list("stripe_invoice_id", flat=True)[:1],
            schedule.stripe_invoice_id,
        ]
        for invoice_id in invoice_ids:
            if not invoice_id:
                continue
            invoice = adapter.retrieve_invoice(invoice_id)
            if invoice.payment_intent_id:
                return invoice.payment_intent_id

        raise ReferenceNotFoundError(
            "No processor reference found for this payment - may require manual refund",
            details={"schedule_id": str(schedule.id)},
        )

    @classmethod
    def _record_ledger_payment(cls, schedule: PaymentSchedule) -> None:
        """Create the ledger mirror once per intent or invoice (best-effort)."""
        defaults = {
            "tenant_id": schedule.tenant_id,
            "enrollment_id": schedule.enrollment_id,
            "payment_schedule": schedule,
            "stripe_invoice_id": schedule.stripe_invoice_id,
            "amount": schedule.amount,
            "currency": schedule.currency,
            "payment_type": schedule.payment_type,
            "status": LedgerPaymentStatus.SUCCEEDED,
            "paid_at": schedule.paid_date,
        }
        try:
            with transaction.atomic():
                if schedule.stripe_payment_intent_id:
                    Payment.objects.get_or_create(
                        stripe_payment_intent_id=schedule.stripe_payment_intent_id,
                        defaults=defaults,
                    )
                else:
                    Payment.objects.get_or_create(
                        payment_schedule=schedule,
                        stripe_invoice_id=schedule.stripe_invoice_id,
                        defaults=defaults,
                    )
        except Exception:
            logger.exception(
                "Failed to record ledger payment",
                extra={"schedule_id": str(schedule.id)},
            )

    @classmethod
    def _mirror_refund(
        cls,
        schedule: PaymentSchedule,
        payment_intent_id: str | None,
        refund_id: str | None,
        reason: str | None,
        refunded_at: datetime,
    ) -> None:
        """Copy the row's cumulative refund onto its ledger record (best-effort)."""
        try:
            with transaction.atomic():
                ledger = Payment.objects.select_for_update().filter(payment_schedule=schedule)
                payment = None
                if payment_intent_id:
                    payment = ledger.filter(stripe_payment_intent_id=payment_intent_id).first()
                if payment is None:
                    payment = ledger.order_by("-created_at").first()
                if payment is None:
                    logger.warning(
                        "No ledger payment to mirror refund onto",
                        extra={"schedule_id": str(schedule.id), "refund_id": refund_id},
                    )
                    return
                payment.apply_refund(schedule.refunded_amount, reason, refund_id, refunded_at)
                payment.save()
        except Exception:
            logger.exception(
                "Failed to mirror refund onto ledger payment",
                extra={"schedule_id": str(schedule.id), "refund_id": refund_id},
            )

    @classmethod
    def _recompute_best_effort(cls, enrollment_id) -> None:
        try:
            cls.recompute_paid_amount(enrollment_id)
        except Exception:
            logger.exception(
                "Failed to recompute enrollment paid amount",
                extra={"enrollment_id": str(enrollment_id)},
            )

