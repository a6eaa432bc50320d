"""
Invoice orchestrator: turns due schedule rows into Stripe charges.

Two entry points drive collection:

- On demand, when a learner opens checkout for a row:
  create_or_reuse_intent() returns a PaymentIntent client secret, reusing
  the stored intent while Stripe still accepts it.
- In batch, from the daily Celery beat sweep: sweep_upcoming() invoices
  every row due within the window, one row at a time.

Per-row Flow (create_invoice_for_schedule):
    1. Skip rows that are settled, paused or already being collected
    2. Resolve the customer (enrollment -> user -> new customer -> none)
    3. No customer: charge through a customer-less PaymentIntent
    4. Resolve the payment method unless one was supplied
    5. Due now with a payment method: charge_automatically + pay
       Otherwise: send_invoice due on the scheduled date
    6. Attach one line item for the row's amount and finalize
    7. Persist invoice/intent ids and move the row to processing

Stripe calls always run outside database transactions; the row is
re-read under a lock right before it is written.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import (
    IdempotencyKeyGenerator,
    InvoiceResult,
    StripeAdapter,
    is_retryable_processor_error,
)
from billing.exceptions import (
    ConfigurationError,
    DeclinedError,
    InvalidStateTransitionError,
    ProcessorError,
    ProcessorRateLimitError,
    ProcessorRequestError,
    ProcessorTimeoutError,
    ProcessorUnavailableError,
    TransientProcessorError,
)
from billing.models import PaymentSchedule
from billing.services.resolvers import resolve_customer, resolve_payment_method
from billing.services.settlement_reconciler import SettlementReconciler
from billing.state_machines import EnrollmentStatus, ScheduleStatus

if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)


# Failure codes the sweep reports as skipped rather than failed
SKIP_ERROR_CODES = frozenset(
    {"SCHEDULE_ALREADY_PAID", "SCHEDULE_NOT_INVOICEABLE", "SCHEDULE_NOT_FOUND"}
)

# Failure codes a later sweep may succeed on
RETRYABLE_ERROR_CODES = frozenset(
    exc.default_error_code
    for exc in (
        TransientProcessorError,
        ProcessorRateLimitError,
        ProcessorTimeoutError,
        ProcessorUnavailableError,
    )
)

# Invoice statuses that can no longer be paid
CLOSED_INVOICE_STATUSES = frozenset({"void", "uncollectible"})


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class IntentResult:
    """Checkout data for a schedule row's PaymentIntent."""

    client_secret: str
    intent_id: str
    publishable_key: str
    reused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_secret": self.client_secret,
            "intent_id": self.intent_id,
            "publishable_key": self.publishable_key,
            "reused": self.reused,
        }


@dataclass
class InvoiceCreationResult:
    """Outcome of collecting one schedule row."""

    schedule: PaymentSchedule
    invoice_id: str | None = None
    payment_intent_id: str | None = None
    customer_id: str | None = None
    charged_now: bool = False
    paid: bool = False


@dataclass
class SweepReport:
    """Counters for one sweep run."""

    created: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


# =============================================================================
# Invoice Orchestrator
# =============================================================================


class InvoiceOrchestrator(BaseService):
    """
    Drives schedule rows through Stripe invoices and PaymentIntents.

    Every processor error is caught per row and returned as a failed
    ServiceResult; a DeclinedError additionally marks the row failed.
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
    # On-demand Checkout
    # =========================================================================

    @classmethod
    def create_or_reuse_intent(cls, schedule_id: uuid.UUID | str) -> ServiceResult[IntentResult]:
        """
        Return a PaymentIntent the learner can confirm for this row.

        The stored intent is reused while its upstream status is
        requires_payment_method, requires_confirmation or requires_action.
        An intent that already succeeded settles the row instead.

        Returns:
            ServiceResult with IntentResult, or a failure with
            SCHEDULE_NOT_FOUND, SCHEDULE_ALREADY_PAID,
            SCHEDULE_NOT_INVOICEABLE or a processor error code
        """
        schedule = cls._load(schedule_id)
        if schedule is None:
            return ServiceResult.failure("Payment schedule not found", error_code="SCHEDULE_NOT_FOUND")

        rejection = cls._reject_unpayable(schedule)
        if rejection:
            return rejection

        try:
            adapter = cls.get_adapter(schedule.tenant_id)
            previous_intent_id = schedule.stripe_payment_intent_id

            if previous_intent_id:
                reused = cls._reuse_intent(schedule, adapter)
                if reused is not None:
                    return reused

            customer_id = resolve_customer(schedule.enrollment, adapter)
            intent = adapter.create_payment_intent(
                amount=schedule.amount,
                currency=schedule.currency,
                customer_id=customer_id,
                metadata=cls._metadata(schedule),
                description=cls._description(schedule),
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "create_payment_intent",
                    f"{schedule.id}:{previous_intent_id or 'new'}",
                    attempt=schedule.version,
                ),
            )
        except (ConfigurationError, ProcessorError) as e:
            return cls.handle_exception(e, "create_or_reuse_intent", logging.WARNING)

        with transaction.atomic():
            locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)
            if locked.status in (ScheduleStatus.PAID, ScheduleStatus.REFUNDED):
                logger.warning(
                    "Schedule settled while creating intent, new intent left unused",
                    extra={"schedule_id": str(locked.id), "payment_intent_id": intent.id},
                )
                return ServiceResult.failure(
                    "This payment has already been made",
                    error_code="SCHEDULE_ALREADY_PAID",
                )
            locked.stripe_payment_intent_id = intent.id
            locked.save(update_fields=["stripe_payment_intent_id", "updated_at"])

        logger.info(
            "Created checkout intent for schedule",
            extra={
                "schedule_id": str(schedule.id),
                "payment_intent_id": intent.id,
                "customer_id": customer_id,
            },
        )
        return ServiceResult.success(
            IntentResult(
                client_secret=intent.client_secret,
                intent_id=intent.id,
                publishable_key=adapter.publishable_key,
            )
        )

    @classmethod
    def _reuse_intent(
        cls, schedule: PaymentSchedule, adapter: StripeAdapter
    ) -> ServiceResult[IntentResult] | None:
        """Reuse or settle the stored intent; None means create a new one."""
        try:
            intent = adapter.retrieve_payment_intent(schedule.stripe_payment_intent_id)
        except ProcessorRequestError:
            logger.info(
                "Stored intent not retrievable, creating a new one",
                extra={
                    "schedule_id": str(schedule.id),
                    "payment_intent_id": schedule.stripe_payment_intent_id,
                },
            )
            return None

        if intent.status == "succeeded":
            SettlementReconciler.mark_paid(schedule, payment_intent_id=intent.id)
            return ServiceResult.failure(
                "This payment has already been made",
                error_code="SCHEDULE_ALREADY_PAID",
            )

        if not intent.is_reusable:
            return None

        if intent.amount != schedule.amount or intent.currency.lower() != schedule.currency.lower():
            logger.info(
                "Stored intent no longer matches the payment amount, replacing it",
                extra={
                    "schedule_id": str(schedule.id),
                    "payment_intent_id": intent.id,
                    "intent_amount": str(intent.amount),
                    "amount": str(schedule.amount),
                },
            )
            cls._cancel_intent_best_effort(schedule, adapter, intent.id)
            return None

        # The row may have settled through a webhook since it was loaded
        current = PaymentSchedule.objects.only("status").get(pk=schedule.pk)
        if current.status in (ScheduleStatus.PAID, ScheduleStatus.REFUNDED):
            return ServiceResult.failure(
                "This payment has already been made",
                error_code="SCHEDULE_ALREADY_PAID",
            )

        logger.info(
            "Reusing checkout intent for schedule",
            extra={"schedule_id": str(schedule.id), "payment_intent_id": intent.id},
        )
        return ServiceResult.success(
            IntentResult(
                client_secret=intent.client_secret,
                intent_id=intent.id,
                publishable_key=adapter.publishable_key,
                reused=True,
            )
        )

    # =========================================================================
    # Per-row Invoicing
    # =========================================================================

    @classmethod
    def create_invoice_for_schedule(
        cls,
        schedule_id: uuid.UUID | str,
        payment_method_id: str | None = None,
        now: datetime | None = None,
    ) -> ServiceResult[InvoiceCreationResult]:
        """
        Invoice (or charge) one schedule row.

        Args:
            schedule_id: Row to collect
            payment_method_id: Charge this payment method instead of resolving one
            now: Reference time deciding charge-now versus send-invoice

        Returns:
            ServiceResult with InvoiceCreationResult. A declined charge
            returns PAYMENT_DECLINED (or INSUFFICIENT_FUNDS) after marking
            the row failed; transient errors leave the row unchanged.
        """
        now = now or timezone.now()
        schedule = cls._load(schedule_id)
        if schedule is None:
            return ServiceResult.failure("Payment schedule not found", error_code="SCHEDULE_NOT_FOUND")

        rejection = cls._reject_unpayable(schedule, invoicing=True)
        if rejection:
            return rejection

        log_context = {
            "schedule_id": str(schedule.id),
            "enrollment_id": str(schedule.enrollment_id),
            "tenant_id": str(schedule.tenant_id),
        }

        try:
            adapter = cls.get_adapter(schedule.tenant_id)

            if schedule.stripe_payment_intent_id and not schedule.stripe_invoice_id:
                blocked = cls._release_checkout_intent(schedule, adapter)
                if blocked is not None:
                    return blocked

            customer_id = resolve_customer(schedule.enrollment, adapter)

            if customer_id is None:
                return cls._charge_without_customer(schedule, adapter)

            if schedule.stripe_invoice_id:
                retried = cls._retry_existing_invoice(schedule, adapter, customer_id, payment_method_id)
                if retried is not None:
                    return retried

            if payment_method_id is None:
                payment_method_id = resolve_payment_method(customer_id, adapter)

            charge_now = schedule.scheduled_date <= now and payment_method_id is not None
            if schedule.scheduled_date <= now and payment_method_id is None:
                logger.warning(
                    "Payment due but customer has no payment method, sending invoice instead",
                    extra={**log_context, "customer_id": customer_id},
                )

            invoice = cls._create_finalized_invoice(schedule, adapter, customer_id, charge_now, now)
        except (ConfigurationError, ProcessorError) as e:
            return cls.handle_exception(e, "create_invoice_for_schedule", logging.WARNING)

        # Move to processing before paying so a failure is recorded from processing
        schedule = cls._persist_processing(schedule, invoice.id, invoice.payment_intent_id)
        if schedule is None:
            return ServiceResult.failure(
                "This payment is no longer awaiting collection",
                error_code="SCHEDULE_NOT_INVOICEABLE",
            )

        if charge_now:
            try:
                invoice = adapter.pay_invoice(invoice.id, payment_method_id)
            except DeclinedError as e:
                SettlementReconciler.mark_failed(schedule, e.message, now=now)
                return cls.handle_exception(e, "pay_invoice", logging.WARNING)
            except ProcessorError as e:
                # Stripe keeps retrying the finalized invoice; webhooks settle it
                return cls.handle_exception(e, "pay_invoice", logging.WARNING)

        paid = cls._settle_if_paid(schedule, invoice)

        logger.info(
            "Invoice created for schedule",
            extra={
                **log_context,
                "invoice_id": invoice.id,
                "charged_now": charge_now,
                "paid": paid,
            },
        )
        return ServiceResult.success(
            InvoiceCreationResult(
                schedule=schedule,
                invoice_id=invoice.id,
                payment_intent_id=invoice.payment_intent_id,
                customer_id=customer_id,
                charged_now=charge_now,
                paid=paid,
            )
        )

    @classmethod
    def _create_finalized_invoice(
        cls,
        schedule: PaymentSchedule,
        adapter: StripeAdapter,
        customer_id: str,
        charge_now: bool,
        now: datetime,
    ) -> InvoiceResult:
        if charge_now:
            collection_method, due_date = "charge_automatically", None
        else:
            collection_method = "send_invoice"
            # Stripe requires a due date in the future
            due_date = max(schedule.scheduled_date, now + timedelta(days=1))

        invoice = adapter.create_invoice(
            customer_id=customer_id,
            collection_method=collection_method,
            due_date=due_date,
            metadata=cls._metadata(schedule),
            description=cls._description(schedule),
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_invoice", schedule.id, attempt=schedule.version
            ),
        )
        # A retry at the same version gets the same draft back; the item key
        # keeps it at one line
        adapter.attach_invoice_item(
            invoice_id=invoice.id,
            customer_id=customer_id,
            amount=schedule.amount,
            currency=schedule.currency,
            description=cls._description(schedule),
            metadata=cls._metadata(schedule),
            idempotency_key=IdempotencyKeyGenerator.generate(
                "attach_invoice_item", schedule.id, attempt=schedule.version
            ),
        )
        try:
            return adapter.finalize_invoice(invoice.id)
        except ProcessorRequestError:
            # An earlier attempt may have finalized it before failing
            current = adapter.retrieve_invoice(invoice.id)
            if current.status == "draft":
                raise
            return current

    @classmethod
    def _release_checkout_intent(
        cls, schedule: PaymentSchedule, adapter: StripeAdapter
    ) -> ServiceResult[InvoiceCreationResult] | None:
        """
        Retire the learner's checkout intent before the row is invoiced.

        Returns a failure when the checkout already collected (or is still
        collecting) the payment; None once the intent can no longer be
        confirmed and the row may be invoiced.
        """
        intent_id = schedule.stripe_payment_intent_id
        try:
            intent = adapter.retrieve_payment_intent(intent_id)
        except ProcessorRequestError:
            intent = None

        if intent is not None and intent.status == "succeeded":
            SettlementReconciler.mark_paid(schedule, payment_intent_id=intent.id)
            return ServiceResult.failure(
                "This payment has already been made",
                error_code="SCHEDULE_ALREADY_PAID",
                details={"schedule_id": str(schedule.id), "payment_intent_id": intent.id},
            )
        if intent is not None and intent.status == "processing":
            return ServiceResult.failure(
                "A checkout payment for this row is still processing",
                error_code="SCHEDULE_NOT_INVOICEABLE",
                details={"schedule_id": str(schedule.id), "payment_intent_id": intent.id},
            )
        if intent is not None and intent.is_reusable:
            adapter.cancel_payment_intent(intent.id)

        PaymentSchedule.objects.filter(pk=schedule.pk, stripe_payment_intent_id=intent_id).update(
            stripe_payment_intent_id=None, updated_at=timezone.now()
        )
        schedule.stripe_payment_intent_id = None
        logger.info(
            "Checkout intent retired before invoicing",
            extra={"schedule_id": str(schedule.id), "payment_intent_id": intent_id},
        )
        return None

    @staticmethod
    def _cancel_intent_best_effort(schedule: PaymentSchedule, adapter: StripeAdapter, intent_id: str) -> None:
        try:
            adapter.cancel_payment_intent(intent_id)
        except ProcessorError as e:
            logger.warning(
                "Could not cancel stale payment intent",
                extra={"schedule_id": str(schedule.id), "payment_intent_id": intent_id, "error": e.message},
            )

    @classmethod
    def _retry_existing_invoice(
        cls,
        schedule: PaymentSchedule,
        adapter: StripeAdapter,
        customer_id: str,
        payment_method_id: str | None,
    ) -> ServiceResult[InvoiceCreationResult] | None:
        """
        Pay the row's existing open invoice again.

        Returns None when the invoice is closed and a new one is needed.
        """
        invoice = adapter.retrieve_invoice(schedule.stripe_invoice_id)

        if invoice.status in CLOSED_INVOICE_STATUSES:
            logger.info(
                "Existing invoice closed, creating a new one",
                extra={"schedule_id": str(schedule.id), "invoice_id": invoice.id},
            )
            return None

        if not invoice.is_paid:
            if payment_method_id is None:
                payment_method_id = resolve_payment_method(customer_id, adapter)
            processing = cls._persist_processing(schedule, invoice.id, invoice.payment_intent_id)
            if processing is None:
                return ServiceResult.failure(
                    "This payment is no longer awaiting collection",
                    error_code="SCHEDULE_NOT_INVOICEABLE",
                )
            schedule = processing
            try:
                invoice = adapter.pay_invoice(invoice.id, payment_method_id)
            except DeclinedError as e:
                SettlementReconciler.mark_failed(schedule, e.message)
                return cls.handle_exception(e, "retry pay_invoice", logging.WARNING)

        paid = cls._settle_if_paid(schedule, invoice)
        return ServiceResult.success(
            InvoiceCreationResult(
                schedule=schedule,
                invoice_id=invoice.id,
                payment_intent_id=invoice.payment_intent_id,
                customer_id=customer_id,
                charged_now=True,
                paid=paid,
            )
        )

    @classmethod
    def _charge_without_customer(
        cls, schedule: PaymentSchedule, adapter: StripeAdapter
    ) -> ServiceResult[InvoiceCreationResult]:
        """Fallback for learners without a resolvable customer."""
        intent = adapter.create_payment_intent(
            amount=schedule.amount,
            currency=schedule.currency,
            metadata=cls._metadata(schedule),
            description=cls._description(schedule),
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_payment_intent", schedule.id, attempt=schedule.version
            ),
        )
        processing = cls._persist_processing(schedule, None, intent.id)
        if processing is None:
            return ServiceResult.failure(
                "This payment is no longer awaiting collection",
                error_code="SCHEDULE_NOT_INVOICEABLE",
            )

        logger.warning(
            "Charging schedule through a customer-less PaymentIntent",
            extra={"schedule_id": str(schedule.id), "payment_intent_id": intent.id},
        )
        return ServiceResult.success(
            InvoiceCreationResult(schedule=processing, payment_intent_id=intent.id)
        )

    @classmethod
    def _persist_processing(
        cls,
        schedule: PaymentSchedule,
        invoice_id: str | None,
        payment_intent_id: str | None,
    ) -> PaymentSchedule | None:
        """Store processor references and move the row to processing."""
        try:
            with transaction.atomic():
                locked = PaymentSchedule.objects.select_for_update().get(pk=schedule.pk)
                if invoice_id:
                    locked.stripe_invoice_id = invoice_id
                if payment_intent_id:
                    locked.stripe_payment_intent_id = payment_intent_id
                locked.apply_transition("start_processing")
                locked.save()
                return locked
        except InvalidStateTransitionError:
            logger.warning(
                "Schedule changed state during invoicing",
                extra={"schedule_id": str(schedule.id), "invoice_id": invoice_id},
            )
            return None

    @classmethod
    def _settle_if_paid(cls, schedule: PaymentSchedule, invoice: InvoiceResult) -> bool:
        if not invoice.is_paid:
            return False
        SettlementReconciler.mark_paid(
            schedule,
            payment_intent_id=invoice.payment_intent_id,
            invoice_id=invoice.id,
        )
        return True

    # =========================================================================
    # Batch Sweep
    # =========================================================================

    @classmethod
    def get_sweep_queryset(
        cls,
        days_ahead: int,
        tenant_id: uuid.UUID | str | None = None,
        now: datetime | None = None,
    ):
        """
        Rows the sweep should collect.

        Pending and adjusted rows without an invoice, plus failed rows whose
        next retry is due. Rows of cancelled enrollments or inactive tenants
        are left alone.
        """
        now = now or timezone.now()
        horizon = now + timedelta(days=days_ahead)

        fresh = Q(
            status__in=[ScheduleStatus.PENDING, ScheduleStatus.ADJUSTED],
            stripe_invoice_id__isnull=True,
        ) & (Q(next_retry_date__isnull=True) | Q(next_retry_date__lte=now))
        retry_due = Q(status=ScheduleStatus.FAILED, next_retry_date__lte=now)

        queryset = (
            PaymentSchedule.objects.filter(fresh | retry_due, scheduled_date__lte=horizon)
            .exclude(enrollment__status=EnrollmentStatus.CANCELLED)
            .filter(tenant__is_active=True)
            .order_by("scheduled_date", "payment_number")
        )
        if tenant_id is not None:
            queryset = queryset.filter(tenant_id=tenant_id)
        return queryset

    @classmethod
    def sweep_upcoming(
        cls,
        days_ahead: int | None = None,
        tenant_id: uuid.UUID | str | None = None,
        now: datetime | None = None,
    ) -> SweepReport:
        """
        Invoice every row due within `days_ahead` days.

        Rows are processed sequentially with BILLING_SWEEP_INTER_CALL_DELAY_MS
        between them; one row's failure never stops the batch.
        """
        now = now or timezone.now()
        if days_ahead is None:
            days_ahead = settings.BILLING_SWEEP_DAYS_AHEAD
        delay_seconds = settings.BILLING_SWEEP_INTER_CALL_DELAY_MS / 1000

        schedule_ids = list(
            cls.get_sweep_queryset(days_ahead, tenant_id=tenant_id, now=now).values_list("id", flat=True)
        )
        report = SweepReport()

        logger.info(
            "Starting schedule sweep",
            extra={
                "days_ahead": days_ahead,
                "tenant_id": str(tenant_id) if tenant_id else None,
                "candidates": len(schedule_ids),
            },
        )

        for index, schedule_id in enumerate(schedule_ids):
            if index and delay_seconds > 0:
                time.sleep(delay_seconds)

            try:
                result = cls.create_invoice_for_schedule(schedule_id, now=now)
            except Exception as e:
                logger.exception(
                    "Unexpected error invoicing schedule",
                    extra={"schedule_id": str(schedule_id)},
                )
                report.failed += 1
                report.errors.append(
                    {
                        "schedule_id": str(schedule_id),
                        "error": str(e),
                        "error_code": e.__class__.__name__.upper(),
                        "retryable": is_retryable_processor_error(e),
                    }
                )
                continue

            if result.success:
                report.created += 1
            elif result.error_code in SKIP_ERROR_CODES:
                report.skipped += 1
            else:
                report.failed += 1
                report.errors.append(
                    {
                        "schedule_id": str(schedule_id),
                        "error": result.error,
                        "error_code": result.error_code,
                        "retryable": result.error_code in RETRYABLE_ERROR_CODES,
                    }
                )

        logger.info("Schedule sweep completed", extra=report.to_dict())
        return report

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _load(schedule_id) -> PaymentSchedule | None:
        return (
            PaymentSchedule.objects.select_related("enrollment", "enrollment__user", "tenant")
            .filter(pk=schedule_id)
            .first()
        )

    @staticmethod
    def _reject_unpayable(schedule: PaymentSchedule, invoicing: bool = False) -> ServiceResult | None:
        if schedule.status in (ScheduleStatus.PAID, ScheduleStatus.REFUNDED):
            return ServiceResult.failure(
                "This payment has already been made",
                error_code="SCHEDULE_ALREADY_PAID",
                details={"schedule_id": str(schedule.id), "status": schedule.status},
            )
        blocked = [ScheduleStatus.PAUSED]
        if invoicing:
            blocked.append(ScheduleStatus.PROCESSING)
        if schedule.status in blocked:
            return ServiceResult.failure(
                f"Payment cannot be collected while '{schedule.status}'",
                error_code="SCHEDULE_NOT_INVOICEABLE",
                details={"schedule_id": str(schedule.id), "status": schedule.status},
            )
        return None

    @staticmethod
    def _metadata(schedule: PaymentSchedule) -> dict[str, str]:
        return {
            "tenant_id": str(schedule.tenant_id),
            "schedule_id": str(schedule.id),
            "enrollment_id": str(schedule.enrollment_id),
            "payment_number": str(schedule.payment_number),
        }

    @staticmethod
    def _description(schedule: PaymentSchedule) -> str:
        return f"{schedule.get_payment_type_display()} #{schedule.payment_number}"

