"""
Periodic reconciliation against the processor's records.

Webhooks can be lost and refunds can be issued straight from the Stripe
dashboard. This job re-reads what Stripe knows about recently touched
enrollments and converges local state onto it:

- Processing rows whose invoice is already paid upstream are settled
- Paid rows whose upstream refund total exceeds the local one get the
  difference applied
- The cached Enrollment.paid_amount is re-verified against the rows

Runs daily through billing.tasks.reconcile_processor_ledger.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.utils import timezone

from core.services import BaseService

from billing.adapters import StripeAdapter
from billing.exceptions import ConfigurationError, ProcessorError
from billing.models import Enrollment, PaymentSchedule
from billing.services.settlement_reconciler import SettlementReconciler
from billing.state_machines import ScheduleStatus

logger = logging.getLogger(__name__)

# Refund statuses that count toward the upstream refunded total
COUNTED_REFUND_STATUSES = frozenset({"succeeded", "pending"})


@dataclass
class ReconciliationReport:
    """What one reconciliation pass changed."""

    enrollments_checked: int = 0
    rows_checked: int = 0
    settlements_applied: int = 0
    refunds_applied: int = 0
    paid_amounts_corrected: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def merge(self, other: ReconciliationReport) -> None:
        self.enrollments_checked += other.enrollments_checked
        self.rows_checked += other.rows_checked
        self.settlements_applied += other.settlements_applied
        self.refunds_applied += other.refunds_applied
        self.paid_amounts_corrected += other.paid_amounts_corrected
        self.errors.extend(other.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enrollments_checked": self.enrollments_checked,
            "rows_checked": self.rows_checked,
            "settlements_applied": self.settlements_applied,
            "refunds_applied": self.refunds_applied,
            "paid_amounts_corrected": self.paid_amounts_corrected,
            "errors": self.errors,
        }


class ProcessorLedgerReconciler(BaseService):
    """Converges schedule rows onto Stripe's view of invoices and refunds."""

    @classmethod
    def reconcile_enrollment(
        cls, enrollment: Enrollment, adapter: StripeAdapter | None = None
    ) -> ReconciliationReport:
        adapter = adapter or StripeAdapter.for_tenant(enrollment.tenant_id)
        report = ReconciliationReport(enrollments_checked=1)

        rows = PaymentSchedule.objects.filter(
            enrollment=enrollment,
            status__in=[ScheduleStatus.PROCESSING, ScheduleStatus.PAID],
        ).order_by("payment_number")

        for row in rows:
            report.rows_checked += 1
            try:
                if row.status == ScheduleStatus.PROCESSING:
                    report.settlements_applied += cls._settle_paid_invoice(row, adapter)
                else:
                    report.refunds_applied += cls._apply_upstream_refunds(row, adapter)
            except ProcessorError as e:
                logger.warning(
                    "Could not reconcile schedule with Stripe",
                    extra={"schedule_id": str(row.id), "error": e.message},
                )
                report.errors.append(
                    {"schedule_id": str(row.id), "error": e.message, "error_code": e.error_code}
                )

        cached = Enrollment.objects.only("paid_amount").get(pk=enrollment.pk).paid_amount
        recomputed = SettlementReconciler.recompute_paid_amount(enrollment.pk)
        if recomputed.paid_amount != cached:
            report.paid_amounts_corrected += 1
            logger.warning(
                "Corrected drifted enrollment paid amount",
                extra={
                    "enrollment_id": str(enrollment.pk),
                    "cached": str(cached),
                    "recomputed": str(recomputed.paid_amount),
                },
            )
        return report

    @classmethod
    def reconcile_recent(
        cls,
        tenant_id: uuid.UUID | str | None = None,
        lookback_days: int | None = None,
    ) -> ReconciliationReport:
        """Reconcile enrollments with schedule activity in the lookback window."""
        if lookback_days is None:
            lookback_days = settings.BILLING_RECONCILIATION_LOOKBACK_DAYS
        since = timezone.now() - timedelta(days=lookback_days)

        enrollments = (
            Enrollment.objects.filter(
                payment_schedules__updated_at__gte=since,
                payment_schedules__status__in=[ScheduleStatus.PROCESSING, ScheduleStatus.PAID],
                tenant__is_active=True,
            )
            .distinct()
            .order_by("tenant_id", "created_at")
        )
        if tenant_id is not None:
            enrollments = enrollments.filter(tenant_id=tenant_id)

        report = ReconciliationReport()
        adapters: dict[Any, StripeAdapter | None] = {}

        for enrollment in enrollments:
            if enrollment.tenant_id not in adapters:
                try:
                    adapters[enrollment.tenant_id] = StripeAdapter.for_tenant(enrollment.tenant_id)
                except ConfigurationError as e:
                    logger.error(
                        "Skipping tenant without processor credentials",
                        extra={"tenant_id": str(enrollment.tenant_id), "error": e.message},
                    )
                    adapters[enrollment.tenant_id] = None
            adapter = adapters[enrollment.tenant_id]
            if adapter is None:
                continue

            try:
                report.merge(cls.reconcile_enrollment(enrollment, adapter))
            except Exception as e:
                logger.exception(
                    "Enrollment reconciliation failed",
                    extra={"enrollment_id": str(enrollment.id)},
                )
                report.errors.append({"enrollment_id": str(enrollment.id), "error": str(e)})

        logger.info("Processor ledger reconciliation completed", extra=report.to_dict())
        return report

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _settle_paid_invoice(row: PaymentSchedule, adapter: StripeAdapter) -> int:
        if row.stripe_invoice_id:
            invoice = adapter.retrieve_invoice(row.stripe_invoice_id)
            if not invoice.is_paid:
                return 0
            result = SettlementReconciler.mark_paid(
                row, payment_intent_id=invoice.payment_intent_id, invoice_id=invoice.id
            )
        elif row.stripe_payment_intent_id:
            intent = adapter.retrieve_payment_intent(row.stripe_payment_intent_id)
            if intent.status != "succeeded":
                return 0
            result = SettlementReconciler.mark_paid(row, payment_intent_id=intent.id)
        else:
            return 0
        return 1 if result.success else 0

    @staticmethod
    def _apply_upstream_refunds(row: PaymentSchedule, adapter: StripeAdapter) -> int:
        if not row.stripe_payment_intent_id:
            return 0
        refunds = adapter.list_refunds(row.stripe_payment_intent_id, row.currency)
        upstream_total = sum(
            (refund.amount for refund in refunds if refund.status in COUNTED_REFUND_STATUSES),
            Decimal("0"),
        )
        if upstream_total <= row.refunded_amount:
            return 0
        latest = refunds[0] if refunds else None
        result = SettlementReconciler.apply_external_refund(
            row,
            upstream_total,
            reason="Reconciled from processor",
            refund_id=latest.id if latest else None,
        )
        return 1 if result.success else 0
