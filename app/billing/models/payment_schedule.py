"""
PaymentSchedule model: one row per due payment within an enrollment.

The schedule table is the single source of truth for what is owed, when
and in what state. Rows are created in bulk at enrollment time, mutated
in place by the invoice orchestrator and the settlement reconciler, and
never deleted.

Usage:
    from billing.models import PaymentSchedule

    schedule.start_processing()  # pending -> processing
    schedule.save()

    schedule.mark_paid(paid_at=timezone.now())  # processing -> paid
    schedule.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, TransitionNotAllowed, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from billing.exceptions import InvalidStateTransitionError
from billing.state_machines import INVOICEABLE_STATUSES, PaymentType, ScheduleStatus

INVOICEABLE_SOURCES = list(INVOICEABLE_STATUSES)


class PaymentSchedule(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A single due payment.

    State Flow:
        PENDING -> PROCESSING -> PAID | FAILED
        FAILED -> PROCESSING (sweep retry) | PENDING (admin retry)
        PENDING/FAILED/ADJUSTED -> ADJUSTED -> PENDING (admin override)
        PENDING/FAILED/ADJUSTED -> PAUSED -> PENDING | PAID (late settlement)
        PAID -> REFUNDED (cumulative refunds reach the face amount)

    "Overdue" is derived at read time, never stored.

    Fields:
        enrollment/tenant: Owning enrollment and tenant
        payment_number: 1-based sequence within the enrollment
        payment_type: deposit, installment, one_time, subscription_cycle
        amount/currency: Face amount in major units
        scheduled_date/original_due_date: Current and generated due dates
        status: FSM-managed status
        stripe_invoice_id/stripe_payment_intent_id: Processor references
        paid_date: When the payment settled
        refunded_amount/refunded_at/refund_reason: Cumulative refund state
        retry_count/next_retry_date/last_error: Failure bookkeeping
        paused_*/resumed_at: Admin pause state
        adjustment_history: Audit list of admin changes
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.PROTECT,
        related_name="payment_schedules",
        help_text="Tenant the payment belongs to",
    )

    enrollment = models.ForeignKey(
        "billing.Enrollment",
        on_delete=models.PROTECT,
        related_name="payment_schedules",
        help_text="Enrollment this payment is part of",
    )

    # ==========================================================================
    # Schedule Details
    # ==========================================================================

    payment_number = models.PositiveSmallIntegerField(
        help_text="1-based sequence within the enrollment",
    )

    payment_type = models.CharField(
        max_length=30,
        choices=PaymentType.choices,
        help_text="Deposit, installment, one-time or subscription cycle",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Face amount (major currency units)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase), matches the enrollment",
    )

    scheduled_date = models.DateTimeField(
        db_index=True,
        help_text="When the payment is due",
    )

    original_due_date = models.DateTimeField(
        help_text="Due date as generated, before any adjustment",
    )

    status = FSMField(
        default=ScheduleStatus.PENDING,
        choices=ScheduleStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status (managed by FSM)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_invoice_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    # ==========================================================================
    # Settlement & Refunds
    # ==========================================================================

    paid_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment settled",
    )

    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Cumulative refunded amount (major currency units)",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest refund was issued",
    )

    refund_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Reason given for the latest refund",
    )

    # ==========================================================================
    # Failure Retries
    # ==========================================================================

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of failed collection attempts",
    )

    next_retry_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Earliest time the sweep may retry (null = no further retry)",
    )

    last_error = models.TextField(
        null=True,
        blank=True,
        help_text="Most recent collection error",
    )

    # ==========================================================================
    # Admin Controls
    # ==========================================================================

    paused_at = models.DateTimeField(null=True, blank=True, help_text="When payments were paused")

    paused_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Admin who paused the payment",
    )

    paused_reason = models.TextField(null=True, blank=True, help_text="Why payments were paused")

    resumed_at = models.DateTimeField(null=True, blank=True, help_text="When payments resumed")

    adjustment_history = models.JSONField(
        default=list,
        blank=True,
        help_text="Audit records of admin adjustments, pauses and resumes",
    )

    class Meta:
        ordering = ["enrollment", "payment_number"]
        verbose_name = "Payment Schedule"
        verbose_name_plural = "Payment Schedules"
        indexes = [
            models.Index(fields=["status", "scheduled_date"], name="billing_pay_status_3e7a10_idx"),
            models.Index(fields=["tenant", "status", "scheduled_date"], name="billing_pay_tenant__9f42d6_idx"),
            models.Index(fields=["enrollment", "status"], name="billing_pay_enrollm_61b0c3_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["enrollment", "payment_number"],
                name="unique_payment_number_per_enrollment",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_schedule_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(refunded_amount__gte=0)
                & models.Q(refunded_amount__lte=models.F("amount")),
                name="payment_schedule_refund_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"PaymentSchedule({self.id}, #{self.payment_number}, "
            f"{self.amount} {self.currency.upper()}, {self.status})"
        )

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def refundable_amount(self) -> Decimal:
        """Amount still available to refund."""
        return self.amount - self.refunded_amount

    @property
    def retries_exhausted(self) -> bool:
        """The initial attempt plus BILLING_MAX_PAYMENT_RETRIES retries have failed."""
        return self.retry_count > settings.BILLING_MAX_PAYMENT_RETRIES

    def apply_transition(self, name: str, *args, **kwargs) -> None:
        """
        Run the named FSM transition.

        Raises:
            InvalidStateTransitionError: If not allowed from the current status
        """
        try:
            getattr(self, name)(*args, **kwargs)
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot {name} a payment in status '{self.status}'",
                details={"schedule_id": str(self.id), "status": self.status, "transition": name},
            ) from e

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=INVOICEABLE_SOURCES, target=ScheduleStatus.PROCESSING)
    def start_processing(self):
        """An invoice or charge intent was created for this row."""

    @transition(
        field=status,
        source=[*INVOICEABLE_SOURCES, ScheduleStatus.PROCESSING, ScheduleStatus.PAUSED],
        target=ScheduleStatus.PAID,
    )
    def mark_paid(self, paid_at=None):
        """
        Record settlement.

        Transition: PENDING/PROCESSING/FAILED/ADJUSTED/PAUSED -> PAID

        Paused rows accept settlement because money already moved upstream.
        """
        self.paid_date = paid_at or timezone.now()
        self.last_error = None
        self.next_retry_date = None

    @transition(
        field=status,
        source=[*INVOICEABLE_SOURCES, ScheduleStatus.PROCESSING],
        target=ScheduleStatus.FAILED,
    )
    def mark_failed(self, error_message: str, next_retry_date=None):
        """
        Record a failed collection attempt.

        Transition: PENDING/PROCESSING/FAILED/ADJUSTED -> FAILED
        """
        self.retry_count += 1
        self.last_error = error_message
        self.next_retry_date = next_retry_date

    @transition(field=status, source=ScheduleStatus.FAILED, target=ScheduleStatus.PENDING)
    def requeue(self):
        """Admin retry: clear the failed invoice so the sweep re-invoices."""
        self.stripe_invoice_id = None
        self.next_retry_date = None

    @transition(field=status, source=INVOICEABLE_SOURCES, target=ScheduleStatus.ADJUSTED)
    def adjust(self, record: dict):
        """Admin override of amount or due date."""
        self.adjustment_history = [*(self.adjustment_history or []), record]

    @transition(field=status, source=ScheduleStatus.ADJUSTED, target=ScheduleStatus.PENDING)
    def restore(self):
        """Return an adjusted row to the normal pending flow."""
        self.next_retry_date = None

    @transition(field=status, source=INVOICEABLE_SOURCES, target=ScheduleStatus.PAUSED)
    def pause(self, record: dict, paused_by=None):
        self.paused_at = timezone.now()
        self.paused_by = paused_by
        self.paused_reason = record.get("reason")
        self.adjustment_history = [*(self.adjustment_history or []), record]

    @transition(field=status, source=ScheduleStatus.PAUSED, target=ScheduleStatus.PENDING)
    def resume(self, record: dict):
        self.resumed_at = timezone.now()
        self.adjustment_history = [*(self.adjustment_history or []), record]

    @transition(field=status, source=ScheduleStatus.PAID, target=ScheduleStatus.REFUNDED)
    def refund_full(self):
        """Cumulative refunds reached the face amount."""
