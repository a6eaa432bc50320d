"""
Payment model: ledger mirror of settled charges.

One Payment is recorded per settled schedule charge, keyed by the Stripe
PaymentIntent (or invoice when no intent is known). It mirrors refund
state at the ledger level, where partial refunds show up as
partially_refunded while the schedule row itself stays paid.

Writes to this table are best-effort: a failure here is logged and never
aborts a settlement or refund.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

from billing.state_machines import LedgerPaymentStatus


class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A settled charge for one schedule row.

    Fields:
        tenant/enrollment/payment_schedule: Ownership
        stripe_payment_intent_id/stripe_invoice_id: Processor references
        amount/currency: Amount collected (major units)
        status: succeeded, failed, refunded or partially_refunded
        refunded_amount/refunded_at/refund_reason: Cumulative refunds
        paid_at: When the charge settled
    """

    tenant = models.ForeignKey(
        "billing.Tenant",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Tenant the payment belongs to",
    )

    enrollment = models.ForeignKey(
        "billing.Enrollment",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Enrollment the payment belongs to",
    )

    payment_schedule = models.ForeignKey(
        "billing.PaymentSchedule",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Schedule row settled by this payment",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    stripe_invoice_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Invoice ID (in_xxx)",
    )

    # ==========================================================================
    # Amount & Status
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount collected (major currency units)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    payment_type = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Payment type copied from the schedule row",
    )

    status = models.CharField(
        max_length=20,
        choices=LedgerPaymentStatus.choices,
        default=LedgerPaymentStatus.SUCCEEDED,
        db_index=True,
        help_text="Ledger status",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the charge settled",
    )

    # ==========================================================================
    # Refunds
    # ==========================================================================

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

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["enrollment", "status"], name="billing_pay_enrollm_a4d8e2_idx"),
            models.Index(fields=["payment_schedule", "status"], name="billing_pay_payment_07c5b9_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    def apply_refund(self, refunded_total: Decimal, reason: str | None, refund_id: str | None, at) -> None:
        """
        Mirror the cumulative refund total onto the ledger record.

        Note: Does not save - caller must save after calling.
        """
        self.refunded_amount = min(refunded_total, self.amount)
        self.status = (
            LedgerPaymentStatus.REFUNDED
            if self.refunded_amount >= self.amount
            else LedgerPaymentStatus.PARTIALLY_REFUNDED
        )
        self.refunded_at = at
        if reason:
            self.refund_reason = reason
        if refund_id:
            self.metadata = {**(self.metadata or {}), "refund_id": refund_id}
