"""
State and choice enums for billing models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PaymentSchedule Status (django-fsm, stored):
    pending → processing → paid | failed
    failed → pending (admin retry) | processing (sweep retry)
    pending/failed/adjusted → adjusted → pending (admin override)
    pending/failed/adjusted → paused → pending
    paid → refunded (cumulative refunds reach the face amount)

    "overdue" is never stored: see billing.services.access_gate.is_overdue.

Enrollment Payment Status (derived from schedule rows):
    pending → partial → paid
"""

from django.db import models


class ScheduleStatus(models.TextChoices):
    """
    Stored states for a PaymentSchedule row.

    Terminal state: REFUNDED. PAID leaves only through refunds.
    A partial refund keeps the row PAID and records refunded_amount.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    ADJUSTED = "adjusted", "Adjusted"
    PAUSED = "paused", "Paused"


# Rows the daily sweep may invoice
INVOICEABLE_STATUSES = (
    ScheduleStatus.PENDING,
    ScheduleStatus.FAILED,
    ScheduleStatus.ADJUSTED,
)

# Rows that count towards "overdue" once past due plus grace
OVERDUE_ELIGIBLE_STATUSES = (
    ScheduleStatus.PENDING,
    ScheduleStatus.FAILED,
)

# Rows still owed (used for next_payment_date)
OPEN_STATUSES = (
    ScheduleStatus.PENDING,
    ScheduleStatus.PROCESSING,
    ScheduleStatus.FAILED,
    ScheduleStatus.ADJUSTED,
)


class PaymentType(models.TextChoices):
    """Kind of payment a schedule row represents."""

    DEPOSIT = "deposit", "Deposit"
    INSTALLMENT = "installment", "Installment"
    ONE_TIME = "one_time", "One Time"
    SUBSCRIPTION_CYCLE = "subscription_cycle", "Subscription Cycle"


class EnrollmentStatus(models.TextChoices):
    """Enrollment lifecycle, owned by the enrollment workflow."""

    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class EnrollmentPaymentStatus(models.TextChoices):
    """Aggregate payment health, recomputed from schedule rows."""

    PENDING = "pending", "Pending"
    PARTIAL = "partial", "Partial"
    PAID = "paid", "Paid"


class LedgerPaymentStatus(models.TextChoices):
    """Status of a ledger mirror Payment record."""

    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"


class PaymentModelType(models.TextChoices):
    """Payment model a plan generates schedules with."""

    ONE_TIME = "one_time", "One Time"
    FREE = "free", "Free"
    DEPOSIT_THEN_PLAN = "deposit_then_plan", "Deposit Then Plan"
    SUBSCRIPTION = "subscription", "Subscription"


class DepositType(models.TextChoices):
    """How a plan's deposit is computed."""

    NONE = "none", "No Deposit"
    FIXED = "fixed", "Fixed Amount"
    PERCENTAGE = "percentage", "Percentage"


class InstallmentFrequency(models.TextChoices):
    """Spacing between installment due dates."""

    WEEKLY = "weekly", "Weekly"
    BIWEEKLY = "biweekly", "Biweekly"
    MONTHLY = "monthly", "Monthly"
    CUSTOM = "custom", "Custom"


class SubscriptionInterval(models.TextChoices):
    """Billing interval of a subscription plan."""

    WEEKLY = "weekly", "Weekly"
    MONTHLY = "monthly", "Monthly"
    QUARTERLY = "quarterly", "Quarterly"
    ANNUALLY = "annually", "Annually"


class ProductType(models.TextChoices):
    """What a product grants access to."""

    COURSE = "course", "Course"
    PROGRAM = "program", "Program"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for stored Stripe webhook events.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
