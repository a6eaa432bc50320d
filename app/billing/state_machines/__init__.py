"""
State machine enums and choice sets for billing models.
"""

from billing.state_machines.states import (
    INVOICEABLE_STATUSES,
    OPEN_STATUSES,
    OVERDUE_ELIGIBLE_STATUSES,
    DepositType,
    EnrollmentPaymentStatus,
    EnrollmentStatus,
    InstallmentFrequency,
    LedgerPaymentStatus,
    PaymentModelType,
    PaymentType,
    ProductType,
    ScheduleStatus,
    SubscriptionInterval,
    WebhookEventStatus,
)

__all__ = [
    "INVOICEABLE_STATUSES",
    "OPEN_STATUSES",
    "OVERDUE_ELIGIBLE_STATUSES",
    "DepositType",
    "EnrollmentPaymentStatus",
    "EnrollmentStatus",
    "InstallmentFrequency",
    "LedgerPaymentStatus",
    "PaymentModelType",
    "PaymentType",
    "ProductType",
    "ScheduleStatus",
    "SubscriptionInterval",
    "WebhookEventStatus",
]
