"""
Data types for payment plan schedule generation.

PaymentModel is a tagged union: one frozen dataclass per payment model.
build_schedule() in billing.plans.builder handles every variant; adding a
variant without handling it there fails type checking through
typing.assert_never.

Types:
    OneTimeModel: Full amount due immediately
    FreeModel: Nothing to collect
    DepositThenPlanModel: Optional deposit followed by equal installments
    SubscriptionModel: One charge per billing cycle
    ScheduleLineItem: One generated due payment

Usage:
    from decimal import Decimal
    from billing.plans.types import DepositThenPlanModel

    model = DepositThenPlanModel(
        deposit_type=DepositType.PERCENTAGE,
        deposit_percentage=Decimal("20"),
        installments=4,
        frequency=InstallmentFrequency.MONTHLY,
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union

from core.exceptions import ValidationError

from billing.state_machines import (
    DepositType,
    InstallmentFrequency,
    PaymentModelType,
    SubscriptionInterval,
)


@dataclass(frozen=True)
class OneTimeModel:
    """Single payment of the full amount, due immediately."""

    kind: str = PaymentModelType.ONE_TIME


@dataclass(frozen=True)
class FreeModel:
    """No payment due; yields a single zero-amount item."""

    kind: str = PaymentModelType.FREE


@dataclass(frozen=True)
class DepositThenPlanModel:
    """
    Deposit (fixed or percentage) followed by equal installments.

    Attributes:
        deposit_type: none, fixed or percentage
        deposit_amount: Fixed deposit in major units
        deposit_percentage: Percentage of the total (0-100)
        installments: Number of installments after the deposit (>= 1)
        frequency: Spacing between due dates
        custom_frequency_days: Days between due dates for custom frequency
    """

    installments: int
    deposit_type: str = DepositType.NONE
    deposit_amount: Decimal | None = None
    deposit_percentage: Decimal | None = None
    frequency: str = InstallmentFrequency.MONTHLY
    custom_frequency_days: int | None = None
    kind: str = PaymentModelType.DEPOSIT_THEN_PLAN

    def __post_init__(self):
        if self.installments is None or self.installments < 1:
            raise ValidationError(
                "Installment count must be at least 1",
                error_code="INVALID_INSTALLMENT_COUNT",
                details={"installments": self.installments},
            )
        if self.deposit_type not in DepositType.values:
            raise ValidationError(
                f"Unknown deposit type: {self.deposit_type}",
                error_code="INVALID_DEPOSIT_TYPE",
            )
        if self.deposit_type == DepositType.FIXED and self.deposit_amount is None:
            raise ValidationError(
                "Fixed deposit requires deposit_amount",
                error_code="INVALID_DEPOSIT",
            )
        if self.deposit_type == DepositType.PERCENTAGE:
            if self.deposit_percentage is None or not (
                Decimal(0) <= Decimal(self.deposit_percentage) <= Decimal(100)
            ):
                raise ValidationError(
                    "Deposit percentage must be between 0 and 100",
                    error_code="INVALID_DEPOSIT",
                    details={"deposit_percentage": str(self.deposit_percentage)},
                )
        if self.frequency not in InstallmentFrequency.values:
            raise ValidationError(
                f"Unknown installment frequency: {self.frequency}",
                error_code="INVALID_FREQUENCY",
            )
        if self.frequency == InstallmentFrequency.CUSTOM and (
            not self.custom_frequency_days or self.custom_frequency_days < 1
        ):
            raise ValidationError(
                "Custom frequency requires a positive custom_frequency_days",
                error_code="INVALID_FREQUENCY",
                details={"custom_frequency_days": self.custom_frequency_days},
            )


@dataclass(frozen=True)
class SubscriptionModel:
    """
    Recurring charge per billing cycle.

    The total is split across billing_cycles (default 1, the first period);
    trial_days delays the first charge.
    """

    interval: str = SubscriptionInterval.MONTHLY
    trial_days: int = 0
    billing_cycles: int = 1
    kind: str = PaymentModelType.SUBSCRIPTION

    def __post_init__(self):
        if self.interval not in SubscriptionInterval.values:
            raise ValidationError(
                f"Unknown subscription interval: {self.interval}",
                error_code="INVALID_FREQUENCY",
            )
        if self.trial_days < 0:
            raise ValidationError(
                "Trial days cannot be negative",
                error_code="INVALID_TRIAL",
            )
        if self.billing_cycles < 1:
            raise ValidationError(
                "Billing cycles must be at least 1",
                error_code="INVALID_BILLING_CYCLES",
            )


PaymentModel = Union[OneTimeModel, FreeModel, DepositThenPlanModel, SubscriptionModel]


@dataclass(frozen=True)
class ScheduleLineItem:
    """
    One generated due payment, ready to persist as a PaymentSchedule row.

    Attributes:
        payment_number: 1-based sequence within the enrollment
        payment_type: deposit, installment, one_time or subscription_cycle
        amount: Face amount in major units, quantized to the currency
        currency: Lowercase ISO code
        due_date: When the payment is due
    """

    payment_number: int
    payment_type: str
    amount: Decimal
    currency: str
    due_date: datetime

    @property
    def is_chargeable(self) -> bool:
        return self.amount > 0


__all__ = [
    "DepositThenPlanModel",
    "FreeModel",
    "OneTimeModel",
    "PaymentModel",
    "ScheduleLineItem",
    "SubscriptionModel",
]
