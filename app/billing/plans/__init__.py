"""
Payment plan models and schedule generation.

Usage:
    from billing.plans import OneTimeModel, build_schedule

    items = build_schedule(Decimal("250.00"), "usd", OneTimeModel())

Plan selection for products lives in billing.plans.detection.
"""

from billing.plans.builder import build_schedule, split_evenly
from billing.plans.types import (
    DepositThenPlanModel,
    FreeModel,
    OneTimeModel,
    PaymentModel,
    ScheduleLineItem,
    SubscriptionModel,
)

__all__ = [
    "DepositThenPlanModel",
    "FreeModel",
    "OneTimeModel",
    "PaymentModel",
    "ScheduleLineItem",
    "SubscriptionModel",
    "build_schedule",
    "split_evenly",
]
