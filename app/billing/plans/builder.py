"""
Schedule generation for payment plans.

build_schedule() is a pure function: it turns a total amount, a currency
and a PaymentModel into the ordered list of line items persisted as
PaymentSchedule rows at enrollment time.

Guarantees:
    - Amounts are quantized half-up to the currency's minor unit
    - Line items sum exactly to the total (the last installment absorbs
      the rounding remainder)
    - Monthly spacing uses calendar months, anchored on the start date so
      day-of-month drift does not accumulate

Usage:
    from decimal import Decimal
    from billing.plans import DepositThenPlanModel, build_schedule

    items = build_schedule(
        Decimal("1000.00"),
        "usd",
        DepositThenPlanModel(
            deposit_type="percentage",
            deposit_percentage=Decimal("20"),
            installments=4,
            frequency="monthly",
        ),
    )
    # 5 items of 200.00, due today and +1..+4 months
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import assert_never

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from core.exceptions import ValidationError

from billing.money import normalize_currency, quantize_amount
from billing.plans.types import (
    DepositThenPlanModel,
    FreeModel,
    OneTimeModel,
    PaymentModel,
    ScheduleLineItem,
    SubscriptionModel,
)
from billing.state_machines import (
    DepositType,
    InstallmentFrequency,
    PaymentType,
    SubscriptionInterval,
)


def build_schedule(
    total_amount: Decimal | int | str,
    currency: str,
    payment_model: PaymentModel,
    start_date: datetime | None = None,
    expected_currency: str | None = None,
) -> list[ScheduleLineItem]:
    """
    Build the deterministic list of due payments for a payment model.

    Args:
        total_amount: Amount to collect in major units
        currency: 3-letter ISO currency code
        payment_model: One PaymentModel variant with its configuration
        start_date: Day-0 due date (defaults to now)
        expected_currency: Enrollment currency the schedule must match

    Returns:
        Line items ordered by payment_number

    Raises:
        ValidationError: On bad totals, currencies or plan parameters
    """
    code = normalize_currency(currency)
    if expected_currency is not None and normalize_currency(expected_currency) != code:
        raise ValidationError(
            f"Schedule currency {code.upper()} does not match enrollment "
            f"currency {expected_currency.upper()}",
            error_code="CURRENCY_MISMATCH",
        )

    total = quantize_amount(total_amount, code)
    start = start_date or timezone.now()

    if isinstance(payment_model, FreeModel):
        return [_item(1, PaymentType.ONE_TIME, Decimal(0), code, start)]

    if total <= 0:
        raise ValidationError(
            "Total amount must be positive for a paid payment model",
            error_code="INVALID_TOTAL_AMOUNT",
            details={"total_amount": str(total)},
        )

    if isinstance(payment_model, OneTimeModel):
        return [_item(1, PaymentType.ONE_TIME, total, code, start)]
    if isinstance(payment_model, DepositThenPlanModel):
        return _build_deposit_then_plan(total, code, payment_model, start)
    if isinstance(payment_model, SubscriptionModel):
        return _build_subscription(total, code, payment_model, start)
    assert_never(payment_model)


# =============================================================================
# Variants
# =============================================================================


def _build_deposit_then_plan(
    total: Decimal,
    currency: str,
    model: DepositThenPlanModel,
    start: datetime,
) -> list[ScheduleLineItem]:
    deposit = compute_deposit(total, currency, model)
    if deposit < 0:
        raise ValidationError(
            "Deposit cannot be negative",
            error_code="INVALID_DEPOSIT",
            details={"deposit": str(deposit)},
        )
    if deposit >= total:
        raise ValidationError(
            "Deposit must be less than the total amount",
            error_code="DEPOSIT_EXCEEDS_TOTAL",
            details={"deposit": str(deposit), "total_amount": str(total)},
        )

    items: list[ScheduleLineItem] = []
    if deposit > 0:
        items.append(_item(1, PaymentType.DEPOSIT, deposit, currency, start))

    amounts = split_evenly(total - deposit, model.installments, currency)
    # Installments follow the deposit by one period; without a deposit the
    # first installment is due on day 0
    offset = 1 if deposit > 0 else 0
    for index, amount in enumerate(amounts):
        due = advance(start, model.frequency, index + offset, model.custom_frequency_days)
        items.append(
            _item(len(items) + 1, PaymentType.INSTALLMENT, amount, currency, due)
        )
    return items


def _build_subscription(
    total: Decimal,
    currency: str,
    model: SubscriptionModel,
    start: datetime,
) -> list[ScheduleLineItem]:
    first_charge = start + timedelta(days=model.trial_days)
    amounts = split_evenly(total, model.billing_cycles, currency)
    return [
        _item(
            index + 1,
            PaymentType.SUBSCRIPTION_CYCLE,
            amount,
            currency,
            advance(first_charge, model.interval, index),
        )
        for index, amount in enumerate(amounts)
    ]


# =============================================================================
# Helpers
# =============================================================================


def compute_deposit(total: Decimal, currency: str, model: DepositThenPlanModel) -> Decimal:
    """Deposit in major units, rounded to the currency's minor unit."""
    if model.deposit_type == DepositType.FIXED:
        return quantize_amount(model.deposit_amount, currency)
    if model.deposit_type == DepositType.PERCENTAGE:
        return quantize_amount(
            total * Decimal(str(model.deposit_percentage)) / Decimal(100), currency
        )
    return Decimal(0)


def split_evenly(amount: Decimal, parts: int, currency: str) -> list[Decimal]:
    """
    Split an amount into equal parts; the last part absorbs the remainder.

    Raises:
        ValidationError: If any part would be zero or negative
    """
    share = quantize_amount(amount / parts, currency)
    shares = [share] * (parts - 1)
    shares.append(amount - share * (parts - 1))
    if any(value <= 0 for value in shares):
        raise ValidationError(
            f"Amount {amount} is too small to split into {parts} payments",
            error_code="AMOUNT_TOO_SMALL_FOR_SPLIT",
            details={"amount": str(amount), "parts": parts},
        )
    return shares


def advance(
    start: datetime,
    frequency: str,
    periods: int,
    custom_days: int | None = None,
) -> datetime:
    """
    Due date `periods` periods after `start`.

    Always computed from the anchor, so Jan 31 + 1 month is Feb 28/29 and
    + 2 months is Mar 31.
    """
    if frequency == InstallmentFrequency.WEEKLY:
        return start + timedelta(weeks=periods)
    if frequency == InstallmentFrequency.BIWEEKLY:
        return start + timedelta(weeks=2 * periods)
    if frequency == InstallmentFrequency.CUSTOM:
        return start + timedelta(days=(custom_days or 0) * periods)
    if frequency == SubscriptionInterval.QUARTERLY:
        return start + relativedelta(months=3 * periods)
    if frequency == SubscriptionInterval.ANNUALLY:
        return start + relativedelta(years=periods)
    # monthly for both installments and subscriptions
    return start + relativedelta(months=periods)


def _item(
    number: int, payment_type: str, amount: Decimal, currency: str, due: datetime
) -> ScheduleLineItem:
    return ScheduleLineItem(
        payment_number=number,
        payment_type=payment_type,
        amount=amount,
        currency=currency,
        due_date=due,
    )
