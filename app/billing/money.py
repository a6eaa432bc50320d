"""
Money helpers for currency-aware decimal arithmetic.

Internally every amount is a Decimal in major currency units, rounded
half-up to the currency's minor unit. Only the Stripe adapter converts
to and from integer minor units.

Usage:
    from billing.money import quantize_amount

    quantize_amount(Decimal("33.335"), "usd")  # Decimal("33.34")
    quantize_amount(Decimal("1000.5"), "jpy")  # Decimal("1001")
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from core.exceptions import ValidationError

# Currencies Stripe treats as having no minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)

_CURRENCY_PATTERN = re.compile(r"^[A-Za-z]{3}$")


def normalize_currency(currency: str | None) -> str:
    """
    Validate a 3-letter ISO 4217 code and return it lowercased.

    Raises:
        ValidationError: If the code is missing or malformed
    """
    if not currency or not _CURRENCY_PATTERN.match(currency):
        raise ValidationError(
            f"Currency must be a 3-letter ISO code, got {currency!r}",
            error_code="INVALID_CURRENCY",
            details={"currency": currency},
        )
    return currency.lower()


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places in the currency's minor unit."""
    code = currency.lower()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    return 2


def quantum_for(currency: str) -> Decimal:
    """Smallest representable amount, e.g. Decimal('0.01') for USD."""
    return Decimal(1).scaleb(-minor_unit_exponent(currency))


def quantize_amount(amount: Decimal | int | str, currency: str) -> Decimal:
    """Round half-up to the currency's minor unit."""
    return Decimal(str(amount)).quantize(quantum_for(currency), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal | int | str, currency: str) -> int:
    """Convert a major-unit amount to integer minor units (e.g. cents)."""
    exponent = minor_unit_exponent(currency)
    return int(quantize_amount(amount, currency).scaleb(exponent))


def from_minor_units(amount: int | None, currency: str) -> Decimal:
    """Convert integer minor units back to a quantized major-unit Decimal."""
    exponent = minor_unit_exponent(currency)
    return quantize_amount(Decimal(amount or 0).scaleb(-exponent), currency)
