"""
Resolver chains for the processor customer and payment method.

Each chain is an ordered tuple of strategies. A strategy returns a value
or None; the first non-None value wins. Adding a resolution step means
adding a function to the tuple, not another branch in the orchestrator.

Customer chain:
    1. Enrollment's customer reference (verified upstream)
    2. User's customer reference (verified upstream, back-filled onto the enrollment)
    3. New customer created from the user's email
    4. None, with a warning

Payment method chain:
    1. Customer's invoice default payment method
    2. First saved payment method
    3. None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from billing.adapters import IdempotencyKeyGenerator

if TYPE_CHECKING:
    from billing.adapters import StripeAdapter
    from billing.models import Enrollment

logger = logging.getLogger(__name__)

CustomerStrategy = Callable[["Enrollment", "StripeAdapter"], "str | None"]
PaymentMethodStrategy = Callable[[str, "StripeAdapter"], "str | None"]


# =============================================================================
# Customer Strategies
# =============================================================================


def customer_from_enrollment(enrollment: Enrollment, adapter: StripeAdapter) -> str | None:
    customer_id = enrollment.stripe_customer_id
    if customer_id and adapter.retrieve_customer(customer_id) is not None:
        return customer_id
    return None


def customer_from_user(enrollment: Enrollment, adapter: StripeAdapter) -> str | None:
    """Reuse the learner's customer and copy it onto the enrollment."""
    customer_id = enrollment.user.stripe_customer_id
    if not customer_id or adapter.retrieve_customer(customer_id) is None:
        return None

    enrollment.stripe_customer_id = customer_id
    enrollment.save(update_fields=["stripe_customer_id", "updated_at"])
    logger.info(
        "Back-filled enrollment customer from user",
        extra={"enrollment_id": str(enrollment.id), "customer_id": customer_id},
    )
    return customer_id


def customer_from_email(enrollment: Enrollment, adapter: StripeAdapter) -> str | None:
    """Create a customer for the learner's email and cache the reference."""
    user = enrollment.user
    if not user.email:
        return None

    customer = adapter.create_customer(
        email=user.email,
        name=user.get_full_name() or None,
        metadata={
            "tenant_id": str(enrollment.tenant_id),
            "user_id": str(user.pk),
            "enrollment_id": str(enrollment.id),
        },
        idempotency_key=IdempotencyKeyGenerator.generate(
            "create_customer", f"{enrollment.tenant_id}:{user.pk}"
        ),
    )

    enrollment.stripe_customer_id = customer.id
    enrollment.save(update_fields=["stripe_customer_id", "updated_at"])
    if not user.stripe_customer_id:
        user.stripe_customer_id = customer.id
        user.save(update_fields=["stripe_customer_id", "updated_at"])

    logger.info(
        "Created Stripe customer for enrollment",
        extra={"enrollment_id": str(enrollment.id), "customer_id": customer.id},
    )
    return customer.id


CUSTOMER_RESOLVERS: tuple[CustomerStrategy, ...] = (
    customer_from_enrollment,
    customer_from_user,
    customer_from_email,
)


def resolve_customer(
    enrollment: Enrollment,
    adapter: StripeAdapter,
    strategies: tuple[CustomerStrategy, ...] = CUSTOMER_RESOLVERS,
) -> str | None:
    """Run the customer chain; None means the row is charged without a customer."""
    for strategy in strategies:
        customer_id = strategy(enrollment, adapter)
        if customer_id:
            return customer_id

    logger.warning(
        "No Stripe customer could be resolved for enrollment",
        extra={"enrollment_id": str(enrollment.id), "user_id": str(enrollment.user_id)},
    )
    return None


# =============================================================================
# Payment Method Strategies
# =============================================================================


def default_payment_method(customer_id: str, adapter: StripeAdapter) -> str | None:
    return adapter.get_default_payment_method(customer_id)


def first_payment_method(customer_id: str, adapter: StripeAdapter) -> str | None:
    methods = adapter.list_payment_methods(customer_id, limit=1)
    return methods[0] if methods else None


PAYMENT_METHOD_RESOLVERS: tuple[PaymentMethodStrategy, ...] = (
    default_payment_method,
    first_payment_method,
)


def resolve_payment_method(
    customer_id: str,
    adapter: StripeAdapter,
    strategies: tuple[PaymentMethodStrategy, ...] = PAYMENT_METHOD_RESOLVERS,
) -> str | None:
    for strategy in strategies:
        payment_method_id = strategy(customer_id, adapter)
        if payment_method_id:
            return payment_method_id

    logger.info(
        "Customer has no saved payment method",
        extra={"customer_id": customer_id},
    )
    return None
