"""
Payment plan selection for products.

Precedence:
    1. The product's forced plan
    2. Auto-detection: active plans with auto_detect_enabled, by descending
       priority; the first plan whose rules all match wins
    3. The product's default plan
    4. The tenant's default plan (is_default)

A plan without rules never auto-matches.

Rule format (stored in PaymentPlan.auto_detect_rules):
    {"condition": "price_range", "operator": "between", "min": 500, "max": 2000}
    {"condition": "product_type", "operator": "in", "values": ["program"]}
    {"condition": "metadata", "field": "level", "operator": "equals", "value": "advanced"}
    {"condition": "user_segment", "operator": "equals", "value": "alumni"}

Usage:
    from billing.plans.detection import PlanDetector

    plan = PlanDetector.detect(product, user_metadata={"segment": "alumni"})
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from core.exceptions import ValidationError

from billing.models import PaymentPlan

if TYPE_CHECKING:
    from typing import Any

    from billing.models import Product

logger = logging.getLogger(__name__)


# =============================================================================
# Rule Evaluation (pure)
# =============================================================================


def rules_match(rules: list[dict], product_context: dict, user_metadata: dict | None) -> bool:
    """True when there is at least one rule and every rule matches."""
    if not rules:
        return False
    return all(rule_matches(rule, product_context, user_metadata) for rule in rules)


def rule_matches(rule: dict, product_context: dict, user_metadata: dict | None) -> bool:
    """
    Evaluate one auto-detect rule.

    Args:
        rule: Rule dict with condition, operator and value/values/min/max/field
        product_context: {"price": Decimal, "product_type": str, "metadata": dict}
        user_metadata: Learner attributes, segment read from "segment" or "role"
    """
    condition = rule.get("condition")
    if condition == "price_range":
        return _compare_number(product_context.get("price"), rule)
    if condition == "product_type":
        return _compare_value(product_context.get("product_type"), rule)
    if condition == "metadata":
        field = rule.get("field")
        if not field:
            return False
        return _compare_value((product_context.get("metadata") or {}).get(field), rule)
    if condition == "user_segment":
        if not user_metadata:
            return False
        segment = user_metadata.get("segment") or user_metadata.get("role")
        return _compare_value(segment, rule)

    logger.warning("Unknown auto-detect rule condition", extra={"condition": condition})
    return False


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _compare_number(value: Any, rule: dict) -> bool:
    number = _to_decimal(value)
    if number is None:
        return False

    operator = rule.get("operator")
    if operator == "between":
        low = _to_decimal(rule.get("min"))
        high = _to_decimal(rule.get("max"))
        return (low is None or number >= low) and (high is None or number <= high)

    target = _to_decimal(rule.get("value"))
    if target is None:
        return False
    if operator == "equals":
        return number == target
    if operator == "not_equals":
        return number != target
    if operator == "greater_than":
        return number > target
    if operator == "less_than":
        return number < target
    return False


def _compare_value(value: Any, rule: dict) -> bool:
    operator = rule.get("operator")
    values = rule.get("values") or []
    if operator == "equals":
        return value == rule.get("value")
    if operator == "not_equals":
        return value != rule.get("value")
    if operator == "in":
        return value in values
    if operator == "not_in":
        return value not in values
    if operator == "contains":
        return isinstance(value, str) and str(rule.get("value", "")) in value
    if operator == "regex":
        return isinstance(value, str) and re.search(str(rule.get("value", "")), value) is not None
    return False


# =============================================================================
# Plan Selection
# =============================================================================


class PlanDetector:
    """Selects the payment plan an enrollment's schedule is generated from."""

    @classmethod
    def detect(cls, product: Product, user_metadata: dict | None = None) -> PaymentPlan:
        """
        Pick the plan for a product.

        Raises:
            ValidationError: If no plan applies
        """
        forced = product.forced_payment_plan
        if forced is not None and forced.tenant_id == product.tenant_id:
            logger.info(
                "Using forced payment plan",
                extra={"product_id": str(product.id), "plan_id": str(forced.id)},
            )
            return forced

        if product.auto_assign_payment_plan:
            context = {
                "price": product.price,
                "product_type": product.product_type,
                "metadata": product.metadata or {},
            }
            candidates = PaymentPlan.objects.filter(
                tenant_id=product.tenant_id,
                auto_detect_enabled=True,
                is_active=True,
            ).order_by("-priority", "name")
            for plan in candidates:
                if rules_match(plan.auto_detect_rules or [], context, user_metadata):
                    logger.info(
                        "Auto-detected payment plan",
                        extra={
                            "product_id": str(product.id),
                            "plan_id": str(plan.id),
                            "priority": plan.priority,
                        },
                    )
                    return plan

        default = product.default_payment_plan
        if default is not None and default.tenant_id == product.tenant_id:
            return default

        tenant_default = PaymentPlan.objects.filter(
            tenant_id=product.tenant_id, is_default=True, is_active=True
        ).first()
        if tenant_default is not None:
            return tenant_default

        raise ValidationError(
            "No payment plan could be determined for this product",
            error_code="NO_PAYMENT_PLAN",
            details={"product_id": str(product.id)},
        )
