"""
Tests for payment plan auto-detection and selection precedence.
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError

from billing.plans.detection import PlanDetector, rule_matches, rules_match
from billing.state_machines import ProductType
from billing.tests.factories import PaymentPlanFactory, ProductFactory

CONTEXT = {
    "price": Decimal("1500.00"),
    "product_type": ProductType.PROGRAM,
    "metadata": {"level": "advanced", "track": "data-science"},
}


# =============================================================================
# Rule Evaluation
# =============================================================================


class TestRuleMatches:
    """Tests for single-rule evaluation."""

    @pytest.mark.parametrize(
        "rule,expected",
        [
            ({"condition": "price_range", "operator": "between", "min": 500, "max": 2000}, True),
            ({"condition": "price_range", "operator": "between", "min": 2000}, False),
            ({"condition": "price_range", "operator": "greater_than", "value": "1499.99"}, True),
            ({"condition": "price_range", "operator": "less_than", "value": 1000}, False),
            ({"condition": "price_range", "operator": "equals", "value": "1500"}, True),
            ({"condition": "product_type", "operator": "equals", "value": "program"}, True),
            ({"condition": "product_type", "operator": "not_in", "values": ["program"]}, False),
            ({"condition": "metadata", "field": "level", "operator": "equals", "value": "advanced"}, True),
            ({"condition": "metadata", "field": "track", "operator": "contains", "value": "data"}, True),
            ({"condition": "metadata", "field": "track", "operator": "regex", "value": "^ml-"}, False),
            ({"condition": "metadata", "field": "missing", "operator": "equals", "value": "x"}, False),
            ({"condition": "metadata", "operator": "equals", "value": "advanced"}, False),
            ({"condition": "unknown", "operator": "equals", "value": 1}, False),
        ],
    )
    def test_product_conditions(self, rule, expected):
        assert rule_matches(rule, CONTEXT, None) is expected

    def test_user_segment_reads_segment_or_role(self):
        rule = {"condition": "user_segment", "operator": "in", "values": ["alumni", "staff"]}

        assert rule_matches(rule, CONTEXT, {"segment": "alumni"}) is True
        assert rule_matches(rule, CONTEXT, {"role": "staff"}) is True
        assert rule_matches(rule, CONTEXT, {"segment": "new"}) is False

    def test_user_segment_without_metadata_never_matches(self):
        rule = {"condition": "user_segment", "operator": "not_equals", "value": "alumni"}

        assert rule_matches(rule, CONTEXT, None) is False

    def test_rules_match_requires_all_rules(self):
        rules = [
            {"condition": "price_range", "operator": "between", "min": 500, "max": 2000},
            {"condition": "product_type", "operator": "equals", "value": "course"},
        ]

        assert rules_match(rules, CONTEXT, None) is False
        assert rules_match(rules[:1], CONTEXT, None) is True

    def test_empty_rules_never_match(self):
        assert rules_match([], CONTEXT, None) is False


# =============================================================================
# Plan Selection
# =============================================================================


@pytest.mark.django_db
class TestPlanDetector:
    """Tests for forced > auto-detect > product default > tenant default."""

    def test_forced_plan_wins(self, tenant):
        forced = PaymentPlanFactory(tenant=tenant)
        PaymentPlanFactory(
            tenant=tenant,
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "greater_than", "value": 0}],
            priority=100,
        )
        product = ProductFactory(tenant=tenant, forced_payment_plan=forced, auto_assign_payment_plan=True)

        assert PlanDetector.detect(product) == forced

    def test_auto_detect_uses_highest_priority_match(self, tenant):
        PaymentPlanFactory(
            tenant=tenant,
            name="Low",
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "greater_than", "value": 0}],
            priority=1,
        )
        high = PaymentPlanFactory(
            tenant=tenant,
            name="High",
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "between", "min": 500, "max": 5000}],
            priority=10,
        )
        product = ProductFactory(tenant=tenant, auto_assign_payment_plan=True)

        assert PlanDetector.detect(product) == high

    def test_auto_detect_skips_inactive_and_rule_less_plans(self, tenant):
        PaymentPlanFactory(
            tenant=tenant,
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "greater_than", "value": 0}],
            is_active=False,
            priority=50,
        )
        PaymentPlanFactory(tenant=tenant, auto_detect_enabled=True, auto_detect_rules=[], priority=40)
        default = PaymentPlanFactory(tenant=tenant)
        product = ProductFactory(tenant=tenant, auto_assign_payment_plan=True, default_payment_plan=default)

        assert PlanDetector.detect(product) == default

    def test_auto_detect_uses_user_segment(self, tenant):
        alumni = PaymentPlanFactory(
            tenant=tenant,
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "user_segment", "operator": "equals", "value": "alumni"}],
        )
        fallback = PaymentPlanFactory(tenant=tenant, is_default=True)
        product = ProductFactory(tenant=tenant, auto_assign_payment_plan=True)

        assert PlanDetector.detect(product, {"segment": "alumni"}) == alumni
        assert PlanDetector.detect(product, {"segment": "new"}) == fallback

    def test_auto_detect_ignores_other_tenants(self, tenant):
        PaymentPlanFactory(
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "greater_than", "value": 0}],
        )
        fallback = PaymentPlanFactory(tenant=tenant, is_default=True)
        product = ProductFactory(tenant=tenant, auto_assign_payment_plan=True)

        assert PlanDetector.detect(product) == fallback

    def test_auto_detect_disabled_on_product(self, tenant):
        PaymentPlanFactory(
            tenant=tenant,
            auto_detect_enabled=True,
            auto_detect_rules=[{"condition": "price_range", "operator": "greater_than", "value": 0}],
        )
        default = PaymentPlanFactory(tenant=tenant)
        product = ProductFactory(tenant=tenant, default_payment_plan=default)

        assert PlanDetector.detect(product) == default

    def test_no_plan_raises(self, tenant):
        product = ProductFactory(tenant=tenant)

        with pytest.raises(ValidationError) as exc_info:
            PlanDetector.detect(product)

        assert exc_info.value.error_code == "NO_PAYMENT_PLAN"
