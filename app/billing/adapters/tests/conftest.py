"""
Pytest fixtures for Stripe adapter tests.

Sections:
    - Adapter Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
"""

import uuid
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from billing.adapters import StripeAdapter
from billing.services.credentials import ProcessorCredential


class MockStripeObject(dict):
    """Mock Stripe API object with to_dict support."""

    def to_dict(self) -> dict[str, Any]:
        return dict(self)


# =============================================================================
# Adapter Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """Keep the adapter from installing a real HTTP client."""
    with patch("stripe.RequestsClient") as mock, patch.object(stripe, "default_http_client", None):
        yield mock


@pytest.fixture
def processor_credential():
    return ProcessorCredential(
        tenant_id=uuid.uuid4(),
        secret_key="sk_test_tenant",
        publishable_key="pk_test_tenant",
        webhook_secret="whsec_test_tenant",
    )


@pytest.fixture
def adapter(processor_credential):
    return StripeAdapter(processor_credential)


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@pytest.fixture
def stripe_intent():
    def _create(id="pi_test123", status="requires_payment_method", amount=20000, currency="usd", **extra):
        return MockStripeObject(
            id=id,
            object="payment_intent",
            status=status,
            amount=amount,
            currency=currency,
            client_secret=f"{id}_secret_abc",
            metadata={},
            **extra,
        )

    return _create


@pytest.fixture
def stripe_invoice():
    def _create(id="in_test123", status="open", amount_due=20000, currency="usd", **extra):
        return MockStripeObject(
            id=id,
            object="invoice",
            status=status,
            amount_due=amount_due,
            currency=currency,
            metadata={},
            **extra,
        )

    return _create


@pytest.fixture
def stripe_refund():
    def _create(id="re_test123", amount=5000, status="succeeded", payment_intent="pi_test123", currency="usd"):
        return MockStripeObject(
            id=id,
            object="refund",
            amount=amount,
            currency=currency,
            status=status,
            payment_intent=payment_intent,
            metadata={},
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    def _create(decline_code="generic_decline", message="Your card was declined."):
        error = stripe.CardError(message=message, param=None, code="card_declined")
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such payment_intent: 'pi_missing'",
        param="id",
        code="resource_missing",
    )
