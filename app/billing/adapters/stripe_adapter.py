"""
Tenant-scoped Stripe adapter.

Every processor call in the billing engine goes through StripeAdapter. An
adapter instance is bound to one tenant's credentials and passes that
tenant's API key on each request; no global API key is ever set.

Features:
- Single conversion point between Decimal major units and Stripe's
  integer minor units
- Stripe exceptions translated to the billing error taxonomy, message
  preserved
- Structured logging with timing metrics
- Idempotency keys for create operations

Configuration (via settings):
- STRIPE_API_TIMEOUT_SECONDS: HTTP timeout per call (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client

Usage:
    from billing.adapters import StripeAdapter

    adapter = StripeAdapter.for_tenant(tenant.id)
    customer = adapter.create_customer(email="learner@example.com", name="Ada")
    invoice = adapter.create_invoice(customer.id, "charge_automatically")
    adapter.attach_invoice_item(invoice.id, customer.id, Decimal("200.00"), "usd", "Installment 2")
    invoice = adapter.finalize_invoice(invoice.id)
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from billing.exceptions import (
    ConfigurationError,
    DeclinedError,
    InsufficientFundsError,
    ProcessorError,
    ProcessorRateLimitError,
    ProcessorRequestError,
    ProcessorTimeoutError,
    ProcessorUnavailableError,
)
from billing.money import from_minor_units, to_minor_units

if TYPE_CHECKING:
    from collections.abc import Callable

    from billing.services.credentials import ProcessorCredential


# Upstream intent statuses that can still be completed by the learner
REUSABLE_INTENT_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "requires_action"}
)

# Refund reasons Stripe accepts; anything else is sent as requested_by_customer
STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CustomerResult:
    """Result of a Customer operation."""

    id: str
    email: str | None = None
    name: str | None = None
    default_payment_method_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentIntentResult:
    """Result of a PaymentIntent operation. Amount in major units."""

    id: str
    status: str
    amount: Decimal
    currency: str
    client_secret: str | None = None
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_reusable(self) -> bool:
        return self.status in REUSABLE_INTENT_STATUSES


@dataclass
class InvoiceResult:
    """Result of an Invoice operation. Amount in major units."""

    id: str
    status: str
    amount_due: Decimal
    currency: str
    payment_intent_id: str | None = None
    hosted_invoice_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


@dataclass
class RefundResult:
    """Result of a Refund operation. Amount in major units."""

    id: str
    amount: Decimal
    currency: str
    status: str
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate("create_invoice", schedule.id, attempt=2)
        # "create_invoice:550e8400-...:2:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int | str = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def is_retryable_processor_error(error: Exception) -> bool:
    """True for transient processor failures a later attempt may fix."""
    if isinstance(error, ProcessorError):
        return error.is_retryable
    return False


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _ref_id(value: Any) -> str | None:
    """Id of a reference that may be a string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def invoice_payment_intent_id(raw: dict[str, Any]) -> str | None:
    """PaymentIntent behind an invoice, across Stripe API versions."""
    intent = _ref_id(raw.get("payment_intent"))
    if intent:
        return intent
    for invoice_payment in (raw.get("payments") or {}).get("data") or []:
        payment = invoice_payment.get("payment") or {}
        intent = _ref_id(payment.get("payment_intent"))
        if intent:
            return intent
    return None


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations bound to one tenant.

    Raises (every operation):
        ConfigurationError: Stripe rejected the tenant's API key
        DeclinedError / InsufficientFundsError: Card declined
        ProcessorRequestError: Invalid parameters or missing resource
        TransientProcessorError subclasses: Rate limit, outage, timeout
    """

    def __init__(self, credential: ProcessorCredential):
        self.tenant_id = credential.tenant_id
        self.publishable_key = credential.publishable_key
        self._secret_key = credential.secret_key
        self._webhook_secret = credential.webhook_secret

    @classmethod
    def for_tenant(cls, tenant_id: uuid.UUID | str) -> StripeAdapter:
        """
        Build an adapter from the tenant's enabled credential.

        Raises:
            CredentialNotConfiguredError: If the tenant has none
        """
        from billing.services.credentials import CredentialStore

        return cls(CredentialStore.get_enabled_processor_credential(tenant_id))

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure the shared HTTP client timeout and network retries."""
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _call(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        log_context: dict[str, Any] | None = None,
        **params: Any,
    ) -> Any:
        """
        Run one Stripe SDK call with the tenant's key, timing and error mapping.
        """
        self._configure_stripe()
        logger = self.get_logger()
        context = {
            "operation": operation,
            "tenant_id": str(self.tenant_id),
            **(log_context or {}),
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=context)
        try:
            result = func(*args, api_key=self._secret_key, **params)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**context, "duration_ms": duration_ms},
        )
        return result

    # =========================================================================
    # Customers & Payment Methods
    # =========================================================================

    def create_customer(
        self,
        email: str,
        name: str | None = None,
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> CustomerResult:
        params: dict[str, Any] = {"email": email, "metadata": metadata or {}}
        if name:
            params["name"] = name
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        customer = self._call("create_customer", stripe.Customer.create, **params)
        return self._to_customer(customer)

    def retrieve_customer(self, customer_id: str) -> CustomerResult | None:
        """
        Retrieve a customer, or None if it no longer exists upstream.

        Missing and deleted customers are not errors: the caller falls
        through to the next resolution step.
        """
        try:
            customer = self._call(
                "retrieve_customer",
                stripe.Customer.retrieve,
                customer_id,
                log_context={"customer_id": customer_id},
            )
        except ProcessorRequestError as e:
            self.get_logger().warning(
                "Stripe customer not retrievable, treating as gone",
                extra={"customer_id": customer_id, "error": e.message},
            )
            return None

        if _as_dict(customer).get("deleted"):
            return None
        return self._to_customer(customer)

    def get_default_payment_method(self, customer_id: str) -> str | None:
        """Customer's invoice default payment method, if any."""
        customer = self.retrieve_customer(customer_id)
        if customer is None:
            return None
        return customer.default_payment_method_id

    def list_payment_methods(self, customer_id: str, limit: int = 10) -> list[str]:
        """Payment methods saved on the customer, newest first."""
        methods = self._call(
            "list_payment_methods",
            stripe.Customer.list_payment_methods,
            customer_id,
            limit=limit,
            log_context={"customer_id": customer_id},
        )
        return [method["id"] for method in _as_dict(methods).get("data") or []]

    # =========================================================================
    # Payment Intents
    # =========================================================================

    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        customer_id: str | None = None,
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
        description: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create a PaymentIntent with automatic payment methods.

        Cards are saved for off-session reuse when a customer is attached.
        """
        params: dict[str, Any] = {
            "amount": to_minor_units(amount, currency),
            "currency": currency.lower(),
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_id:
            params["customer"] = customer_id
            params["setup_future_usage"] = "off_session"
        if description:
            params["description"] = description
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        intent = self._call(
            "create_payment_intent",
            stripe.PaymentIntent.create,
            log_context={"amount": str(amount), "currency": currency, "customer_id": customer_id},
            **params,
        )
        return self._to_intent(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        intent = self._call(
            "retrieve_payment_intent",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
            log_context={"payment_intent_id": payment_intent_id},
        )
        return self._to_intent(intent)

    def cancel_payment_intent(self, payment_intent_id: str, reason: str = "abandoned") -> PaymentIntentResult:
        """Cancel an intent so it can no longer be confirmed."""
        intent = self._call(
            "cancel_payment_intent",
            stripe.PaymentIntent.cancel,
            payment_intent_id,
            cancellation_reason=reason,
            log_context={"payment_intent_id": payment_intent_id},
        )
        return self._to_intent(intent)

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(
        self,
        customer_id: str,
        collection_method: str,
        due_date: datetime | None = None,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
        idempotency_key: str | None = None,
    ) -> InvoiceResult:
        """
        Create a draft invoice.

        Drafts are not auto-advanced, so Stripe never finalizes one on its
        own; finalize_invoice() turns automatic collection on.

        Args:
            collection_method: "charge_automatically" or "send_invoice"
            due_date: Required for send_invoice; must be in the future
        """
        params: dict[str, Any] = {
            "customer": customer_id,
            "collection_method": collection_method,
            "auto_advance": False,
            "metadata": metadata or {},
        }
        if collection_method == "send_invoice" and due_date is not None:
            params["due_date"] = int(due_date.timestamp())
        if description:
            params["description"] = description
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        invoice = self._call(
            "create_invoice",
            stripe.Invoice.create,
            log_context={"customer_id": customer_id, "collection_method": collection_method},
            **params,
        )
        return self._to_invoice(invoice)

    def attach_invoice_item(
        self,
        invoice_id: str,
        customer_id: str,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> str:
        """Add one line item to a draft invoice. Returns the item id."""
        params: dict[str, Any] = {}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        item = self._call(
            "attach_invoice_item",
            stripe.InvoiceItem.create,
            customer=customer_id,
            invoice=invoice_id,
            amount=to_minor_units(amount, currency),
            currency=currency.lower(),
            description=description,
            metadata=metadata or {},
            log_context={"invoice_id": invoice_id, "amount": str(amount)},
            **params,
        )
        return _as_dict(item).get("id")

    def finalize_invoice(self, invoice_id: str) -> InvoiceResult:
        invoice = self._call(
            "finalize_invoice",
            stripe.Invoice.finalize_invoice,
            invoice_id,
            auto_advance=True,
            log_context={"invoice_id": invoice_id},
        )
        return self._to_invoice(invoice)

    def pay_invoice(self, invoice_id: str, payment_method_id: str | None = None) -> InvoiceResult:
        params: dict[str, Any] = {}
        if payment_method_id:
            params["payment_method"] = payment_method_id
        invoice = self._call(
            "pay_invoice",
            stripe.Invoice.pay,
            invoice_id,
            log_context={"invoice_id": invoice_id, "payment_method_id": payment_method_id},
            **params,
        )
        return self._to_invoice(invoice)

    def retrieve_invoice(self, invoice_id: str) -> InvoiceResult:
        invoice = self._call(
            "retrieve_invoice",
            stripe.Invoice.retrieve,
            invoice_id,
            log_context={"invoice_id": invoice_id},
        )
        return self._to_invoice(invoice)

    def void_invoice(self, invoice_id: str) -> InvoiceResult:
        invoice = self._call(
            "void_invoice",
            stripe.Invoice.void_invoice,
            invoice_id,
            log_context={"invoice_id": invoice_id},
        )
        return self._to_invoice(invoice)

    # =========================================================================
    # Refunds
    # =========================================================================

    def create_refund(
        self,
        payment_intent_id: str,
        amount: Decimal,
        currency: str,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a PaymentIntent.

        Free-text reasons are kept in metadata; Stripe only receives one of
        its own reason codes.
        """
        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "amount": to_minor_units(amount, currency),
            "reason": reason if reason in STRIPE_REFUND_REASONS else "requested_by_customer",
            "metadata": metadata or {},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        refund = self._call(
            "create_refund",
            stripe.Refund.create,
            log_context={"payment_intent_id": payment_intent_id, "amount": str(amount)},
            **params,
        )
        return self._to_refund(refund, currency)

    def list_refunds(self, payment_intent_id: str, currency: str) -> list[RefundResult]:
        refunds = self._call(
            "list_refunds",
            stripe.Refund.list,
            payment_intent=payment_intent_id,
            limit=100,
            log_context={"payment_intent_id": payment_intent_id},
        )
        return [self._to_refund(refund, currency) for refund in _as_dict(refunds).get("data") or []]

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook with the tenant's signing secret and parse it.

        Raises:
            ConfigurationError: No webhook secret configured
            ProcessorRequestError: Invalid signature or payload
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Webhook signing secret is not configured for this tenant",
                error_code="WEBHOOK_SECRET_NOT_CONFIGURED",
                details={"tenant_id": str(self.tenant_id)},
            )
        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ProcessorRequestError(
                "Invalid webhook signature",
                processor_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise ProcessorRequestError(
                "Invalid webhook payload",
                processor_code="invalid_payload",
                details={"error": str(e)},
            )
        return _as_dict(event)

    # =========================================================================
    # Result Conversion
    # =========================================================================

    @staticmethod
    def _to_customer(customer: Any) -> CustomerResult:
        raw = _as_dict(customer)
        invoice_settings = raw.get("invoice_settings") or {}
        return CustomerResult(
            id=raw["id"],
            email=raw.get("email"),
            name=raw.get("name"),
            default_payment_method_id=_ref_id(invoice_settings.get("default_payment_method")),
            metadata=dict(raw.get("metadata") or {}),
            raw_response=raw,
        )

    @staticmethod
    def _to_intent(intent: Any) -> PaymentIntentResult:
        raw = _as_dict(intent)
        currency = raw.get("currency") or "usd"
        return PaymentIntentResult(
            id=raw["id"],
            status=raw.get("status"),
            amount=from_minor_units(raw.get("amount"), currency),
            currency=currency,
            client_secret=raw.get("client_secret"),
            customer_id=_ref_id(raw.get("customer")),
            metadata=dict(raw.get("metadata") or {}),
            raw_response=raw,
        )

    @staticmethod
    def _to_invoice(invoice: Any) -> InvoiceResult:
        raw = _as_dict(invoice)
        currency = raw.get("currency") or "usd"
        return InvoiceResult(
            id=raw["id"],
            status=raw.get("status"),
            amount_due=from_minor_units(raw.get("amount_due"), currency),
            currency=currency,
            payment_intent_id=invoice_payment_intent_id(raw),
            hosted_invoice_url=raw.get("hosted_invoice_url"),
            metadata=dict(raw.get("metadata") or {}),
            raw_response=raw,
        )

    @staticmethod
    def _to_refund(refund: Any, currency: str) -> RefundResult:
        raw = _as_dict(refund)
        refund_currency = raw.get("currency") or currency
        return RefundResult(
            id=raw["id"],
            amount=from_minor_units(raw.get("amount"), refund_currency),
            currency=refund_currency,
            status=raw.get("status"),
            payment_intent_id=_ref_id(raw.get("payment_intent")),
            metadata=dict(raw.get("metadata") or {}),
            raw_response=raw,
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to billing exceptions.

        Raises:
            InsufficientFundsError / DeclinedError: Card declined
            ProcessorRequestError: Invalid request parameters
            ProcessorRateLimitError: Rate limited
            ProcessorTimeoutError / ProcessorUnavailableError: Network or outage
            ConfigurationError: Authentication failed
            ProcessorError: Anything else
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            message = str(error.user_message or error)
            if decline_code == "insufficient_funds":
                raise InsufficientFundsError(
                    message, processor_code=error.code, decline_code=decline_code
                )
            raise DeclinedError(message, processor_code=error.code, decline_code=decline_code)

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "processor_code": error.code},
            )
            raise ProcessorRequestError(
                str(error.user_message or error),
                processor_code=error.code,
                details={"param": getattr(error, "param", None)},
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProcessorRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                processor_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                raise ProcessorTimeoutError(
                    "Stripe request timed out. Please retry.",
                    processor_code="timeout",
                )
            raise ProcessorUnavailableError(
                "Could not connect to Stripe. Please retry.",
                processor_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise ProcessorUnavailableError(
                "Stripe service error. Please retry.",
                processor_code="api_error",
            )

        elif isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            logger.critical(
                "Stripe authentication failed - check tenant API key",
                extra=log_context,
            )
            raise ConfigurationError(
                "Stripe rejected the tenant's API credentials",
                error_code="PROCESSOR_AUTHENTICATION_FAILED",
                details={"tenant_id": log_context.get("tenant_id")},
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise ProcessorError(
                f"Unexpected Stripe error: {error}",
                processor_code="unknown_error",
            )
