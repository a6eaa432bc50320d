"""
Billing-specific exceptions.

Every failure the engine can meet is classified into one of a small set of
kinds so callers can decide between retrying, recording a failed payment and
surfacing the problem to an administrator. Raw Stripe exceptions are
translated by the adapter and never leave it.

Exception Hierarchy:
    BillingError (base for the billing domain)
    ├── ConfigurationError - Processor not usable for a tenant (fatal, no retry)
    │   └── CredentialNotConfiguredError - No enabled credential
    ├── ReferenceNotFoundError - Refund without a resolvable charge reference
    └── ProcessorError - Base for Stripe call failures
        ├── TransientProcessorError - Retry on the next sweep
        │   ├── ProcessorRateLimitError
        │   ├── ProcessorUnavailableError
        │   └── ProcessorTimeoutError
        ├── DeclinedError - Charge declined, row recorded as failed
        │   └── InsufficientFundsError
        └── ProcessorRequestError - Invalid request or missing resource

    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Plan and refund input errors use core.exceptions.ValidationError.

Usage:
    from billing.exceptions import DeclinedError, TransientProcessorError

    try:
        adapter.pay_invoice(invoice_id, payment_method_id)
    except DeclinedError as e:
        SettlementReconciler.mark_failed(schedule, e.message)
    except TransientProcessorError:
        logger.warning("Stripe unavailable, next sweep retries")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """Base exception for all billing operations."""

    default_error_code: str = "BILLING_ERROR"


class ConfigurationError(BillingError):
    """
    The payment processor cannot be used for a tenant.

    Fatal and surfaced to an administrator; retrying does not help until
    someone fixes the tenant's integration settings.
    """

    default_error_code: str = "PROCESSOR_NOT_CONFIGURED"
    http_status: int = 500


class CredentialNotConfiguredError(ConfigurationError):
    """No enabled processor credential exists for the tenant."""

    default_error_code: str = "CREDENTIAL_NOT_CONFIGURED"


class ReferenceNotFoundError(BillingError):
    """
    No upstream charge reference could be resolved for a refund.

    The refund has to be handled manually in the processor console.
    """

    default_error_code: str = "PROCESSOR_REFERENCE_NOT_FOUND"
    http_status: int = 400


# =============================================================================
# Processor Exceptions
# =============================================================================


class ProcessorError(BillingError, ExternalServiceError):
    """
    Base exception for failed payment processor calls.

    Attributes:
        processor_code: Stripe's error code (e.g. "resource_missing")
        decline_code: Card decline code, when the card was declined
        is_retryable: Whether a later attempt may succeed
    """

    default_error_code: str = "PROCESSOR_ERROR"
    http_status: int = 502
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        processor_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if processor_code:
            details["processor_code"] = processor_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.processor_code = processor_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Transient Errors (next sweep retries)
# -----------------------------------------------------------------------------


class TransientProcessorError(ProcessorError):
    """Network, rate-limit or availability failure."""

    default_error_code: str = "PROCESSOR_TRANSIENT_ERROR"
    http_status: int = 503
    is_retryable: bool = True


class ProcessorRateLimitError(TransientProcessorError):
    """Too many requests to the processor."""

    default_error_code: str = "PROCESSOR_RATE_LIMITED"


class ProcessorUnavailableError(TransientProcessorError):
    """Processor API returned a server error or could not be reached."""

    default_error_code: str = "PROCESSOR_UNAVAILABLE"


class ProcessorTimeoutError(TransientProcessorError):
    """Processor call timed out."""

    default_error_code: str = "PROCESSOR_TIMEOUT"


# -----------------------------------------------------------------------------
# Permanent Errors
# -----------------------------------------------------------------------------


class DeclinedError(ProcessorError):
    """
    Card or charge declined.

    Recorded on the schedule row as failed; retried only when the learner
    tries again or the next billing cycle's automation does.
    """

    default_error_code: str = "PAYMENT_DECLINED"
    http_status: int = 402


class InsufficientFundsError(DeclinedError):
    """Declined for insufficient funds."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class ProcessorRequestError(ProcessorError):
    """Invalid parameters or a missing upstream resource."""

    default_error_code: str = "PROCESSOR_INVALID_REQUEST"


# =============================================================================
# State Machine Exceptions
# =============================================================================


class InvalidStateTransitionError(ConflictError):
    """
    Requested schedule transition is not allowed from the current status.

    Wraps django_fsm.TransitionNotAllowed so callers handle one exception
    family.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
