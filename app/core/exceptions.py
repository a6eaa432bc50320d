"""
Base exception classes for application-wide error handling.

Every domain error carries a human-readable message, a machine-readable
error code and optional details, and knows which HTTP status an API view
should answer with. Services raise these for unexpected failures and
convert them into ServiceResult failures for expected ones.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input (plan parameters, refund amounts)
    ├── ConflictError - State conflicts (invalid transitions, duplicates)
    └── ExternalServiceError - Third-party service failures

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Installment count must be at least 1",
        error_code="INVALID_INSTALLMENT_COUNT",
        details={"installments": 0},
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers)
        http_status: Status code API views respond with
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """API error body: error, error_code and details when present."""
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Rejected synchronously and never retried: invalid plan parameters,
    out-of-range refund amounts, mismatched currencies.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current record state.

    Use for invalid state transitions and concurrent modification
    conflicts. HTTP 409 Conflict is the matching status.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Subclasses describe the failure precisely enough for callers to choose
    between retrying later and surfacing the error to a person.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
