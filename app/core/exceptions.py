"""
Application-wide exception hierarchy.

Every domain error raised by a service carries a machine-readable
``error_code``, an optional ``details`` payload and the HTTP status the API
layer should answer with. ``core.exception_handler`` turns them into
responses, so views rarely need to catch them.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - bad input or business-rule violation (400)
    ├── NotFoundError - resource missing (404)
    ├── PermissionDeniedError - caller may not act on the resource (403)
    ├── ConflictError - resource is in the wrong state (409)
    └── ExternalServiceError - third-party failure (502)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError(
        "Quantity exceeds stock",
        error_code="INSUFFICIENT_STOCK",
        details={"product_id": str(product.id), "available": 2},
    )
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
        details: Additional error context (ids, field errors, provider codes)
        http_status: Status code used when the error reaches the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

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

    def to_dict(self, include_details: bool = True) -> dict[str, Any]:
        """
        Convert exception to a response body.

        Example:
            {
                "error": "Order not found",
                "error_code": "ORDER_NOT_FOUND",
                "details": {"order_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if include_details and self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input fails validation in the service layer.

    DRF serializers still handle request-shape validation; this is for
    rules that need the database, such as stock or price tiers.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a single resource that should exist does not."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller is authenticated but not allowed to act.

    Authentication failures stay with DRF's ``NotAuthenticated``.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Typical causes are illegal state transitions and stale versions.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a third-party call fails.

    ``details`` may hold provider diagnostics. The exception handler only
    exposes them when ``DEBUG`` is on.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
