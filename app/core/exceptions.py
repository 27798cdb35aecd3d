"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the voucher and refund APIs
- Machine-readable error codes for client handling
- Detailed error information (current status, amounts) for callers

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input or refused state transition
    ├── NotFoundError - Voucher, subscription, refund or order absent
    ├── PermissionDeniedError - Caller does not own the resource
    ├── ConflictError - Concurrent claims, refunds already in flight
    └── ExternalServiceError - Payment gateway failures

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Refund amount must be positive")

    raise NotFoundError(
        f"Refund {refund_id} not found",
        error_code="REFUND_NOT_FOUND",
        details={"refund_id": str(refund_id)},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
    core.views.error_response maps each class to its HTTP status.
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
        details: Additional error context (field errors, current status, etc.)

    Example:
        try:
            RefundService.approve(refund_id, admin=request.user)
        except NotFoundError as e:
            return Response(e.to_dict(), status=404)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Refund already in progress for this order",
                "error_code": "REFUND_IN_PROGRESS",
                "details": {"refund_id": "...", "status": "INITIATED"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails or a state transition is refused.

    Use for:
    - Invalid amounts (zero, negative, above the refundable balance)
    - Operations attempted from the wrong status
      (approving a refund that is not PENDING, cancelling a
      subscription that is not ACTIVE)

    Note:
        A ValidationError is always raised before anything is written,
        so callers can assume no state was mutated.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        order = Order.objects.filter(id=order_id).first()
        if not order:
            raise NotFoundError(
                f"Order {order_id} not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller may not act on a resource.

    For authentication failures (missing/invalid credentials), DRF's
    own exceptions apply. Use this for ownership checks inside services.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Vouchers claimed by a concurrent redemption
    - A refund already in flight for the same order
    - Lock contention between workers

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
        The engine does not retry them; callers may poll instead.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment gateway API failures
    - Network timeouts
    - Unexpected gateway responses

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
        HTTP 502 Bad Gateway is the appropriate status.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
