"""
Refund settlement exceptions.

This module provides the exceptions raised while settling refunds:
domain errors for bad requests, concurrency errors for contended
orders and refunds, and gateway errors for the payment provider.

Exception Hierarchy:
    ValidationError (core)
    └── RefundValidationError - Bad amount, wrong status, refused transition

    ConflictError (core)
    ├── RefundInProgressError - Order already has a live refund
    └── LockAcquisitionError - Distributed lock timeout

    ExternalServiceError (core)
    └── GatewayError - Base for all payment gateway errors
        ├── GatewayInvalidRequestError - Rejected request (permanent)
        ├── GatewayRateLimitError - Rate limited (transient, retry)
        ├── GatewayUnavailableError - API unavailable (transient, retry)
        └── GatewayTimeoutError - Request timeout (transient, retry)

Usage:
    from payments.exceptions import (
        GatewayError,
        LockAcquisitionError,
        RefundInProgressError,
    )

    # Second refund for the same order
    raise RefundInProgressError(
        f"Refund {existing.refund_number} already in progress for order {order_id}",
        details={"refund_id": str(existing.id), "status": existing.status},
    )

    # Gateway failure, recorded on the refund
    except GatewayError as e:
        if e.is_retryable:
            schedule_retry()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError, ExternalServiceError, ValidationError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Refund Domain Exceptions
# =============================================================================


class RefundValidationError(ValidationError):
    """
    Raised when a refund request or action is not allowed.

    Use for:
    - Amount not positive or above the refundable amount
    - Nothing left to refund on the order
    - Action on a refund in the wrong status (approve a FAILED refund,
      cancel a COMPLETED one, ...)

    Example:
        if amount_cents > refundable:
            raise RefundValidationError(
                "Refund amount exceeds refundable amount",
                details={"amount_cents": amount_cents, "refundable_cents": refundable},
            )
    """

    default_error_code: str = "REFUND_VALIDATION_ERROR"


class RefundInProgressError(ConflictError):
    """
    Raised when an order already has a non-terminal refund.

    At most one refund per order may be PENDING, INITIATED or PROCESSING
    at a time. The partial unique constraint on Refund is the final
    arbiter; this error is what callers see when they lose.

    Note:
        Inherits from ConflictError (HTTP 409).
    """

    default_error_code: str = "REFUND_IN_PROGRESS"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    This exception indicates that another process holds the lock
    and it couldn't be acquired within the timeout period.

    Attributes:
        details: Contains key and timeout information

    Example:
        lock = DistributedLock("refund:order:123", ttl=120, timeout=10)
        if not lock.acquire():
            raise LockAcquisitionError(
                "Failed to acquire lock 'refund:order:123' within 10s",
                details={"key": "refund:order:123", "timeout": 10}
            )

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        it represents a resource contention conflict.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for payment gateway failures.

    Provides common attributes for gateway error handling:
    - stripe_code: The gateway's own error code, if it sent one
    - is_retryable: Whether the same call may succeed later

    Use is_retryable to determine retry behavior:
    - True: Transient error, the refund is scheduled for another attempt
    - False: Permanent error, the refund needs manual resolution

    Example:
        try:
            adapter.create_refund(...)
        except GatewayError as e:
            refund.fail(reason=e.message, retryable=e.is_retryable)
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayInvalidRequestError(GatewayError):
    """
    The gateway rejected the request itself.

    This is a permanent error - the request will never succeed with the
    same parameters.

    Possible causes:
    - Unknown or already fully refunded payment
    - Refund amount above what was captured
    - Missing original payment reference

    Note:
        Usually needs a person to look at the order.
    """

    default_error_code: str = "GATEWAY_INVALID_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry)
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """Rate limited by the gateway API."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """
    Gateway API is temporarily unavailable.

    This covers:
    - Network connectivity issues
    - Gateway server errors (5xx)
    - Authentication misconfiguration surfaced as API errors

    These are transient errors that typically resolve themselves.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """
    Gateway API call timed out.

    The request was sent but no response was received within
    the configured timeout (STRIPE_API_TIMEOUT_SECONDS).

    IMPORTANT: The refund may have succeeded on the gateway's side.
    The next attempt uses a new idempotency key, so reconcile against
    the gateway before retrying by hand.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Refund domain
    "RefundValidationError",
    "RefundInProgressError",
    # Concurrency control
    "LockAcquisitionError",
    # Gateway
    "GatewayError",
    "GatewayInvalidRequestError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayTimeoutError",
]
