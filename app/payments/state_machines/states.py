"""
State enums for refund settlement.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Refund Status:
    INITIATED → PROCESSING → COMPLETED
    INITIATED → PROCESSING → FAILED → PROCESSING (retry)
    PENDING → INITIATED (admin approval) → PROCESSING ...
    INITIATED/PENDING/PROCESSING/FAILED → CANCELLED
"""

from django.db import models


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: COMPLETED, CANCELLED
    Live states: PENDING, INITIATED, PROCESSING (at most one per order)

    State Flow:
        INITIATED → PROCESSING → COMPLETED
        INITIATED → PROCESSING → FAILED → PROCESSING (retry)
        PENDING → INITIATED (manual refund approved)

    Note:
        FAILED is not live: it sits outside the one-per-order rule and
        is picked up again by the retry sweep or a manual retry.
    """

    PENDING = "PENDING", "Pending approval"
    INITIATED = "INITIATED", "Initiated"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"


# Statuses covered by the one-live-refund-per-order constraint
LIVE_REFUND_STATUSES = (
    RefundStatus.PENDING,
    RefundStatus.INITIATED,
    RefundStatus.PROCESSING,
)

TERMINAL_REFUND_STATUSES = (RefundStatus.COMPLETED, RefundStatus.CANCELLED)


class RefundType(models.TextChoices):
    """Whether a refund returns everything refundable or a given amount."""

    FULL = "FULL", "Full"
    PARTIAL = "PARTIAL", "Partial"


class RefundReason(models.TextChoices):
    """Why money is being returned to the customer."""

    ORDER_REJECTED = "ORDER_REJECTED", "Order rejected"
    ORDER_CANCELLED_BY_KITCHEN = (
        "ORDER_CANCELLED_BY_KITCHEN",
        "Order cancelled by kitchen",
    )
    ORDER_CANCELLED_BY_CUSTOMER = (
        "ORDER_CANCELLED_BY_CUSTOMER",
        "Order cancelled by customer",
    )
    DELIVERY_FAILED = "DELIVERY_FAILED", "Delivery failed"
    QUALITY_ISSUE = "QUALITY_ISSUE", "Quality issue"
    WRONG_ORDER = "WRONG_ORDER", "Wrong order"
    ADMIN_INITIATED = "ADMIN_INITIATED", "Admin initiated"
    PAYMENT_ISSUE = "PAYMENT_ISSUE", "Payment issue"
    OTHER = "OTHER", "Other"


class RefundInitiator(models.TextChoices):
    """Who started a refund."""

    SYSTEM = "SYSTEM", "System"
    ADMIN = "ADMIN", "Admin"
    CUSTOMER = "CUSTOMER", "Customer"
