"""
Refund settlement services.

This module provides:
- RefundService: Initiates, processes, retries and cancels refunds

Usage:
    from payments.services import RefundService

    initiation = RefundService.initiate(order.id, reason=RefundReason.ORDER_REJECTED)
    if initiation.refund:
        result = RefundService.process(initiation.refund.id)
"""

from payments.services.refund_service import (
    MAX_REFUND_RETRIES,
    REFUND_EXPECTED_COMPLETION,
    REFUND_LOCK_TIMEOUT,
    REFUND_LOCK_TTL,
    REFUND_RETRY_DELAY,
    RefundInitiation,
    RefundProcessingResult,
    RefundService,
    RefundStats,
)

__all__ = [
    "MAX_REFUND_RETRIES",
    "REFUND_EXPECTED_COMPLETION",
    "REFUND_LOCK_TIMEOUT",
    "REFUND_LOCK_TTL",
    "REFUND_RETRY_DELAY",
    "RefundInitiation",
    "RefundProcessingResult",
    "RefundService",
    "RefundStats",
]
