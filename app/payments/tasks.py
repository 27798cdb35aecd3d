"""
Celery tasks for refund settlement.

This module provides async tasks for:
- Retrying failed refunds whose retry is due
- Processing a single refund off the request path

Usage:
    from payments.tasks import process_refund

    # Queue a refund for processing
    process_refund.delay(str(refund.id))

    # Retry all due refunds (typically via celery-beat)
    from payments.tasks import retry_failed_refunds
    retry_failed_refunds.delay()
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from payments.exceptions import LockAcquisitionError
from payments.services import RefundService

logger = logging.getLogger(__name__)


@shared_task
def retry_failed_refunds() -> dict:
    """
    Periodic task to retry FAILED refunds whose next_retry_at has passed.

    Scheduled every 15 minutes via celery-beat. Refunds are handled
    one at a time; a refund locked by another worker is left for the
    next run.

    Returns:
        Dict with processed, succeeded and failed counts
    """
    stats = RefundService.sweep_failed()

    logger.info(
        f"Refund retry sweep: {stats['succeeded']}/{stats['processed']} succeeded",
        extra=stats,
    )
    return stats


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def process_refund(self, refund_id: str) -> dict:
    """
    Process one refund asynchronously.

    Gateway failures are recorded on the refund by RefundService and
    picked up by retry_failed_refunds; only lock contention is retried
    here.

    Args:
        refund_id: UUID of the Refund to process

    Returns:
        Dict with the outcome and the refund status
    """
    result = RefundService.process(UUID(refund_id))
    refund = result.data.refund if result.data else None

    if result.success:
        logger.info(f"Refund {refund_id} completed", extra={"refund_id": refund_id})
    else:
        logger.warning(
            f"Refund {refund_id} failed: {result.error}",
            extra={"refund_id": refund_id, "error_code": result.error_code},
        )

    return {
        "refund_id": refund_id,
        "success": result.success,
        "status": refund.status if refund else None,
        "error": result.error,
    }
