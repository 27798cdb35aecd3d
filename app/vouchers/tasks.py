"""
Celery tasks for the voucher ledger.

This module provides periodic tasks for:
- Expiring vouchers past their expiry date
- Lapsing subscriptions whose vouchers have expired

Usage:
    from vouchers.tasks import expire_vouchers

    # Run the sweep now instead of waiting for celery-beat
    expire_vouchers.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from vouchers.services import SubscriptionService, VoucherService

logger = logging.getLogger(__name__)


@shared_task
def expire_vouchers() -> dict:
    """
    Periodic task to expire vouchers and lapse subscriptions.

    Scheduled daily via celery-beat (02:30 UTC). Safe to run more than
    once: a second run over the same data changes nothing.

    Returns:
        Dict with counts of vouchers and subscriptions expired
    """
    voucher_result = VoucherService.sweep_expiry()
    subscriptions_expired = SubscriptionService.expire_lapsed()

    logger.info(
        f"Expiry sweep finished: {voucher_result['expired_count']} vouchers, "
        f"{subscriptions_expired} subscriptions",
        extra={
            "expired_count": voucher_result["expired_count"],
            "subscriptions_expired": subscriptions_expired,
        },
    )

    return {
        "expired_count": voucher_result["expired_count"],
        "subscriptions_expired": subscriptions_expired,
    }
