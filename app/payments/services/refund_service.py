"""
Refund service for returning money to customers.

This module provides the RefundService class which handles the critical
path for refund settlement:
1. Initiation: exactly one live refund per order, with voucher restoration
2. Processing: gateway call using a three-phase pattern
3. Recovery: bounded automatic retries plus manual admin retry
4. Admin actions: manual refunds, approval, cancellation, statistics

Three-Phase Processing:
    1. Transaction: lock the refund and order rows, re-check what is
       still refundable and move the refund to PROCESSING
    2. No transaction: call the gateway with an idempotency key
    3. Transaction: COMPLETED (and the order's payment status), or FAILED
       with the next automatic retry scheduled if the budget allows

    The gateway call never runs inside a transaction, so a rollback can
    never hide money that already moved.

Usage:
    from payments.services import RefundService

    initiation = RefundService.initiate(
        order.id,
        reason=RefundReason.ORDER_REJECTED,
    )
    if initiation.refund is None:
        print(f"Voucher-only order, restored {len(initiation.vouchers_restored)}")
    else:
        result = RefundService.process(initiation.refund.id)
        if not result.success:
            print(f"Refund failed: {result.error}")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from django_fsm import TransitionNotAllowed, can_proceed

from core.exceptions import NotFoundError
from core.services import BaseService, ServiceResult

from orders.models import Order, OrderPaymentStatus
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import (
    GatewayError,
    GatewayInvalidRequestError,
    LockAcquisitionError,
    RefundInProgressError,
    RefundValidationError,
)
from payments.locks import DistributedLock, order_lock_key, refund_lock_key
from payments.models import Refund
from payments.state_machines import (
    LIVE_REFUND_STATUSES,
    RefundInitiator,
    RefundReason,
    RefundStatus,
    RefundType,
)
from vouchers.services import VoucherService

# =============================================================================
# Constants
# =============================================================================

# Automatic attempts before a FAILED refund needs a manual retry
MAX_REFUND_RETRIES = 3

# Wait between automatic attempts
REFUND_RETRY_DELAY = timedelta(hours=1)

# Typical time for the money to reach the customer's account
REFUND_EXPECTED_COMPLETION = timedelta(days=7)

# Distributed lock TTL for initiation and processing (seconds)
REFUND_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
REFUND_LOCK_TIMEOUT = 10.0


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundInitiation:
    """
    Result of RefundService.initiate().

    Attributes:
        refund: The INITIATED refund, or None for a voucher-only order
        vouchers_restored: Ids of vouchers returned to the customer
    """

    refund: Refund | None
    vouchers_restored: list[uuid.UUID] = field(default_factory=list)

    @property
    def is_monetary(self) -> bool:
        """True when money will be returned through the gateway."""
        return self.refund is not None


@dataclass
class RefundProcessingResult:
    """
    Outcome of one processing attempt.

    Attributes:
        refund: The refund after the attempt (COMPLETED or FAILED)
        gateway_refund_id: Gateway refund id on success
        order_payment_status: Order payment status after a success
    """

    refund: Refund
    gateway_refund_id: str | None = None
    order_payment_status: str | None = None


@dataclass
class RefundStats:
    """Aggregate refund figures for the admin dashboard."""

    total_refunds: int
    total_amount_cents: int
    completed_amount_cents: int
    by_status: dict[str, dict[str, int]]
    by_reason: dict[str, int]
    success_rate: int
    average_processing_hours: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_refunds": self.total_refunds,
            "total_amount_cents": self.total_amount_cents,
            "completed_amount_cents": self.completed_amount_cents,
            "by_status": self.by_status,
            "by_reason": self.by_reason,
            "success_rate": self.success_rate,
            "average_processing_hours": self.average_processing_hours,
        }


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for settling refunds.

    Concurrency:
        - Initiation runs under a per-order DistributedLock and the order
          row lock; the partial unique constraint on Refund is the final
          arbiter of "one live refund per order".
        - process/approve/cancel/retry run under a per-refund
          DistributedLock, so a cancel waits for an in-flight attempt.

    Failure Handling:
        - Gateway errors are recorded on the refund (FAILED, failure
          reason, timeline) and returned as a failed ServiceResult.
        - Transient errors schedule next_retry_at while retry_count is
          below the budget; permanent errors never auto-retry.
        - Validation and lookup errors are raised before anything changes.
    """

    # Gateway adapter - can be injected for testing
    _gateway_adapter: Any = None

    @classmethod
    def get_gateway_adapter(cls) -> Any:
        """Get the gateway adapter (StripeAdapter unless overridden)."""
        return cls._gateway_adapter or StripeAdapter

    @classmethod
    def set_gateway_adapter(cls, adapter: Any) -> None:
        """Set the gateway adapter (for testing). Pass None to reset."""
        cls._gateway_adapter = adapter

    @classmethod
    def get_retry_delay(cls) -> timedelta:
        """Delay before an automatic retry, from REFUND_RETRY_DELAY_MINUTES."""
        minutes = getattr(settings, "REFUND_RETRY_DELAY_MINUTES", None)
        if minutes is None:
            return REFUND_RETRY_DELAY
        return timedelta(minutes=minutes)

    @classmethod
    def get_max_retries(cls) -> int:
        """Automatic retry budget stamped on new refunds."""
        return getattr(settings, "REFUND_MAX_RETRIES", MAX_REFUND_RETRIES)

    # =========================================================================
    # Initiation
    # =========================================================================

    @classmethod
    def initiate(
        cls,
        order_id: uuid.UUID,
        reason: str,
        refund_type: str = RefundType.FULL,
        amount_cents: int | None = None,
        reason_details: str = "",
        initiated_by: str = RefundInitiator.SYSTEM,
        now: datetime | None = None,
    ) -> RefundInitiation:
        """
        Start refunding an order.

        Voucher-only orders get their vouchers back and no refund record.
        Paid orders get an INITIATED refund for the full remaining amount
        or the given partial amount. Vouchers still redeemed against the
        order are restored; ones it listed but that were already returned
        (and possibly spent elsewhere) are left alone.

        Args:
            order_id: Order to refund
            reason: RefundReason value
            refund_type: FULL or PARTIAL
            amount_cents: Required for PARTIAL refunds
            reason_details: Free-text detail
            initiated_by: SYSTEM, ADMIN or CUSTOMER
            now: Initiation instant (defaults to now)

        Returns:
            RefundInitiation with the refund (or None) and restored voucher ids

        Raises:
            NotFoundError: If the order does not exist
            RefundInProgressError: If the order already has a live refund
            RefundValidationError: If nothing is refundable or the amount is bad
            LockAcquisitionError: If another process holds the order lock
        """
        now = now or timezone.now()

        with DistributedLock(
            order_lock_key(order_id),
            ttl=REFUND_LOCK_TTL,
            timeout=REFUND_LOCK_TIMEOUT,
        ):
            with cls.atomic():
                order = cls._get_order_for_update(order_id)
                cls._ensure_no_live_refund(order)

                if order.is_voucher_only:
                    voucher_ids = VoucherService.restore_for_order(
                        order.id, reason, now=now
                    )
                    cls.get_logger().info(
                        "Voucher-only order refunded by restoring vouchers",
                        extra={
                            "order_id": str(order.id),
                            "vouchers_restored": len(voucher_ids),
                            "reason": reason,
                        },
                    )
                    return RefundInitiation(refund=None, vouchers_restored=voucher_ids)

                amount = cls._resolve_amount(order, refund_type, amount_cents)
                refund = cls._create_refund(
                    order,
                    amount_cents=amount,
                    refund_type=refund_type,
                    reason=reason,
                    reason_details=reason_details,
                    initiated_by=initiated_by,
                    status=RefundStatus.INITIATED,
                    note=f"Refund initiated: {reason}",
                    now=now,
                )

                restored = []
                if order.voucher_ids:
                    restored = VoucherService.restore_for_order(
                        order.id, reason, now=now
                    )
                    refund.vouchers_restored = bool(restored)
                    refund.restored_voucher_ids = [str(v) for v in restored]
                    refund.save(
                        update_fields=[
                            "vouchers_restored",
                            "restored_voucher_ids",
                            "updated_at",
                        ]
                    )

        cls.get_logger().info(
            "Refund initiated",
            extra={
                "refund_id": str(refund.id),
                "refund_number": refund.refund_number,
                "order_id": str(order.id),
                "amount_cents": amount,
                "refund_type": refund_type,
                "reason": reason,
                "vouchers_restored": len(restored),
            },
        )
        return RefundInitiation(refund=refund, vouchers_restored=restored)

    @classmethod
    def initiate_manual(
        cls,
        order_id: uuid.UUID,
        amount_cents: int,
        reason: str = RefundReason.ADMIN_INITIATED,
        reason_details: str = "",
        notes: str = "",
        admin=None,
        requires_approval: bool = False,
        now: datetime | None = None,
    ) -> Refund:
        """
        Create an admin refund for a specific amount.

        The refund starts PENDING when sign-off is required, otherwise
        INITIATED. Vouchers are not restored.

        Raises:
            NotFoundError: If the order does not exist
            RefundInProgressError: If the order already has a live refund
            RefundValidationError: If the amount is not refundable
        """
        now = now or timezone.now()

        with DistributedLock(
            order_lock_key(order_id),
            ttl=REFUND_LOCK_TTL,
            timeout=REFUND_LOCK_TIMEOUT,
        ):
            with cls.atomic():
                order = cls._get_order_for_update(order_id)
                cls._ensure_no_live_refund(order)

                amount = cls._resolve_amount(order, RefundType.PARTIAL, amount_cents)
                refundable = cls.available_amount(order)
                refund_type = (
                    RefundType.FULL if amount == refundable else RefundType.PARTIAL
                )

                if requires_approval:
                    status = RefundStatus.PENDING
                    note = "Manual refund awaiting approval"
                else:
                    status = RefundStatus.INITIATED
                    note = "Manual refund initiated"

                refund = cls._create_refund(
                    order,
                    amount_cents=amount,
                    refund_type=refund_type,
                    reason=reason,
                    reason_details=reason_details,
                    initiated_by=RefundInitiator.ADMIN,
                    status=status,
                    note=note,
                    now=now,
                    notes=notes,
                )

        cls.get_logger().info(
            "Manual refund created",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount_cents": amount,
                "status": status,
                "admin_id": getattr(admin, "pk", None),
            },
        )
        return refund

    # =========================================================================
    # Processing
    # =========================================================================

    @classmethod
    def process(
        cls,
        refund_id: uuid.UUID,
        now: datetime | None = None,
    ) -> ServiceResult[RefundProcessingResult]:
        """
        Send a refund to the gateway.

        Args:
            refund_id: Refund in INITIATED, PENDING or FAILED status
            now: Attempt instant (defaults to now)

        Returns:
            ServiceResult.success with the COMPLETED refund, or
            ServiceResult.failure(error_code="REFUND_FAILED") with the
            FAILED refund as data

        Raises:
            NotFoundError: If the refund does not exist
            RefundValidationError: If the refund is not processable or now
                exceeds what is left to refund on its order
            LockAcquisitionError: If another process holds the refund lock
        """
        with cls._refund_lock(refund_id):
            return cls._process_locked(refund_id, now=now)

    @classmethod
    def _process_locked(
        cls,
        refund_id: uuid.UUID,
        now: datetime | None = None,
    ) -> ServiceResult[RefundProcessingResult]:
        """Run the three processing phases. Caller holds the refund lock."""
        now = now or timezone.now()
        logger = cls.get_logger()

        # Phase 1: claim the refund
        over_refund = None
        with cls.atomic():
            refund = cls._get_refund_for_update(refund_id)
            order = Order.objects.select_for_update().get(id=refund.order_id)
            refundable = cls.refundable_amount(order)

            if can_proceed(refund.start_processing) and (
                refund.amount_cents > refundable
            ):
                # Other refunds completed since this one was created
                over_refund = RefundValidationError(
                    f"Refund {refund.refund_number} exceeds the refundable amount "
                    f"of order {order.id}",
                    error_code="REFUND_EXCEEDS_REFUNDABLE",
                    details={
                        "refund_id": str(refund.id),
                        "amount_cents": refund.amount_cents,
                        "refundable_cents": refundable,
                    },
                )
                if refund.next_retry_at is not None:
                    refund.next_retry_at = None
                    refund.save(update_fields=["next_retry_at", "updated_at"])
            else:
                cls._transition(refund, "start_processing", now=now)
                refund.save()

        if over_refund is not None:
            logger.warning(
                "Refund exceeds refundable amount, not sent to gateway",
                extra=over_refund.details,
            )
            raise over_refund

        attempt = refund.attempt_count
        logger.info(
            "Refund processing started",
            extra={
                "refund_id": str(refund.id),
                "attempt": attempt,
                "amount_cents": refund.amount_cents,
            },
        )

        # Phase 2: gateway call, outside any transaction
        try:
            gateway_result = cls._call_gateway(refund, attempt)
        except GatewayError as e:
            refund = cls._record_failure(refund.id, e, now)
            return ServiceResult.failure(
                e.message,
                error_code="REFUND_FAILED",
                data=RefundProcessingResult(refund=refund),
            )
        except Exception as e:
            logger.error(
                f"Unexpected error during refund gateway call: {type(e).__name__}",
                extra={"refund_id": str(refund.id)},
                exc_info=True,
            )
            cls._record_failure(refund.id, e, now)
            raise

        # Phase 3: record the success
        try:
            with cls.atomic():
                refund = cls._get_refund_for_update(refund.id)
                order = Order.objects.select_for_update().get(id=refund.order_id)

                refund.complete(
                    gateway_refund_id=gateway_result.id,
                    response=gateway_result.raw_response,
                    now=now,
                )
                refund.save()

                if cls.completed_total(order) >= order.amount_paid_cents:
                    order.payment_status = OrderPaymentStatus.REFUNDED
                else:
                    order.payment_status = OrderPaymentStatus.PARTIALLY_REFUNDED
                order.save(update_fields=["payment_status", "updated_at"])
        except Exception:
            # Money moved at the gateway but the database did not follow
            logger.error(
                "Failed to record refund after gateway success - reconciliation needed",
                extra={
                    "refund_id": str(refund.id),
                    "gateway_refund_id": gateway_result.id,
                },
                exc_info=True,
            )
            raise

        logger.info(
            "Refund completed",
            extra={
                "refund_id": str(refund.id),
                "gateway_refund_id": gateway_result.id,
                "order_id": str(order.id),
                "order_payment_status": order.payment_status,
            },
        )
        return ServiceResult.success(
            RefundProcessingResult(
                refund=refund,
                gateway_refund_id=gateway_result.id,
                order_payment_status=order.payment_status,
            )
        )

    @classmethod
    def _call_gateway(cls, refund: Refund, attempt: int):
        """Create the gateway refund for one attempt."""
        if not refund.original_payment_id:
            raise GatewayInvalidRequestError(
                "Refund has no original payment to refund against",
                error_code="MISSING_PAYMENT_REFERENCE",
                details={"refund_id": str(refund.id)},
            )

        idempotency_key = IdempotencyKeyGenerator.generate(
            operation="create_refund",
            entity_id=refund.id,
            attempt=attempt,
        )
        return cls.get_gateway_adapter().create_refund(
            payment_intent_id=refund.original_payment_id,
            idempotency_key=idempotency_key,
            amount_cents=refund.amount_cents,
            metadata={
                "refund_id": str(refund.id),
                "refund_number": refund.refund_number,
                "order_id": str(refund.order_id),
            },
        )

    @classmethod
    def _record_failure(
        cls,
        refund_id: uuid.UUID,
        error: Exception,
        now: datetime,
    ) -> Refund:
        """Move a PROCESSING refund to FAILED and schedule the next attempt."""
        reason = getattr(error, "message", None) or str(error)
        retryable = getattr(error, "is_retryable", True)

        with cls.atomic():
            refund = cls._get_refund_for_update(refund_id)
            refund.fail(
                reason=reason,
                retryable=retryable,
                retry_delay=cls.get_retry_delay(),
                now=now,
            )
            refund.save()

        cls.get_logger().error(
            "Refund attempt failed",
            extra={
                "refund_id": str(refund.id),
                "retry_count": refund.retry_count,
                "retryable": retryable,
                "next_retry_at": (
                    refund.next_retry_at.isoformat() if refund.next_retry_at else None
                ),
                "error_code": getattr(error, "error_code", None),
                "reason": reason,
            },
        )
        return refund

    # =========================================================================
    # Retry Sweep
    # =========================================================================

    @classmethod
    def sweep_failed(cls, now: datetime | None = None) -> dict[str, int]:
        """
        Re-process FAILED refunds whose retry is due.

        Refunds are handled one at a time. A refund whose lock is held
        elsewhere, or that changed status since it was selected, counts
        as failed for this run and is picked up again later.

        Returns:
            Dict with processed, succeeded and failed counts
        """
        now = now or timezone.now()
        due_ids = list(
            Refund.objects.filter(
                status=RefundStatus.FAILED,
                retry_count__lt=F("max_retries"),
                next_retry_at__isnull=False,
                next_retry_at__lte=now,
            )
            .order_by("next_retry_at")
            .values_list("id", flat=True)
        )

        stats = {"processed": 0, "succeeded": 0, "failed": 0}
        for refund_id in due_ids:
            stats["processed"] += 1
            try:
                with cls._refund_lock(refund_id, blocking=False):
                    result = cls._process_locked(refund_id, now=now)
            except (LockAcquisitionError, RefundValidationError) as e:
                cls.get_logger().warning(
                    "Skipped refund during retry sweep",
                    extra={"refund_id": str(refund_id), "error_code": e.error_code},
                )
                stats["failed"] += 1
                continue

            if result.success:
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1

        cls.get_logger().info("Failed refund sweep finished", extra=stats)
        return stats

    # =========================================================================
    # Admin Actions
    # =========================================================================

    @classmethod
    def approve(
        cls,
        refund_id: uuid.UUID,
        admin=None,
        now: datetime | None = None,
    ) -> ServiceResult[RefundProcessingResult]:
        """
        Approve a PENDING manual refund and process it.

        Raises:
            NotFoundError: If the refund does not exist
            RefundValidationError: If the refund is not PENDING
        """
        now = now or timezone.now()

        with cls._refund_lock(refund_id):
            with cls.atomic():
                refund = cls._get_refund_for_update(refund_id)
                cls._transition(refund, "approve", admin=admin, now=now)
                refund.save()

            cls.get_logger().info(
                "Refund approved",
                extra={
                    "refund_id": str(refund.id),
                    "admin_id": getattr(admin, "pk", None),
                },
            )
            return cls._process_locked(refund_id, now=now)

    @classmethod
    def cancel(
        cls,
        refund_id: uuid.UUID,
        reason: str,
        admin=None,
        now: datetime | None = None,
    ) -> Refund:
        """
        Cancel a refund that has not completed.

        Vouchers restored at initiation stay restored.

        Raises:
            NotFoundError: If the refund does not exist
            RefundValidationError: If the refund is COMPLETED or CANCELLED
        """
        now = now or timezone.now()

        with cls._refund_lock(refund_id):
            with cls.atomic():
                refund = cls._get_refund_for_update(refund_id)
                cls._transition(refund, "cancel", reason=reason, now=now)
                refund.save()

        cls.get_logger().info(
            "Refund cancelled",
            extra={
                "refund_id": str(refund.id),
                "reason": reason,
                "admin_id": getattr(admin, "pk", None),
            },
        )
        return refund

    @classmethod
    def retry(
        cls,
        refund_id: uuid.UUID,
        admin=None,
        now: datetime | None = None,
    ) -> ServiceResult[RefundProcessingResult]:
        """
        Manually retry a FAILED refund, resetting its retry budget.

        Raises:
            NotFoundError: If the refund does not exist
            RefundValidationError: If the refund is not FAILED
        """
        now = now or timezone.now()

        with cls._refund_lock(refund_id):
            with cls.atomic():
                refund = cls._get_refund_for_update(refund_id)
                if refund.status != RefundStatus.FAILED:
                    raise RefundValidationError(
                        f"Only FAILED refunds can be retried, refund is {refund.status}",
                        error_code="INVALID_REFUND_STATUS",
                        details={
                            "refund_id": str(refund.id),
                            "current_status": refund.status,
                        },
                    )
                refund.retry_count = 0
                refund.next_retry_at = None
                refund.record_status(RefundStatus.FAILED, "Manual retry requested", now)
                refund.save()

            cls.get_logger().info(
                "Manual refund retry",
                extra={
                    "refund_id": str(refund.id),
                    "admin_id": getattr(admin, "pk", None),
                },
            )
            return cls._process_locked(refund_id, now=now)

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_refund(cls, refund_id: uuid.UUID) -> Refund:
        """
        Look up a Refund by ID.

        Raises:
            NotFoundError: If the refund does not exist
        """
        refund = Refund.objects.select_related("order").filter(id=refund_id).first()
        if refund is None:
            raise NotFoundError(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
                details={"refund_id": str(refund_id)},
            )
        return refund

    @classmethod
    def completed_total(cls, order: Order) -> int:
        """Sum of COMPLETED refund amounts for an order."""
        return (
            Refund.objects.filter(
                order=order,
                status=RefundStatus.COMPLETED,
            ).aggregate(total=Sum("amount_cents"))["total"]
            or 0
        )

    @classmethod
    def refundable_amount(cls, order: Order) -> int:
        """Money paid for the order that has not been refunded yet."""
        return order.amount_paid_cents - cls.completed_total(order)

    @classmethod
    def pending_retry_total(cls, order: Order) -> int:
        """Sum of FAILED refund amounts the retry sweep will still attempt."""
        return (
            Refund.objects.filter(
                order=order,
                status=RefundStatus.FAILED,
                retry_count__lt=F("max_retries"),
                next_retry_at__isnull=False,
            ).aggregate(total=Sum("amount_cents"))["total"]
            or 0
        )

    @classmethod
    def available_amount(cls, order: Order) -> int:
        """Refundable money not already claimed by a scheduled retry."""
        return cls.refundable_amount(order) - cls.pending_retry_total(order)

    @classmethod
    def get_stats(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> RefundStats:
        """
        Summarise refunds initiated in an optional date range.

        Returns:
            RefundStats with totals, per-status and per-reason breakdowns,
            success rate (percent of refunds COMPLETED) and average hours
            from initiation to completion
        """
        refunds = Refund.objects.all()
        if start:
            refunds = refunds.filter(initiated_at__gte=start)
        if end:
            refunds = refunds.filter(initiated_at__lte=end)

        totals = refunds.aggregate(
            total_refunds=Count("id"),
            total_amount=Sum("amount_cents"),
            completed_amount=Sum(
                "amount_cents", filter=Q(status=RefundStatus.COMPLETED)
            ),
            completed_count=Count("id", filter=Q(status=RefundStatus.COMPLETED)),
        )

        by_status = {
            row["status"]: {"count": row["count"], "amount_cents": row["amount"] or 0}
            for row in refunds.order_by()
            .values("status")
            .annotate(count=Count("id"), amount=Sum("amount_cents"))
        }
        by_reason = {
            row["reason"]: row["count"]
            for row in refunds.order_by().values("reason").annotate(count=Count("id"))
        }

        total = totals["total_refunds"] or 0
        completed_count = totals["completed_count"] or 0
        success_rate = 0
        if total:
            success_rate = int(
                (Decimal(completed_count) * 100 / Decimal(total)).quantize(
                    Decimal("1"), rounding=ROUND_HALF_UP
                )
            )

        durations = [
            (completed_at - initiated_at).total_seconds()
            for initiated_at, completed_at in refunds.filter(
                status=RefundStatus.COMPLETED,
                completed_at__isnull=False,
            ).values_list("initiated_at", "completed_at")
        ]
        average_hours = 0.0
        if durations:
            average_hours = round(sum(durations) / len(durations) / 3600, 1)

        return RefundStats(
            total_refunds=total,
            total_amount_cents=totals["total_amount"] or 0,
            completed_amount_cents=totals["completed_amount"] or 0,
            by_status=by_status,
            by_reason=by_reason,
            success_rate=success_rate,
            average_processing_hours=average_hours,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _refund_lock(cls, refund_id: uuid.UUID, blocking: bool = True) -> DistributedLock:
        return DistributedLock(
            refund_lock_key(refund_id),
            ttl=REFUND_LOCK_TTL,
            blocking=blocking,
            timeout=REFUND_LOCK_TIMEOUT,
        )

    @classmethod
    def _get_order_for_update(cls, order_id: uuid.UUID) -> Order:
        order = Order.objects.select_for_update().filter(id=order_id).first()
        if order is None:
            raise NotFoundError(
                f"Order {order_id} not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
        return order

    @classmethod
    def _get_refund_for_update(cls, refund_id: uuid.UUID) -> Refund:
        refund = Refund.objects.select_for_update().filter(id=refund_id).first()
        if refund is None:
            raise NotFoundError(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
                details={"refund_id": str(refund_id)},
            )
        return refund

    @classmethod
    def _ensure_no_live_refund(cls, order: Order) -> None:
        existing = (
            Refund.objects.filter(order=order, status__in=LIVE_REFUND_STATUSES)
            .only("id", "refund_number", "status")
            .first()
        )
        if existing is not None:
            cls.get_logger().warning(
                "Refund already in progress for order",
                extra={"order_id": str(order.id), "refund_id": str(existing.id)},
            )
            raise RefundInProgressError(
                f"Refund {existing.refund_number} already in progress for order {order.id}",
                details={
                    "order_id": str(order.id),
                    "refund_id": str(existing.id),
                    "status": existing.status,
                },
            )

    @classmethod
    def _resolve_amount(
        cls,
        order: Order,
        refund_type: str,
        amount_cents: int | None,
    ) -> int:
        """Work out the refund amount, bounded by what is still available."""
        refundable = cls.available_amount(order)
        if refundable <= 0:
            raise RefundValidationError(
                f"Order {order.id} has nothing left to refund",
                error_code="NOTHING_TO_REFUND",
                details={
                    "order_id": str(order.id),
                    "amount_paid_cents": order.amount_paid_cents,
                    "pending_retry_cents": cls.pending_retry_total(order),
                },
            )

        if refund_type == RefundType.FULL:
            return refundable

        if amount_cents is None or amount_cents <= 0 or amount_cents > refundable:
            raise RefundValidationError(
                "Refund amount must be positive and at most the refundable amount",
                error_code="INVALID_REFUND_AMOUNT",
                details={
                    "amount_cents": amount_cents,
                    "refundable_cents": refundable,
                },
            )
        return amount_cents

    @classmethod
    def _create_refund(
        cls,
        order: Order,
        amount_cents: int,
        refund_type: str,
        reason: str,
        reason_details: str,
        initiated_by: str,
        status: str,
        note: str,
        now: datetime,
        notes: str = "",
    ) -> Refund:
        """Insert a live refund, translating a lost race into a conflict."""
        refund = Refund(
            order=order,
            user=order.user,
            amount_cents=amount_cents,
            currency=order.currency,
            refund_type=refund_type,
            reason=reason,
            reason_details=reason_details,
            status=status,
            original_payment_id=order.payment_id,
            initiated_at=now,
            expected_completion_at=now + REFUND_EXPECTED_COMPLETION,
            max_retries=cls.get_max_retries(),
            initiated_by=initiated_by,
            notes=notes,
        )
        refund.record_status(status, note, now)

        try:
            with transaction.atomic():
                refund.save(force_insert=True)
        except IntegrityError:
            cls.get_logger().warning(
                "Lost refund initiation race",
                extra={"order_id": str(order.id)},
            )
            raise RefundInProgressError(
                f"A refund is already in progress for order {order.id}",
                details={"order_id": str(order.id)},
            ) from None
        return refund

    @classmethod
    def _transition(cls, refund: Refund, name: str, **kwargs) -> None:
        """Run an FSM transition, refusing it as a validation error."""
        try:
            getattr(refund, name)(**kwargs)
        except TransitionNotAllowed:
            raise RefundValidationError(
                f"Cannot {name.replace('_', ' ')} refund in {refund.status} status",
                error_code="INVALID_REFUND_STATUS",
                details={
                    "refund_id": str(refund.id),
                    "current_status": refund.status,
                    "action": name,
                },
            ) from None


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
