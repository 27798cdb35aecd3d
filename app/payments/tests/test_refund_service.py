"""
Tests for RefundService.

These tests cover:
1. Initiation: amounts, one live refund per order, voucher restoration
2. Manual refunds and approval
3. Processing: gateway success, transient and permanent failures
4. Recovery: the retry sweep and manual retry after the budget is spent
5. Cancellation and statistics

Redis is mocked by the autouse mock_redis fixture; the gateway is the
mock_gateway fixture.
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta

import pytest
from django.db import connection

from core.exceptions import NotFoundError
from orders.models import Order, OrderPaymentStatus
from payments.adapters import IdempotencyKeyGenerator
from payments.exceptions import (
    GatewayInvalidRequestError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    LockAcquisitionError,
    RefundInProgressError,
    RefundValidationError,
)
from payments.models import Refund
from payments.services import (
    REFUND_EXPECTED_COMPLETION,
    RefundInitiation,
    RefundService,
)
from payments.state_machines import (
    RefundInitiator,
    RefundReason,
    RefundStatus,
    RefundType,
)
from payments.tests.factories import (
    OrderFactory,
    RefundFactory,
    make_refund_result,
    make_voucher_order,
)
from vouchers.models import Voucher
from vouchers.services import VoucherService
from vouchers.state_machines import VoucherStatus
from vouchers.tests.factories import VoucherFactory


def timeline_statuses(refund):
    return [entry["status"] for entry in refund.status_timeline]


# =============================================================================
# Initiation
# =============================================================================


class TestInitiate:
    """Tests for RefundService.initiate()."""

    def test_full_refund_of_paid_order(self, db, paid_order, fixed_now):
        initiation = RefundService.initiate(
            paid_order.id,
            reason=RefundReason.ORDER_REJECTED,
            now=fixed_now,
        )

        refund = initiation.refund
        assert isinstance(initiation, RefundInitiation)
        assert initiation.is_monetary is True
        assert initiation.vouchers_restored == []
        assert refund.status == RefundStatus.INITIATED
        assert refund.amount_cents == 25000
        assert refund.refund_type == RefundType.FULL
        assert refund.original_payment_id == paid_order.payment_id
        assert refund.user == paid_order.user
        assert refund.initiated_at == fixed_now
        assert refund.expected_completion_at == fixed_now + REFUND_EXPECTED_COMPLETION
        assert refund.initiated_by == RefundInitiator.SYSTEM
        assert timeline_statuses(refund) == [RefundStatus.INITIATED]

    def test_partial_refund(self, db, paid_order):
        initiation = RefundService.initiate(
            paid_order.id,
            reason=RefundReason.QUALITY_ISSUE,
            refund_type=RefundType.PARTIAL,
            amount_cents=5000,
            reason_details="Cold curry",
        )

        assert initiation.refund.amount_cents == 5000
        assert initiation.refund.refund_type == RefundType.PARTIAL
        assert initiation.refund.reason_details == "Cold curry"

    def test_full_refund_covers_only_what_is_left(self, db, paid_order):
        RefundFactory(
            order=paid_order,
            status=RefundStatus.COMPLETED,
            amount_cents=10000,
            refund_type=RefundType.PARTIAL,
        )

        initiation = RefundService.initiate(
            paid_order.id, reason=RefundReason.ORDER_CANCELLED_BY_KITCHEN
        )

        assert initiation.refund.amount_cents == 15000

    @pytest.mark.parametrize("amount", [0, -100, 25001])
    def test_partial_amount_out_of_bounds(self, db, paid_order, amount):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.initiate(
                paid_order.id,
                reason=RefundReason.QUALITY_ISSUE,
                refund_type=RefundType.PARTIAL,
                amount_cents=amount,
            )

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"
        assert Refund.objects.count() == 0

    def test_partial_without_amount(self, db, paid_order):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.initiate(
                paid_order.id,
                reason=RefundReason.QUALITY_ISSUE,
                refund_type=RefundType.PARTIAL,
            )

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"

    def test_nothing_left_to_refund(self, db, completed_refund):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.initiate(
                completed_refund.order_id, reason=RefundReason.OTHER
            )

        assert exc_info.value.error_code == "NOTHING_TO_REFUND"

    def test_order_not_found(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            RefundService.initiate(uuid.uuid4(), reason=RefundReason.OTHER)

        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    def test_initiation_takes_order_lock(self, db, paid_order, mock_redis):
        RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        lock_key = mock_redis.set.call_args[0][0]
        assert lock_key == f"lock:refund:order:{paid_order.id}"
        mock_redis.eval.assert_called_once()

    def test_order_lock_held_elsewhere(self, db, paid_order, mock_redis, mocker):
        mocker.patch("payments.services.refund_service.REFUND_LOCK_TIMEOUT", 0.05)
        mock_redis.set.return_value = False

        with pytest.raises(LockAcquisitionError):
            RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        assert Refund.objects.count() == 0


class TestOneLiveRefund:
    """
    Tests for the one-live-refund-per-order rule.

    Why it matters: a second live refund for the same order could pay
    the customer back twice.
    """

    @pytest.mark.parametrize(
        "live_status",
        [RefundStatus.PENDING, RefundStatus.INITIATED, RefundStatus.PROCESSING],
    )
    def test_rejects_while_refund_live(self, db, paid_order, live_status):
        existing = RefundFactory(
            order=paid_order,
            status=live_status,
            amount_cents=1000,
            refund_type=RefundType.PARTIAL,
        )

        with pytest.raises(RefundInProgressError) as exc_info:
            RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        assert exc_info.value.error_code == "REFUND_IN_PROGRESS"
        assert exc_info.value.details["refund_id"] == str(existing.id)
        assert Refund.objects.filter(order=paid_order).count() == 1

    def test_failed_refund_without_scheduled_retry_does_not_block(
        self, db, failed_refund
    ):
        Refund.objects.filter(pk=failed_refund.pk).update(next_retry_at=None)

        initiation = RefundService.initiate(
            failed_refund.order_id, reason=RefundReason.OTHER
        )

        assert initiation.refund.status == RefundStatus.INITIATED
        assert initiation.refund.amount_cents == 25000
        assert Refund.objects.filter(order_id=failed_refund.order_id).count() == 2

    def test_cancelled_refund_does_not_block(self, db, paid_order):
        RefundFactory(order=paid_order, status=RefundStatus.CANCELLED)

        initiation = RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        assert initiation.refund is not None

    def test_lost_race_becomes_conflict(self, db, paid_order, mocker):
        """
        A concurrent insert that slips past the live-refund check is
        stopped by the database constraint.
        """
        RefundFactory(order=paid_order)
        mocker.patch.object(RefundService, "_ensure_no_live_refund")

        with pytest.raises(RefundInProgressError):
            RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        assert Refund.objects.filter(order=paid_order).count() == 1

    def test_initiate_twice(self, db, paid_order):
        RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        with pytest.raises(RefundInProgressError):
            RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)


@pytest.mark.django_db(transaction=True)
class TestInitiateConcurrent:
    """
    Initiation with several requests racing on their own connections.

    These tests need transaction=True so each thread commits for real.
    """

    def test_simultaneous_initiations_create_one_refund(self):
        """
        N simultaneous initiations for one order.

        Why it matters: exactly one refund may exist; every other request
        must come back as a conflict rather than a second payout.
        """
        requests = 5
        order = OrderFactory(amount_paid_cents=25000)

        def initiate():
            connection.close()  # Force new connection for thread
            try:
                return RefundService.initiate(
                    order.id, reason=RefundReason.ORDER_REJECTED
                )
            except RefundInProgressError as e:
                return e
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=requests) as executor:
            futures = [executor.submit(initiate) for _ in range(requests)]
            results = [future.result() for future in as_completed(futures)]

        initiations = [r for r in results if isinstance(r, RefundInitiation)]
        conflicts = [r for r in results if isinstance(r, RefundInProgressError)]
        assert len(initiations) == 1
        assert len(conflicts) == requests - 1
        assert all(c.error_code == "REFUND_IN_PROGRESS" for c in conflicts)

        refund = Refund.objects.get(order=order)
        assert refund.id == initiations[0].refund.id
        assert refund.amount_cents == 25000


class TestInitiateVoucherRestoration:
    """Tests for vouchers returned when an order is refunded."""

    def test_voucher_only_order(self, db, user, mock_gateway):
        order, vouchers = make_voucher_order(user, voucher_count=2)

        initiation = RefundService.initiate(
            order.id, reason=RefundReason.ORDER_REJECTED
        )

        assert initiation.refund is None
        assert initiation.is_monetary is False
        assert set(initiation.vouchers_restored) == {v.id for v in vouchers}
        assert Refund.objects.count() == 0
        for voucher in vouchers:
            assert Voucher.objects.get(pk=voucher.pk).status == VoucherStatus.RESTORED
        mock_gateway.create_refund.assert_not_called()

    def test_split_order_restores_vouchers_with_refund(self, db, user):
        order, vouchers = make_voucher_order(
            user, voucher_count=2, amount_paid_cents=8000
        )

        initiation = RefundService.initiate(
            order.id, reason=RefundReason.ORDER_CANCELLED_BY_KITCHEN
        )

        refund = Refund.objects.get(pk=initiation.refund.pk)
        assert refund.amount_cents == 8000
        assert refund.vouchers_restored is True
        assert set(refund.restored_voucher_ids) == {str(v.id) for v in vouchers}
        assert len(initiation.vouchers_restored) == 2

    def test_already_restored_vouchers_skipped(self, db, user):
        order, (spent,) = make_voucher_order(user, voucher_count=1)
        unused = VoucherFactory(user=user)
        Order.objects.filter(pk=order.pk).update(
            voucher_ids=[str(spent.id), str(unused.id)]
        )

        initiation = RefundService.initiate(order.id, reason=RefundReason.OTHER)

        assert initiation.vouchers_restored == [spent.id]
        assert Voucher.objects.get(pk=unused.pk).status == VoucherStatus.AVAILABLE

    def test_voucher_spent_on_another_order_stays_redeemed(self, db, user):
        """
        A listed voucher that was returned and then spent on a later order
        belongs to that later order now.

        Why it matters: restoring it again would let the customer spend
        the same voucher twice.
        """
        first, (voucher,) = make_voucher_order(user, voucher_count=1)
        VoucherService.restore([voucher.id], reason="admin correction")
        second_order_id = uuid.uuid4()
        Voucher.objects.filter(pk=voucher.pk).update(
            status=VoucherStatus.REDEEMED,
            redeemed_order_id=second_order_id,
        )

        initiation = RefundService.initiate(first.id, reason=RefundReason.OTHER)

        assert initiation.vouchers_restored == []
        voucher = Voucher.objects.get(pk=voucher.pk)
        assert voucher.status == VoucherStatus.REDEEMED
        assert voucher.redeemed_order_id == second_order_id


# =============================================================================
# Manual Refunds
# =============================================================================


class TestInitiateManual:
    """Tests for RefundService.initiate_manual()."""

    def test_manual_refund_without_approval(self, db, paid_order, admin_user):
        refund = RefundService.initiate_manual(
            paid_order.id,
            amount_cents=5000,
            notes="Goodwill",
            admin=admin_user,
        )

        assert refund.status == RefundStatus.INITIATED
        assert refund.refund_type == RefundType.PARTIAL
        assert refund.reason == RefundReason.ADMIN_INITIATED
        assert refund.initiated_by == RefundInitiator.ADMIN
        assert refund.notes == "Goodwill"

    def test_manual_refund_requiring_approval(self, db, paid_order, admin_user):
        refund = RefundService.initiate_manual(
            paid_order.id,
            amount_cents=5000,
            admin=admin_user,
            requires_approval=True,
        )

        assert refund.status == RefundStatus.PENDING
        assert refund.status_timeline[-1]["note"] == "Manual refund awaiting approval"

    def test_full_amount_is_full_refund(self, db, paid_order):
        refund = RefundService.initiate_manual(paid_order.id, amount_cents=25000)

        assert refund.refund_type == RefundType.FULL

    def test_amount_above_refundable(self, db, paid_order):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.initiate_manual(paid_order.id, amount_cents=30000)

        assert exc_info.value.details["refundable_cents"] == 25000

    def test_manual_refund_leaves_vouchers_alone(self, db, user):
        order, (voucher,) = make_voucher_order(
            user, voucher_count=1, amount_paid_cents=8000
        )

        refund = RefundService.initiate_manual(order.id, amount_cents=2000)

        assert refund.vouchers_restored is False
        assert Voucher.objects.get(pk=voucher.pk).status == VoucherStatus.REDEEMED

    def test_blocked_by_live_refund(self, db, initiated_refund):
        with pytest.raises(RefundInProgressError):
            RefundService.initiate_manual(initiated_refund.order_id, amount_cents=100)


# =============================================================================
# Processing
# =============================================================================


class TestProcess:
    """Tests for RefundService.process()."""

    def test_success_completes_refund(
        self, db, initiated_refund, mock_gateway, fixed_now
    ):
        result = RefundService.process(initiated_refund.id, now=fixed_now)

        assert result.success is True
        assert result.data.gateway_refund_id == "re_test123"
        assert result.data.order_payment_status == OrderPaymentStatus.REFUNDED

        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.gateway_refund_id == "re_test123"
        assert refund.completed_at == fixed_now
        assert refund.gateway_response == {"id": "re_test123", "status": "succeeded"}
        assert timeline_statuses(refund) == [
            RefundStatus.INITIATED,
            RefundStatus.PROCESSING,
            RefundStatus.COMPLETED,
        ]
        order = Order.objects.get(pk=initiated_refund.order_id)
        assert order.payment_status == OrderPaymentStatus.REFUNDED

    def test_gateway_called_with_idempotency_key(
        self, db, initiated_refund, mock_gateway
    ):
        RefundService.process(initiated_refund.id)

        mock_gateway.create_refund.assert_called_once_with(
            payment_intent_id=initiated_refund.original_payment_id,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_refund", initiated_refund.id, attempt=1
            ),
            amount_cents=25000,
            metadata={
                "refund_id": str(initiated_refund.id),
                "refund_number": initiated_refund.refund_number,
                "order_id": str(initiated_refund.order_id),
            },
        )

    def test_partial_refund_marks_order_partially_refunded(
        self, db, paid_order, mock_gateway
    ):
        refund = RefundFactory(
            order=paid_order,
            amount_cents=5000,
            refund_type=RefundType.PARTIAL,
        )

        result = RefundService.process(refund.id)

        assert result.data.order_payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED
        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

    def test_partials_adding_up_mark_order_refunded(
        self, db, paid_order, mock_gateway
    ):
        RefundFactory(
            order=paid_order,
            status=RefundStatus.COMPLETED,
            amount_cents=20000,
            refund_type=RefundType.PARTIAL,
        )
        refund = RefundFactory(
            order=paid_order,
            amount_cents=5000,
            refund_type=RefundType.PARTIAL,
        )

        RefundService.process(refund.id)

        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == OrderPaymentStatus.REFUNDED

    def test_transient_failure_schedules_retry(
        self, db, initiated_refund, mock_gateway, fixed_now
    ):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError(
            "Gateway unavailable"
        )

        result = RefundService.process(initiated_refund.id, now=fixed_now)

        assert result.success is False
        assert result.error == "Gateway unavailable"
        assert result.error_code == "REFUND_FAILED"
        assert result.data.refund.status == RefundStatus.FAILED

        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.retry_count == 1
        assert refund.failed_at == fixed_now
        assert refund.failure_reason == "Gateway unavailable"
        assert refund.next_retry_at == fixed_now + timedelta(hours=1)
        assert refund.can_auto_retry is True
        order = Order.objects.get(pk=initiated_refund.order_id)
        assert order.payment_status == OrderPaymentStatus.PAID

    def test_timeout_is_transient(self, db, initiated_refund, mock_gateway, fixed_now):
        mock_gateway.create_refund.side_effect = GatewayTimeoutError("timed out")

        RefundService.process(initiated_refund.id, now=fixed_now)

        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.next_retry_at == fixed_now + timedelta(hours=1)

    def test_permanent_failure_never_auto_retried(
        self, db, initiated_refund, mock_gateway, fixed_now
    ):
        mock_gateway.create_refund.side_effect = GatewayInvalidRequestError(
            "Charge already refunded",
            stripe_code="charge_already_refunded",
        )

        result = RefundService.process(initiated_refund.id, now=fixed_now)

        assert result.success is False
        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.retry_count == 1
        assert refund.next_retry_at is None
        assert refund.can_auto_retry is False

    def test_missing_payment_reference(self, db, paid_order, mock_gateway):
        refund = RefundFactory(order=paid_order, original_payment_id=None)

        result = RefundService.process(refund.id)

        assert result.success is False
        mock_gateway.create_refund.assert_not_called()
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.next_retry_at is None

    def test_retry_attempt_uses_new_idempotency_key(
        self, db, failed_refund, mock_gateway, fixed_now
    ):
        RefundService.process(failed_refund.id, now=fixed_now)

        key = mock_gateway.create_refund.call_args.kwargs["idempotency_key"]
        assert key == IdempotencyKeyGenerator.generate(
            "create_refund", failed_refund.id, attempt=2
        )

    def test_unexpected_error_recorded_and_raised(
        self, db, initiated_refund, mock_gateway
    ):
        mock_gateway.create_refund.side_effect = RuntimeError("socket closed")

        with pytest.raises(RuntimeError):
            RefundService.process(initiated_refund.id)

        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "socket closed"
        assert refund.next_retry_at is not None

    def test_database_failure_after_gateway_success_is_raised(
        self, db, initiated_refund, mock_gateway, mocker
    ):
        """
        Money moved but the database did not follow.

        Why it matters: the refund must stay PROCESSING (never FAILED, which
        would invite a second payout) and the error must surface.
        """
        # The first call is the pre-gateway refundable check
        mocker.patch.object(
            RefundService,
            "completed_total",
            side_effect=[0, RuntimeError("db down")],
        )

        with pytest.raises(RuntimeError):
            RefundService.process(initiated_refund.id)

        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.status == RefundStatus.PROCESSING
        mock_gateway.create_refund.assert_called_once()

    @pytest.mark.parametrize(
        "status",
        [RefundStatus.PROCESSING, RefundStatus.COMPLETED, RefundStatus.CANCELLED],
    )
    def test_not_processable(self, db, status, mock_gateway):
        refund = RefundFactory(status=status)

        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.process(refund.id)

        assert exc_info.value.error_code == "INVALID_REFUND_STATUS"
        assert exc_info.value.details["current_status"] == status
        mock_gateway.create_refund.assert_not_called()

    def test_refund_not_found(self, db, mock_gateway):
        with pytest.raises(NotFoundError) as exc_info:
            RefundService.process(uuid.uuid4())

        assert exc_info.value.error_code == "REFUND_NOT_FOUND"

    def test_processing_takes_refund_lock(
        self, db, initiated_refund, mock_gateway, mock_redis
    ):
        RefundService.process(initiated_refund.id)

        lock_key = mock_redis.set.call_args[0][0]
        assert lock_key == f"lock:refund:{initiated_refund.id}"


# =============================================================================
# Recovery
# =============================================================================


class TestSweepFailed:
    """Tests for RefundService.sweep_failed()."""

    def test_retries_due_refund(self, db, failed_refund, mock_gateway, fixed_now):
        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats == {"processed": 1, "succeeded": 1, "failed": 0}
        refund = Refund.objects.get(pk=failed_refund.pk)
        assert refund.status == RefundStatus.COMPLETED

    def test_skips_refund_not_yet_due(self, db, paid_order, mock_gateway, fixed_now):
        RefundFactory(
            order=paid_order,
            status=RefundStatus.FAILED,
            retry_count=1,
            next_retry_at=fixed_now + timedelta(minutes=5),
        )

        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats["processed"] == 0
        mock_gateway.create_refund.assert_not_called()

    def test_skips_exhausted_and_unscheduled_refunds(
        self, db, mock_gateway, fixed_now
    ):
        RefundFactory(
            status=RefundStatus.FAILED,
            retry_count=3,
            max_retries=3,
            next_retry_at=fixed_now - timedelta(hours=1),
        )
        RefundFactory(status=RefundStatus.FAILED, retry_count=1, next_retry_at=None)

        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats["processed"] == 0

    def test_counts_failed_attempts(self, db, failed_refund, mock_gateway, fixed_now):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError("down")

        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats == {"processed": 1, "succeeded": 0, "failed": 1}
        refund = Refund.objects.get(pk=failed_refund.pk)
        assert refund.retry_count == 2

    def test_locked_refund_counted_as_failed(
        self, db, failed_refund, mock_gateway, mock_redis, fixed_now
    ):
        mock_redis.set.return_value = False

        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats == {"processed": 1, "succeeded": 0, "failed": 1}
        refund = Refund.objects.get(pk=failed_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.retry_count == 1
        mock_gateway.create_refund.assert_not_called()

    def test_oldest_due_first(self, db, mock_gateway, fixed_now):
        later = RefundFactory(
            status=RefundStatus.FAILED,
            retry_count=1,
            next_retry_at=fixed_now - timedelta(minutes=5),
        )
        earlier = RefundFactory(
            status=RefundStatus.FAILED,
            retry_count=1,
            next_retry_at=fixed_now - timedelta(hours=2),
        )

        RefundService.sweep_failed(now=fixed_now)

        refund_ids = [
            call.kwargs["metadata"]["refund_id"]
            for call in mock_gateway.create_refund.call_args_list
        ]
        assert refund_ids == [str(earlier.id), str(later.id)]


class TestRetryExhaustionAndManualRetry:
    """
    End-to-end recovery: three failed attempts, then an admin retry.

    Why it matters: automatic retries must stop at the budget, and an
    admin must still be able to push the refund through afterwards.
    """

    def test_three_failures_then_manual_retry(
        self, db, paid_order, admin_user, mock_gateway, fixed_now
    ):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError("down")
        refund = RefundService.initiate(
            paid_order.id, reason=RefundReason.ORDER_REJECTED, now=fixed_now
        ).refund

        # Attempt 1
        RefundService.process(refund.id, now=fixed_now)
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.retry_count == 1
        assert refund.next_retry_at == fixed_now + timedelta(hours=1)

        # Attempt 2 via the sweep
        second = fixed_now + timedelta(hours=1)
        assert RefundService.sweep_failed(now=second)["processed"] == 1
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.retry_count == 2
        assert refund.next_retry_at == second + timedelta(hours=1)

        # Attempt 3 spends the budget
        third = second + timedelta(hours=1)
        assert RefundService.sweep_failed(now=third)["processed"] == 1
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.retry_count == 3
        assert refund.next_retry_at is None
        assert refund.can_auto_retry is False

        # The sweep leaves it alone from now on
        assert RefundService.sweep_failed(now=third + timedelta(days=1))[
            "processed"
        ] == 0
        assert mock_gateway.create_refund.call_count == 3

        # Admin retry succeeds
        mock_gateway.create_refund.side_effect = None
        mock_gateway.create_refund.return_value = make_refund_result("re_final")
        result = RefundService.retry(
            refund.id, admin=admin_user, now=third + timedelta(days=1)
        )

        assert result.success is True
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.gateway_refund_id == "re_final"
        assert refund.retry_count == 0
        notes = [entry["note"] for entry in refund.status_timeline]
        assert "Manual retry requested" in notes
        assert timeline_statuses(refund).count(RefundStatus.FAILED) == 4
        assert refund.attempt_count == 4
        keys = {
            call.kwargs["idempotency_key"]
            for call in mock_gateway.create_refund.call_args_list
        }
        assert len(keys) == 4
        order = Order.objects.get(pk=paid_order.pk)
        assert order.payment_status == OrderPaymentStatus.REFUNDED


class TestRetry:
    """Tests for RefundService.retry()."""

    def test_manual_retry_uses_fresh_idempotency_key(
        self, db, initiated_refund, mock_gateway
    ):
        """
        The gateway replays the stored response for a reused key, errors
        included.

        Why it matters: an admin retry sent with the first attempt's key
        would just get the first failure back.
        """
        mock_gateway.create_refund.side_effect = [
            GatewayUnavailableError("down"),
            make_refund_result("re_after_retry"),
        ]
        RefundService.process(initiated_refund.id)

        result = RefundService.retry(initiated_refund.id)

        assert result.success is True
        keys = [
            call.kwargs["idempotency_key"]
            for call in mock_gateway.create_refund.call_args_list
        ]
        assert keys == [
            IdempotencyKeyGenerator.generate(
                "create_refund", initiated_refund.id, attempt=1
            ),
            IdempotencyKeyGenerator.generate(
                "create_refund", initiated_refund.id, attempt=2
            ),
        ]
        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.retry_count == 0
        assert refund.attempt_count == 2

    def test_retry_resets_budget_before_attempt(
        self, db, failed_refund, mock_gateway, fixed_now
    ):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError("down")

        RefundService.retry(failed_refund.id, now=fixed_now)

        refund = Refund.objects.get(pk=failed_refund.pk)
        assert refund.retry_count == 1
        assert refund.next_retry_at == fixed_now + timedelta(hours=1)

    @pytest.mark.parametrize(
        "status",
        [RefundStatus.INITIATED, RefundStatus.COMPLETED, RefundStatus.CANCELLED],
    )
    def test_only_failed_refunds(self, db, status, mock_gateway):
        refund = RefundFactory(status=status)

        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.retry(refund.id)

        assert exc_info.value.error_code == "INVALID_REFUND_STATUS"
        mock_gateway.create_refund.assert_not_called()


# =============================================================================
# Admin Actions
# =============================================================================


class TestApprove:
    """Tests for RefundService.approve()."""

    def test_approve_processes_refund(
        self, db, pending_refund, admin_user, mock_gateway, fixed_now
    ):
        result = RefundService.approve(pending_refund.id, admin=admin_user, now=fixed_now)

        assert result.success is True
        refund = Refund.objects.get(pk=pending_refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.approved_by == admin_user
        assert refund.approved_at == fixed_now
        assert timeline_statuses(refund)[-3:] == [
            RefundStatus.INITIATED,
            RefundStatus.PROCESSING,
            RefundStatus.COMPLETED,
        ]

    def test_approve_then_gateway_failure(
        self, db, pending_refund, admin_user, mock_gateway
    ):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError("down")

        result = RefundService.approve(pending_refund.id, admin=admin_user)

        assert result.success is False
        refund = Refund.objects.get(pk=pending_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.approved_by == admin_user

    def test_cannot_approve_initiated(self, db, initiated_refund, mock_gateway):
        with pytest.raises(RefundValidationError):
            RefundService.approve(initiated_refund.id)

        mock_gateway.create_refund.assert_not_called()


class TestCancel:
    """Tests for RefundService.cancel()."""

    @pytest.mark.parametrize(
        "status",
        [
            RefundStatus.PENDING,
            RefundStatus.INITIATED,
            RefundStatus.PROCESSING,
            RefundStatus.FAILED,
        ],
    )
    def test_cancel(self, db, status, admin_user, fixed_now):
        refund = RefundFactory(status=status)

        cancelled = RefundService.cancel(
            refund.id, reason="Replacement sent", admin=admin_user, now=fixed_now
        )

        assert cancelled.status == RefundStatus.CANCELLED
        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.CANCELLED
        assert refund.cancellation_reason == "Replacement sent"
        assert refund.cancelled_at == fixed_now

    @pytest.mark.parametrize(
        "status",
        [RefundStatus.COMPLETED, RefundStatus.CANCELLED],
    )
    def test_cannot_cancel_finished_refund(self, db, status):
        refund = RefundFactory(status=status)

        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.cancel(refund.id, reason="too late")

        assert exc_info.value.error_code == "INVALID_REFUND_STATUS"
        assert Refund.objects.get(pk=refund.pk).status == status

    def test_cancel_keeps_restored_vouchers(self, db, user):
        order, (voucher,) = make_voucher_order(
            user, voucher_count=1, amount_paid_cents=8000
        )
        refund = RefundService.initiate(order.id, reason=RefundReason.OTHER).refund

        RefundService.cancel(refund.id, reason="Handled offline")

        assert Voucher.objects.get(pk=voucher.pk).status == VoucherStatus.RESTORED

    def test_cancel_frees_order_for_new_refund(self, db, initiated_refund):
        RefundService.cancel(initiated_refund.id, reason="Wrong amount")

        initiation = RefundService.initiate(
            initiated_refund.order_id, reason=RefundReason.OTHER
        )

        assert initiation.refund.status == RefundStatus.INITIATED


class TestOverRefundGuard:
    """
    Tests that completed refunds never add up to more than the order paid.

    Why it matters: a FAILED refund stays retryable, so a second refund
    created alongside it could pay the customer back twice.
    """

    def test_scheduled_retry_reserves_its_amount(self, db, failed_refund):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.initiate(failed_refund.order_id, reason=RefundReason.OTHER)

        assert exc_info.value.error_code == "NOTHING_TO_REFUND"
        assert exc_info.value.details["pending_retry_cents"] == 25000
        assert Refund.objects.filter(order_id=failed_refund.order_id).count() == 1

    def test_full_refund_covers_what_retries_leave(self, db, paid_order, fixed_now):
        RefundFactory(
            order=paid_order,
            status=RefundStatus.FAILED,
            refund_type=RefundType.PARTIAL,
            amount_cents=10000,
            retry_count=1,
            next_retry_at=fixed_now + timedelta(hours=1),
        )

        initiation = RefundService.initiate(paid_order.id, reason=RefundReason.OTHER)

        assert initiation.refund.amount_cents == 15000

    def test_old_refund_cannot_complete_after_replacement(
        self, db, paid_order, admin_user, mock_gateway
    ):
        """A permanently failed refund is replaced, then an admin retries it."""
        mock_gateway.create_refund.side_effect = GatewayInvalidRequestError(
            "Charge disputed"
        )
        first = RefundService.initiate(
            paid_order.id, reason=RefundReason.ORDER_REJECTED
        ).refund
        RefundService.process(first.id)

        mock_gateway.create_refund.side_effect = None
        second = RefundService.initiate(
            paid_order.id, reason=RefundReason.ORDER_REJECTED
        ).refund
        assert RefundService.process(second.id).success is True

        with pytest.raises(RefundValidationError) as exc_info:
            RefundService.retry(first.id, admin=admin_user)

        assert exc_info.value.error_code == "REFUND_EXCEEDS_REFUNDABLE"
        assert exc_info.value.details["refundable_cents"] == 0
        assert Refund.objects.get(pk=first.pk).status == RefundStatus.FAILED
        assert mock_gateway.create_refund.call_count == 2
        assert RefundService.completed_total(paid_order) == 25000

    def test_sweep_drops_retry_that_would_over_refund(
        self, db, completed_refund, failed_refund, mock_gateway, fixed_now
    ):
        stats = RefundService.sweep_failed(now=fixed_now)

        assert stats == {"processed": 1, "succeeded": 0, "failed": 1}
        mock_gateway.create_refund.assert_not_called()
        refund = Refund.objects.get(pk=failed_refund.pk)
        assert refund.status == RefundStatus.FAILED
        assert refund.next_retry_at is None
        assert RefundService.sweep_failed(now=fixed_now)["processed"] == 0


# =============================================================================
# Queries
# =============================================================================


class TestRefundableAmount:
    """Tests for completed_total and refundable_amount."""

    def test_only_completed_refunds_count(self, db, paid_order):
        RefundFactory(
            order=paid_order,
            status=RefundStatus.COMPLETED,
            amount_cents=5000,
        )
        RefundFactory(
            order=paid_order,
            status=RefundStatus.FAILED,
            amount_cents=7000,
        )

        assert RefundService.completed_total(paid_order) == 5000
        assert RefundService.refundable_amount(paid_order) == 20000


class TestGetStats:
    """Tests for RefundService.get_stats()."""

    def test_empty(self, db):
        stats = RefundService.get_stats()

        assert stats.total_refunds == 0
        assert stats.success_rate == 0
        assert stats.average_processing_hours == 0.0

    def test_aggregates(self, db, fixed_now):
        RefundFactory(
            status=RefundStatus.COMPLETED,
            amount_cents=25000,
            initiated_at=fixed_now,
            completed_at=fixed_now + timedelta(hours=2),
        )
        RefundFactory(
            status=RefundStatus.FAILED,
            amount_cents=5000,
            initiated_at=fixed_now,
        )
        RefundFactory(
            status=RefundStatus.INITIATED,
            amount_cents=1000,
            reason=RefundReason.QUALITY_ISSUE,
            initiated_at=fixed_now,
        )

        stats = RefundService.get_stats().to_dict()

        assert stats["total_refunds"] == 3
        assert stats["total_amount_cents"] == 31000
        assert stats["completed_amount_cents"] == 25000
        assert stats["success_rate"] == 33
        assert stats["average_processing_hours"] == 2.0
        assert stats["by_status"][RefundStatus.COMPLETED] == {
            "count": 1,
            "amount_cents": 25000,
        }
        assert stats["by_status"][RefundStatus.FAILED]["count"] == 1
        assert stats["by_reason"] == {
            RefundReason.ORDER_REJECTED: 2,
            RefundReason.QUALITY_ISSUE: 1,
        }

    def test_date_range(self, db, fixed_now):
        RefundFactory(initiated_at=fixed_now - timedelta(days=10))
        RefundFactory(initiated_at=fixed_now)

        stats = RefundService.get_stats(start=fixed_now - timedelta(days=1))

        assert stats.total_refunds == 1

    def test_end_bound(self, db, fixed_now):
        RefundFactory(initiated_at=fixed_now - timedelta(days=10))
        RefundFactory(initiated_at=fixed_now)

        stats = RefundService.get_stats(end=fixed_now - timedelta(days=1))

        assert stats.total_refunds == 1
