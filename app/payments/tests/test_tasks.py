"""
Tests for refund Celery tasks.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from payments.exceptions import GatewayUnavailableError
from payments.models import Refund
from payments.state_machines import RefundStatus
from payments.tasks import process_refund, retry_failed_refunds
from payments.tests.factories import RefundFactory


@pytest.mark.django_db
class TestRetryFailedRefundsTask:
    """Tests for the retry_failed_refunds periodic task."""

    def test_retries_due_refunds(self, mock_gateway):
        due = RefundFactory(
            status=RefundStatus.FAILED,
            retry_count=1,
            next_retry_at=timezone.now() - timedelta(minutes=1),
        )
        RefundFactory(
            status=RefundStatus.FAILED,
            retry_count=1,
            next_retry_at=timezone.now() + timedelta(hours=1),
        )

        result = retry_failed_refunds()

        assert result == {"processed": 1, "succeeded": 1, "failed": 0}
        assert Refund.objects.get(pk=due.pk).status == RefundStatus.COMPLETED

    def test_nothing_due(self, mock_gateway):
        result = retry_failed_refunds()

        assert result == {"processed": 0, "succeeded": 0, "failed": 0}
        mock_gateway.create_refund.assert_not_called()


@pytest.mark.django_db
class TestProcessRefundTask:
    """Tests for the process_refund task."""

    def test_success(self, initiated_refund, mock_gateway):
        result = process_refund(str(initiated_refund.id))

        assert result == {
            "refund_id": str(initiated_refund.id),
            "success": True,
            "status": RefundStatus.COMPLETED,
            "error": None,
        }

    def test_gateway_failure_reported(self, initiated_refund, mock_gateway):
        mock_gateway.create_refund.side_effect = GatewayUnavailableError("down")

        result = process_refund(str(initiated_refund.id))

        assert result["success"] is False
        assert result["status"] == RefundStatus.FAILED
        assert result["error"] == "down"
        refund = Refund.objects.get(pk=initiated_refund.pk)
        assert refund.next_retry_at is not None
