"""
DRF serializers for refund settlement.

This module provides serializers for:
- Refund display
- Initiation and manual refund requests
- Admin actions (cancel) and statistics queries
- Processing, initiation and sweep results

Related files:
    - services/refund_service.py: RefundService
    - views.py: Refund API views

Usage:
    serializer = InitiateRefundSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Refund
from payments.state_machines import RefundReason, RefundType


# =============================================================================
# Read Serializers
# =============================================================================


class RefundSerializer(serializers.ModelSerializer):
    """
    Refund serializer for API responses.

    status_timeline is the full audit trail of the refund.
    """

    order_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "refund_number",
            "order_id",
            "amount_cents",
            "currency",
            "refund_type",
            "reason",
            "reason_details",
            "status",
            "original_payment_id",
            "gateway_refund_id",
            "initiated_at",
            "processed_at",
            "completed_at",
            "failed_at",
            "expected_completion_at",
            "retry_count",
            "attempt_count",
            "max_retries",
            "next_retry_at",
            "failure_reason",
            "vouchers_restored",
            "restored_voucher_ids",
            "initiated_by",
            "approved_at",
            "cancelled_at",
            "cancellation_reason",
            "notes",
            "status_timeline",
        ]
        read_only_fields = fields


# =============================================================================
# Request Serializers
# =============================================================================


class InitiateRefundSerializer(serializers.Serializer):
    """Request body for refunding an order."""

    order_id = serializers.UUIDField()
    reason = serializers.ChoiceField(choices=RefundReason.choices)
    refund_type = serializers.ChoiceField(
        choices=RefundType.choices,
        default=RefundType.FULL,
    )
    amount_cents = serializers.IntegerField(
        min_value=1,
        required=False,
        allow_null=True,
        default=None,
        help_text="Required for PARTIAL refunds",
    )
    reason_details = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
    )
    process_immediately = serializers.BooleanField(
        default=False,
        help_text="Queue gateway processing as soon as the refund is created",
    )

    def validate(self, attrs):
        if attrs["refund_type"] == RefundType.PARTIAL and attrs.get("amount_cents") is None:
            raise serializers.ValidationError(
                {"amount_cents": "amount_cents is required for a PARTIAL refund."}
            )
        return attrs


class ManualRefundSerializer(serializers.Serializer):
    """Request body for an admin refund of a specific amount."""

    order_id = serializers.UUIDField()
    amount_cents = serializers.IntegerField(min_value=1)
    reason = serializers.ChoiceField(
        choices=RefundReason.choices,
        default=RefundReason.ADMIN_INITIATED,
    )
    reason_details = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    requires_approval = serializers.BooleanField(default=False)


class CancelRefundSerializer(serializers.Serializer):
    """Request body for cancelling a refund."""

    reason = serializers.CharField(max_length=500)


class RefundStatsQuerySerializer(serializers.Serializer):
    """Query parameters for refund statistics."""

    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)


# =============================================================================
# Result Serializers
# =============================================================================


class RefundInitiationSerializer(serializers.Serializer):
    """Outcome of a refund initiation."""

    refund = RefundSerializer(allow_null=True)
    vouchers_restored = serializers.ListField(child=serializers.UUIDField())


class RefundProcessingSerializer(serializers.Serializer):
    """Outcome of a processing attempt (process, approve, retry)."""

    success = serializers.BooleanField()
    refund = RefundSerializer()
    error = serializers.CharField(allow_null=True, required=False)
    error_code = serializers.CharField(allow_null=True, required=False)


class RefundSweepResultSerializer(serializers.Serializer):
    """Counts from a failed-refund sweep."""

    processed = serializers.IntegerField()
    succeeded = serializers.IntegerField()
    failed = serializers.IntegerField()
