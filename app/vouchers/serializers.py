"""
DRF serializers for the voucher ledger.

This module provides serializers for:
- Voucher and subscription display
- Redemption, restoration and eligibility requests
- Cutoff configuration updates
- Subscription purchase and cancellation

Related files:
    - services/: VoucherService, SubscriptionService, CutoffConfigStore
    - views.py: Voucher API views

Usage:
    serializer = RedeemVouchersSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from orders.models import MenuType
from vouchers.models import Subscription, Voucher
from vouchers.state_machines import MealWindow, VoucherStatus


# =============================================================================
# Read Serializers
# =============================================================================


class VoucherSerializer(serializers.ModelSerializer):
    """
    Voucher serializer for API responses.

    Redemption fields are null until the voucher is spent and are
    cleared again when it is restored.
    """

    class Meta:
        model = Voucher
        fields = [
            "id",
            "voucher_code",
            "subscription",
            "meal_type",
            "status",
            "issued_at",
            "expiry_date",
            "redeemed_at",
            "redeemed_order_id",
            "redeemed_kitchen_id",
            "redeemed_meal_window",
            "restored_at",
            "restoration_reason",
            "cancelled_at",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    """Subscription serializer including cancellation outcome fields."""

    plan_name = serializers.CharField(source="plan.name", read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan",
            "plan_name",
            "plan_snapshot",
            "status",
            "purchased_at",
            "start_date",
            "end_date",
            "total_vouchers_issued",
            "voucher_expiry_date",
            "amount_paid_cents",
            "currency",
            "cancelled_at",
            "cancellation_reason",
            "cancelled_by",
            "refund_eligible",
            "refund_amount_cents",
        ]
        read_only_fields = fields


# =============================================================================
# Request Serializers
# =============================================================================


class VoucherListQuerySerializer(serializers.Serializer):
    """Query parameters for listing a user's vouchers."""

    status = serializers.ChoiceField(
        choices=VoucherStatus.choices,
        required=False,
        help_text="Only return vouchers in this status",
    )


class EligibilityCheckSerializer(serializers.Serializer):
    """
    Request body for a redemption eligibility check.

    Fields:
        kitchen_id: Kitchen the order would be placed with
        menu_type: MEAL_MENU or ON_DEMAND_MENU
        meal_window: LUNCH or DINNER
        main_course_quantity: Number of main courses (vouchers wanted)
    """

    kitchen_id = serializers.UUIDField()
    menu_type = serializers.ChoiceField(choices=MenuType.choices)
    meal_window = serializers.ChoiceField(choices=MealWindow.choices)
    main_course_quantity = serializers.IntegerField(min_value=1, default=1)


class RedeemVouchersSerializer(serializers.Serializer):
    """Request body for redeeming vouchers against an order."""

    order_id = serializers.UUIDField()
    kitchen_id = serializers.UUIDField()
    meal_window = serializers.ChoiceField(choices=MealWindow.choices)
    voucher_count = serializers.IntegerField(min_value=1)


class RestoreVouchersSerializer(serializers.Serializer):
    """Request body for restoring the vouchers of an order."""

    order_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=255)
    force = serializers.BooleanField(default=False, required=False)


class CutoffUpdateSerializer(serializers.Serializer):
    """
    Request body for changing cutoff times.

    Both fields are HH:MM in the configured cutoff timezone; omitted
    fields keep their current value.
    """

    lunch = serializers.CharField(required=False, max_length=5)
    dinner = serializers.CharField(required=False, max_length=5)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(
                "Provide at least one of 'lunch' or 'dinner'."
            )
        return attrs


class PurchaseSubscriptionSerializer(serializers.Serializer):
    """Request body for buying a subscription plan."""

    plan_id = serializers.UUIDField()
    payment_id = serializers.CharField(
        max_length=255, required=False, allow_null=True, default=None
    )


class CancelSubscriptionSerializer(serializers.Serializer):
    """Request body for cancelling a subscription."""

    reason = serializers.CharField(max_length=500)


# =============================================================================
# Response Serializers
# =============================================================================


class RedeemResultSerializer(serializers.Serializer):
    redeemed_voucher_ids = serializers.ListField(child=serializers.UUIDField())
    count = serializers.IntegerField()


class RestoreResultSerializer(serializers.Serializer):
    restored_voucher_ids = serializers.ListField(child=serializers.UUIDField())
    count = serializers.IntegerField()


class SubscriptionCancellationSerializer(serializers.Serializer):
    """Outcome of a subscription cancellation."""

    subscription = SubscriptionSerializer()
    vouchers_cancelled = serializers.IntegerField()
    refund_eligible = serializers.BooleanField()
    refund_amount_cents = serializers.IntegerField()
    refund_reason = serializers.CharField()
    usage_percent = serializers.DecimalField(max_digits=5, decimal_places=2)
