"""
Voucher admin configuration.

Registers subscription plans, subscriptions and vouchers. Status fields
are read-only here: state changes go through VoucherService and
SubscriptionService so the ledger rules are always applied.
"""

from django.contrib import admin

from vouchers.models import Subscription, SubscriptionPlan, Voucher


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    """Admin configuration for SubscriptionPlan."""

    list_display = [
        "name",
        "duration_days",
        "vouchers_per_day",
        "voucher_validity_days",
        "price_cents",
        "status",
        "valid_from",
        "valid_till",
    ]
    list_filter = ["status"]
    search_fields = ["name"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    Provides visibility into purchases and cancellation outcomes.
    """

    list_display = [
        "id",
        "user",
        "plan",
        "status",
        "total_vouchers_issued",
        "amount_paid_cents",
        "voucher_expiry_date",
        "created_at",
    ]
    list_filter = ["status", "cancelled_by", "refund_eligible"]
    search_fields = ["id", "user__username", "payment_id"]
    readonly_fields = [
        "id",
        "status",
        "plan_snapshot",
        "cancelled_at",
        "cancelled_by",
        "refund_eligible",
        "refund_amount_cents",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    """Admin configuration for Voucher."""

    list_display = [
        "voucher_code",
        "user",
        "status",
        "meal_type",
        "expiry_date",
        "redeemed_order_id",
    ]
    list_filter = ["status", "meal_type", "redeemed_meal_window"]
    search_fields = ["voucher_code", "user__username", "redeemed_order_id"]
    readonly_fields = [
        "id",
        "voucher_code",
        "status",
        "redeemed_at",
        "redeemed_order_id",
        "redeemed_kitchen_id",
        "redeemed_meal_window",
        "restored_at",
        "restoration_reason",
        "cancelled_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["expiry_date"]
