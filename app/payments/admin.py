"""
Refund admin configuration.

Refund status is read-only here: approval, cancellation and retries go
through RefundService (or the admin API) so locks and the gateway call
are always applied.
"""

from django.contrib import admin

from payments.models import Refund


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status, retries and history.
    """

    list_display = [
        "refund_number",
        "order",
        "amount_display",
        "status",
        "reason",
        "retry_count",
        "next_retry_at",
        "initiated_at",
    ]
    list_filter = ["status", "reason", "refund_type", "initiated_by"]
    search_fields = [
        "refund_number",
        "gateway_refund_id",
        "original_payment_id",
        "order__id",
    ]
    readonly_fields = [
        "id",
        "refund_number",
        "status",
        "status_timeline",
        "gateway_refund_id",
        "gateway_response",
        "retry_count",
        "attempt_count",
        "last_retry_at",
        "next_retry_at",
        "processed_at",
        "completed_at",
        "failed_at",
        "approved_by",
        "approved_at",
        "cancelled_at",
        "restored_voucher_ids",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "initiated_at"
    ordering = ["-initiated_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "refund_number", "order", "user", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "currency", "refund_type"),
            },
        ),
        (
            "Refund Details",
            {
                "fields": ("reason", "reason_details", "initiated_by", "notes"),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "original_payment_id",
                    "gateway_refund_id",
                    "gateway_response",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Retries",
            {
                "fields": (
                    "retry_count",
                    "attempt_count",
                    "max_retries",
                    "last_retry_at",
                    "next_retry_at",
                    "failure_reason",
                ),
            },
        ),
        (
            "Vouchers",
            {
                "fields": ("vouchers_restored", "restored_voucher_ids"),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": (
                    "initiated_at",
                    "processed_at",
                    "completed_at",
                    "failed_at",
                    "expected_completion_at",
                    "approved_by",
                    "approved_at",
                    "cancelled_at",
                    "cancellation_reason",
                ),
            },
        ),
        (
            "History",
            {
                "fields": ("status_timeline",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Refund) -> str:
        """Display the amount formatted as currency."""
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refunds (audit trail)."""
        return False
