"""Django admin registration for orders."""

from django.contrib import admin

from orders.models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Read-mostly view of orders for support staff."""

    list_display = [
        "id",
        "user",
        "meal_window",
        "amount_paid_cents",
        "payment_status",
        "created_at",
    ]
    list_filter = ["payment_status", "meal_window", "menu_type"]
    search_fields = ["id", "payment_id", "user__username"]
    readonly_fields = ["id", "created_at", "updated_at"]
