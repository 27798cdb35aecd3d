"""
Order model consumed by voucher redemption and refund settlement.

Usage:
    from orders.models import Order, OrderPaymentStatus

    order = Order.objects.create(
        user=user,
        kitchen_id=kitchen_id,
        meal_window=MealWindow.LUNCH,
        amount_paid_cents=24900,
        payment_id="pi_xxx",
        payment_status=OrderPaymentStatus.PAID,
        voucher_ids=[str(v) for v in redeemed_ids],
    )
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from vouchers.state_machines import MealWindow


class MenuType(models.TextChoices):
    """
    Menu an order was placed from.

    Only MEAL_MENU orders can be paid with vouchers.
    """

    MEAL_MENU = "MEAL_MENU", "Meal menu"
    ON_DEMAND_MENU = "ON_DEMAND_MENU", "On-demand menu"


class OrderPaymentStatus(models.TextChoices):
    """
    Payment status of an order.

    Refund settlement moves PAID orders to PARTIALLY_REFUNDED or
    REFUNDED once a refund completes at the gateway.
    """

    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially refunded"
    REFUNDED = "REFUNDED", "Refunded"
    FAILED = "FAILED", "Failed"


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer order as seen by the ledger.

    Fields:
        user: Customer who placed the order
        kitchen_id: Kitchen fulfilling the order
        menu_type: Menu the order came from
        meal_window: LUNCH or DINNER service
        amount_paid_cents: Money captured for the order (0 for voucher-only)
        currency: ISO 4217 currency code (lowercase)
        payment_id: Gateway payment reference (pi_xxx), if money was paid
        payment_status: Current payment status
        voucher_ids: UUID strings of vouchers redeemed for the order
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Customer who placed the order",
    )

    kitchen_id = models.UUIDField(
        default=uuid.uuid4,
        db_index=True,
        help_text="Kitchen fulfilling the order",
    )

    menu_type = models.CharField(
        max_length=20,
        choices=MenuType.choices,
        default=MenuType.MEAL_MENU,
        help_text="Menu the order was placed from",
    )

    meal_window = models.CharField(
        max_length=10,
        choices=MealWindow.choices,
        default=MealWindow.LUNCH,
        help_text="Meal window the order is served in",
    )

    amount_paid_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Amount captured in smallest currency unit (0 when fully voucher-paid)",
    )

    currency = models.CharField(
        max_length=3,
        default="inr",
        help_text="ISO 4217 currency code (lowercase)",
    )

    payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Gateway payment reference (e.g. Stripe PaymentIntent pi_xxx)",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.PENDING,
        db_index=True,
        help_text="Current payment status of the order",
    )

    voucher_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="UUIDs (as strings) of vouchers redeemed for this order",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"

    def __str__(self) -> str:
        """Return string representation with ID, payment status, and amount."""
        amount_display = f"{self.amount_paid_cents / 100:.2f} {self.currency.upper()}"
        return f"Order({self.id}, {self.payment_status}, {amount_display})"

    @property
    def vouchers_used(self) -> int:
        """Number of vouchers spent on this order."""
        return len(self.voucher_ids or [])

    @property
    def is_voucher_only(self) -> bool:
        """True when the order was paid entirely with vouchers."""
        return self.amount_paid_cents == 0 and self.vouchers_used > 0
