"""
Create the Order table.

Changes:
    - Create Order with payment and voucher usage columns
    - Index payment status for refund reconciliation queries
"""

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "kitchen_id",
                    models.UUIDField(
                        db_index=True,
                        default=uuid.uuid4,
                        help_text="Kitchen fulfilling the order",
                    ),
                ),
                (
                    "menu_type",
                    models.CharField(
                        choices=[
                            ("MEAL_MENU", "Meal menu"),
                            ("ON_DEMAND_MENU", "On-demand menu"),
                        ],
                        default="MEAL_MENU",
                        help_text="Menu the order was placed from",
                        max_length=20,
                    ),
                ),
                (
                    "meal_window",
                    models.CharField(
                        choices=[("LUNCH", "Lunch"), ("DINNER", "Dinner")],
                        default="LUNCH",
                        help_text="Meal window the order is served in",
                        max_length=10,
                    ),
                ),
                (
                    "amount_paid_cents",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Amount captured in smallest currency unit (0 when fully voucher-paid)",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="inr",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "payment_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Gateway payment reference (e.g. Stripe PaymentIntent pi_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PAID", "Paid"),
                            ("PARTIALLY_REFUNDED", "Partially refunded"),
                            ("REFUNDED", "Refunded"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        default="PENDING",
                        help_text="Current payment status of the order",
                        max_length=20,
                    ),
                ),
                (
                    "voucher_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="UUIDs (as strings) of vouchers redeemed for this order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Customer who placed the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
            },
        ),
    ]
