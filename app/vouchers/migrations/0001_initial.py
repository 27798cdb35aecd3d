"""
Create the voucher ledger tables.

Changes:
    - Create SubscriptionPlan (catalog, read-only to the ledger)
    - Create Subscription with FSM status and cancellation outcome columns
    - Create Voucher with redemption/restoration detail
    - Index vouchers by (user, status, expiry_date) for FIFO redemption
    - Check that a REDEEMED voucher always names its order
"""

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import django_fsm

import vouchers.models.voucher


TIMESTAMP_FIELDS = [
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
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SubscriptionPlan",
            fields=[
                *TIMESTAMP_FIELDS,
                (
                    "name",
                    models.CharField(
                        help_text="Plan name shown to customers",
                        max_length=120,
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Plan description",
                    ),
                ),
                (
                    "duration_days",
                    models.PositiveIntegerField(
                        help_text="Subscription length in days",
                    ),
                ),
                (
                    "vouchers_per_day",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Vouchers granted per subscription day",
                    ),
                ),
                (
                    "voucher_validity_days",
                    models.PositiveIntegerField(
                        help_text="Days from purchase until the issued vouchers expire",
                    ),
                ),
                (
                    "price_cents",
                    models.PositiveBigIntegerField(
                        help_text="Plan price in smallest currency unit",
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
                    "status",
                    models.CharField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("INACTIVE", "Inactive"),
                            ("ARCHIVED", "Archived"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        help_text="Catalog status",
                        max_length=10,
                    ),
                ),
                (
                    "valid_from",
                    models.DateTimeField(
                        blank=True,
                        help_text="Plan can be purchased from this instant (open if empty)",
                        null=True,
                    ),
                ),
                (
                    "valid_till",
                    models.DateTimeField(
                        blank=True,
                        help_text="Plan can be purchased until this instant (open if empty)",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription plan",
                "verbose_name_plural": "Subscription plans",
                "ordering": ["price_cents"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                *TIMESTAMP_FIELDS,
                (
                    "plan_snapshot",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Plan terms at purchase time",
                    ),
                ),
                (
                    "purchased_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the subscription was purchased",
                    ),
                ),
                (
                    "start_date",
                    models.DateTimeField(help_text="Subscription start"),
                ),
                (
                    "end_date",
                    models.DateTimeField(help_text="Subscription end"),
                ),
                (
                    "total_vouchers_issued",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Vouchers issued at purchase",
                    ),
                ),
                (
                    "voucher_expiry_date",
                    models.DateTimeField(
                        db_index=True,
                        help_text="Expiry date of the issued vouchers",
                    ),
                ),
                (
                    "amount_paid_cents",
                    models.PositiveBigIntegerField(
                        help_text="Amount paid in smallest currency unit",
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
                        help_text="Gateway payment reference for the purchase",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("EXPIRED", "Expired"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        help_text="Current status of the subscription (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the subscription was cancelled",
                        null=True,
                    ),
                ),
                (
                    "cancellation_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reason given for cancellation",
                    ),
                ),
                (
                    "cancelled_by",
                    models.CharField(
                        blank=True,
                        choices=[("USER", "User"), ("ADMIN", "Admin")],
                        help_text="Who cancelled the subscription",
                        max_length=10,
                        null=True,
                    ),
                ),
                (
                    "refund_eligible",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the cancellation qualified for a refund",
                    ),
                ),
                (
                    "refund_amount_cents",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Refund owed on cancellation in smallest currency unit",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        help_text="Plan purchased",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="vouchers.subscriptionplan",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Subscriber",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="meal_subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-purchased_at"],
                "indexes": [
                    models.Index(
                        fields=["user", "status"],
                        name="subscription_user_status_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Voucher",
            fields=[
                *TIMESTAMP_FIELDS,
                (
                    "voucher_code",
                    models.CharField(
                        default=vouchers.models.voucher.generate_voucher_code,
                        help_text="Unique voucher code (VCH-XXXXX-XXXXX)",
                        max_length=20,
                        unique=True,
                    ),
                ),
                (
                    "meal_type",
                    models.CharField(
                        choices=[
                            ("ANY", "Any meal"),
                            ("LUNCH", "Lunch"),
                            ("DINNER", "Dinner"),
                        ],
                        default="ANY",
                        help_text="Meal window(s) this voucher can be redeemed in",
                        max_length=10,
                    ),
                ),
                (
                    "issued_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the voucher was issued",
                    ),
                ),
                (
                    "expiry_date",
                    models.DateTimeField(
                        db_index=True,
                        help_text="Voucher is unusable from this instant onwards",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("AVAILABLE", "Available"),
                            ("REDEEMED", "Redeemed"),
                            ("EXPIRED", "Expired"),
                            ("RESTORED", "Restored"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="AVAILABLE",
                        help_text="Current lifecycle status",
                        max_length=20,
                    ),
                ),
                (
                    "redeemed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the voucher was redeemed",
                        null=True,
                    ),
                ),
                (
                    "redeemed_order_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="Order the voucher paid for",
                        null=True,
                    ),
                ),
                (
                    "redeemed_kitchen_id",
                    models.UUIDField(
                        blank=True,
                        help_text="Kitchen the order was placed with",
                        null=True,
                    ),
                ),
                (
                    "redeemed_meal_window",
                    models.CharField(
                        blank=True,
                        help_text="Meal window of the redeeming order",
                        max_length=10,
                        null=True,
                    ),
                ),
                (
                    "restored_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the voucher was last restored",
                        null=True,
                    ),
                ),
                (
                    "restoration_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("ORDER_CANCELLED", "Order cancelled"),
                            ("ORDER_REJECTED", "Order rejected"),
                            ("ADMIN_ACTION", "Admin action"),
                            ("OTHER", "Other"),
                        ],
                        help_text="Why the voucher was last restored",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the voucher was cancelled with its subscription",
                        null=True,
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        help_text="Subscription that issued this voucher",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="vouchers",
                        to="vouchers.subscription",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who owns this voucher",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="vouchers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Voucher",
                "verbose_name_plural": "Vouchers",
                "ordering": ["expiry_date", "issued_at"],
                "indexes": [
                    models.Index(
                        fields=["user", "status", "expiry_date"],
                        name="voucher_user_status_expiry_idx",
                    ),
                    models.Index(
                        fields=["subscription", "status"],
                        name="voucher_subscription_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=~models.Q(status="REDEEMED")
                        | models.Q(redeemed_order_id__isnull=False),
                        name="voucher_redeemed_has_order",
                    ),
                ],
            },
        ),
    ]
