"""
Create the refund table.

Changes:
    - Create Refund with FSM status, retry bookkeeping and status timeline
    - Index refunds by (order, status) and (status, next_retry_at)
    - Check that refund amounts are positive
    - Allow at most one PENDING/INITIATED/PROCESSING refund per order
"""

import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import django_fsm

import payments.models.refund


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Refund",
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
                    "refund_number",
                    models.CharField(
                        default=payments.models.refund.generate_refund_number,
                        help_text="Human readable refund number (REF-YYYYMMDD-XXXXX)",
                        max_length=20,
                        unique=True,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in smallest currency unit",
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
                    "refund_type",
                    models.CharField(
                        choices=[("FULL", "Full"), ("PARTIAL", "Partial")],
                        default="FULL",
                        help_text="Full or partial refund",
                        max_length=10,
                    ),
                ),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("ORDER_REJECTED", "Order rejected"),
                            ("ORDER_CANCELLED_BY_KITCHEN", "Order cancelled by kitchen"),
                            (
                                "ORDER_CANCELLED_BY_CUSTOMER",
                                "Order cancelled by customer",
                            ),
                            ("DELIVERY_FAILED", "Delivery failed"),
                            ("QUALITY_ISSUE", "Quality issue"),
                            ("WRONG_ORDER", "Wrong order"),
                            ("ADMIN_INITIATED", "Admin initiated"),
                            ("PAYMENT_ISSUE", "Payment issue"),
                            ("OTHER", "Other"),
                        ],
                        help_text="Reason for the refund",
                        max_length=40,
                    ),
                ),
                (
                    "reason_details",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Free-text detail on the reason",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PENDING", "Pending approval"),
                            ("INITIATED", "Initiated"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="INITIATED",
                        help_text="Current status of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "status_timeline",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Append-only list of {status, timestamp, note}",
                    ),
                ),
                (
                    "original_payment_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway payment being refunded (pi_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "gateway_refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway refund ID (re_xxx), set on success",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "gateway_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Last response body from the gateway",
                    ),
                ),
                (
                    "initiated_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the refund was created",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the latest processing attempt started",
                        null=True,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the gateway confirmed the refund",
                        null=True,
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the latest attempt failed",
                        null=True,
                    ),
                ),
                (
                    "expected_completion_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the money is expected to reach the customer",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Failed processing attempts since the last manual retry",
                    ),
                ),
                (
                    "max_retries",
                    models.PositiveIntegerField(
                        default=3,
                        help_text="Automatic attempts allowed before manual retry is needed",
                    ),
                ),
                (
                    "last_retry_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the latest attempt was made",
                        null=True,
                    ),
                ),
                (
                    "next_retry_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the retry sweep may pick this refund up again",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Reason for the latest failure",
                    ),
                ),
                (
                    "vouchers_restored",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the order's vouchers were restored with this refund",
                    ),
                ),
                (
                    "restored_voucher_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="UUIDs (as strings) of vouchers restored with this refund",
                    ),
                ),
                (
                    "initiated_by",
                    models.CharField(
                        choices=[
                            ("SYSTEM", "System"),
                            ("ADMIN", "Admin"),
                            ("CUSTOMER", "Customer"),
                        ],
                        default="SYSTEM",
                        help_text="Who started the refund",
                        max_length=10,
                    ),
                ),
                (
                    "approved_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When a manual refund was approved",
                        null=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the refund was cancelled",
                        null=True,
                    ),
                ),
                (
                    "cancellation_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Why the refund was cancelled",
                    ),
                ),
                (
                    "notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Internal admin notes",
                    ),
                ),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Admin who approved a manual refund",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Customer receiving the refund",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-initiated_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"],
                        name="refund_order_status_idx",
                    ),
                    models.Index(
                        fields=["status", "next_retry_at"],
                        name="refund_status_retry_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount_cents__gt=0),
                        name="refund_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(
                            status__in=["PENDING", "INITIATED", "PROCESSING"]
                        ),
                        fields=("order",),
                        name="refund_one_live_per_order",
                    ),
                ],
            },
        ),
    ]
