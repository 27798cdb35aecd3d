"""
Refund model for tracking money returned to customers.

A Refund represents money going back to the customer for an order that
was rejected, cancelled or otherwise went wrong. Supports both full and
partial refunds. One Order can have several refunds over time, but at
most one live (PENDING, INITIATED or PROCESSING) refund at any moment.

Usage:
    from payments.models import Refund
    from payments.state_machines import RefundStatus

    refund = Refund.objects.create(
        order=order,
        user=order.user,
        amount_cents=order.amount_paid_cents,
        reason=RefundReason.ORDER_REJECTED,
        original_payment_id=order.payment_id,
    )

    # State transitions using django-fsm
    refund.start_processing()  # INITIATED -> PROCESSING
    refund.save()

    # After the gateway refund succeeds
    refund.complete(gateway_refund_id="re_xxx", response={...})
    refund.save()
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import (
    LIVE_REFUND_STATUSES,
    RefundInitiator,
    RefundReason,
    RefundStatus,
    RefundType,
)

REFUND_NUMBER_PREFIX = "REF"
REFUND_NUMBER_SUFFIX_LENGTH = 5
REFUND_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

# Default retry budget before a FAILED refund needs a manual retry
DEFAULT_MAX_RETRIES = 3


def generate_refund_number(now: datetime | None = None) -> str:
    """
    Generate a refund number in the form REF-YYYYMMDD-XXXXX.

    Uniqueness is enforced by the database; callers regenerate on
    collision.
    """
    now = now or timezone.now()
    suffix = "".join(
        secrets.choice(REFUND_NUMBER_ALPHABET)
        for _ in range(REFUND_NUMBER_SUFFIX_LENGTH)
    )
    return f"{REFUND_NUMBER_PREFIX}-{now:%Y%m%d}-{suffix}"


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents money returned to a customer.

    Tracks the refund lifecycle from initiation through completion,
    failure and retry, or cancellation. Every transition appends an
    entry to status_timeline.

    State Flow:
        INITIATED -> PROCESSING -> COMPLETED
        INITIATED -> PROCESSING -> FAILED -> PROCESSING (retry)
        PENDING -> INITIATED (approval of a manual refund)
        PENDING/INITIATED/PROCESSING/FAILED -> CANCELLED

    Fields:
        refund_number: Human readable identifier (REF-YYYYMMDD-XXXXX)
        order / user: What is refunded, and to whom
        amount_cents / currency: Refund amount
        refund_type / reason / reason_details: Why and how much
        status: Current FSM status
        original_payment_id / gateway_refund_id / gateway_response: Gateway data
        retry_count / max_retries / next_retry_at: Automatic retry budget
        vouchers_restored / restored_voucher_ids: Vouchers returned with it
        initiated_by / approved_by / cancelled_*: Admin trail
        status_timeline: Append-only list of {status, timestamp, note}

    Note:
        The sum of COMPLETED amounts for an order never exceeds the
        order's amount_paid_cents; RefundService checks this under the
        order's row lock before creating a refund.
    """

    # ==========================================================================
    # Identity & Relationships
    # ==========================================================================

    refund_number = models.CharField(
        max_length=20,
        unique=True,
        default=generate_refund_number,
        help_text="Human readable refund number (REF-YYYYMMDD-XXXXX)",
    )

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order being refunded",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Customer receiving the refund",
    )

    # ==========================================================================
    # Amount & Reason
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="inr",
        help_text="ISO 4217 currency code (lowercase)",
    )

    refund_type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        default=RefundType.FULL,
        help_text="Full or partial refund",
    )

    reason = models.CharField(
        max_length=40,
        choices=RefundReason.choices,
        help_text="Reason for the refund",
    )

    reason_details = models.TextField(
        blank=True,
        default="",
        help_text="Free-text detail on the reason",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.INITIATED,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the refund (managed by FSM)",
    )

    status_timeline = models.JSONField(
        default=list,
        blank=True,
        help_text="Append-only list of {status, timestamp, note}",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    original_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Gateway payment being refunded (pi_xxx)",
    )

    gateway_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway refund ID (re_xxx), set on success",
    )

    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last response body from the gateway",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    initiated_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the refund was created",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest processing attempt started",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the gateway confirmed the refund",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest attempt failed",
    )

    expected_completion_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the money is expected to reach the customer",
    )

    # ==========================================================================
    # Retry
    # ==========================================================================

    retry_count = models.PositiveIntegerField(
        default=0,
        help_text="Failed processing attempts since the last manual retry",
    )

    attempt_count = models.PositiveIntegerField(
        default=0,
        help_text="Gateway attempts made over the refund's lifetime (never reset)",
    )

    max_retries = models.PositiveIntegerField(
        default=DEFAULT_MAX_RETRIES,
        help_text="Automatic attempts allowed before manual retry is needed",
    )

    last_retry_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the latest attempt was made",
    )

    next_retry_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the retry sweep may pick this refund up again",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason for the latest failure",
    )

    # ==========================================================================
    # Voucher Restoration
    # ==========================================================================

    vouchers_restored = models.BooleanField(
        default=False,
        help_text="Whether the order's vouchers were restored with this refund",
    )

    restored_voucher_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="UUIDs (as strings) of vouchers restored with this refund",
    )

    # ==========================================================================
    # Admin Trail
    # ==========================================================================

    initiated_by = models.CharField(
        max_length=10,
        choices=RefundInitiator.choices,
        default=RefundInitiator.SYSTEM,
        help_text="Who started the refund",
    )

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Admin who approved a manual refund",
    )

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a manual refund was approved",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund was cancelled",
    )

    cancellation_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was cancelled",
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Internal admin notes",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-initiated_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["order", "status"], name="refund_order_status_idx"),
            models.Index(
                fields=["status", "next_retry_at"],
                name="refund_status_retry_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(status__in=LIVE_REFUND_STATUSES),
                name="refund_one_live_per_order",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with number, status, and amount."""
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Refund({self.refund_number}, {self.status}, {amount_display})"

    def record_status(
        self,
        status: str,
        note: str = "",
        now: datetime | None = None,
    ) -> None:
        """Append an entry to the status timeline."""
        now = now or timezone.now()
        self.status_timeline = [
            *(self.status_timeline or []),
            {"status": status, "timestamp": now.isoformat(), "note": note},
        ]

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.INITIATED,
    )
    def approve(self, admin=None, now: datetime | None = None):
        """
        Approve a manual refund awaiting sign-off.

        Transition: PENDING -> INITIATED
        """
        now = now or timezone.now()
        self.approved_by = admin
        self.approved_at = now
        self.record_status(RefundStatus.INITIATED, "Approved", now)

    @transition(
        field=status,
        source=[RefundStatus.INITIATED, RefundStatus.PENDING, RefundStatus.FAILED],
        target=RefundStatus.PROCESSING,
    )
    def start_processing(self, now: datetime | None = None):
        """
        Begin a gateway attempt.

        Transition: INITIATED/PENDING/FAILED -> PROCESSING
        """
        now = now or timezone.now()
        self.attempt_count += 1
        self.processed_at = now
        self.last_retry_at = now
        self.next_retry_at = None
        self.record_status(
            RefundStatus.PROCESSING,
            f"Processing attempt {self.attempt_count}",
            now,
        )

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.COMPLETED,
    )
    def complete(
        self,
        gateway_refund_id: str,
        response: dict | None = None,
        now: datetime | None = None,
    ):
        """
        Mark refund as completed.

        Transition: PROCESSING -> COMPLETED
        """
        now = now or timezone.now()
        self.gateway_refund_id = gateway_refund_id
        self.gateway_response = response or {}
        self.completed_at = now
        self.next_retry_at = None
        self.failure_reason = ""
        self.record_status(
            RefundStatus.COMPLETED,
            f"Gateway refund {gateway_refund_id}",
            now,
        )

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.FAILED,
    )
    def fail(
        self,
        reason: str,
        retryable: bool = True,
        retry_delay: timedelta | None = None,
        now: datetime | None = None,
    ):
        """
        Mark the attempt as failed and schedule the next one if allowed.

        Transition: PROCESSING -> FAILED

        Args:
            reason: Failure reason from the gateway
            retryable: False for permanent errors (never auto-retried)
            retry_delay: Wait before the sweep may retry
            now: Failure instant (defaults to now)
        """
        now = now or timezone.now()
        self.retry_count += 1
        self.failed_at = now
        self.failure_reason = reason

        if retryable and retry_delay is not None and self.retry_count < self.max_retries:
            self.next_retry_at = now + retry_delay
        else:
            self.next_retry_at = None

        self.record_status(RefundStatus.FAILED, reason, now)

    @transition(
        field=status,
        source=[
            RefundStatus.PENDING,
            RefundStatus.INITIATED,
            RefundStatus.PROCESSING,
            RefundStatus.FAILED,
        ],
        target=RefundStatus.CANCELLED,
    )
    def cancel(self, reason: str, now: datetime | None = None):
        """
        Cancel the refund. Restored vouchers stay restored.

        Transition: PENDING/INITIATED/PROCESSING/FAILED -> CANCELLED
        """
        now = now or timezone.now()
        self.cancelled_at = now
        self.cancellation_reason = reason
        self.next_retry_at = None
        self.record_status(RefundStatus.CANCELLED, reason, now)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_live(self) -> bool:
        """Check if the refund blocks new refunds for its order."""
        return self.status in LIVE_REFUND_STATUSES

    @property
    def can_auto_retry(self) -> bool:
        """Check if the retry sweep may still pick this refund up."""
        return (
            self.status == RefundStatus.FAILED
            and self.retry_count < self.max_retries
            and self.next_retry_at is not None
        )
