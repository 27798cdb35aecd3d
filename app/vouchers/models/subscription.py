"""
Subscription plan catalog and purchased subscriptions.

SubscriptionPlan is catalog data maintained outside the ledger (read-only
here). A Subscription records one purchase of a plan and owns the
vouchers issued for it.

Usage:
    from vouchers.models import Subscription, SubscriptionPlan

    subscription.cancel(
        reason="Moving city",
        initiator=CancellationInitiator.USER,
        refund_eligible=True,
        refund_amount_cents=3500,
    )
    subscription.save()
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from vouchers.state_machines import (
    CancellationInitiator,
    PlanStatus,
    SubscriptionStatus,
)


class SubscriptionPlan(UUIDPrimaryKeyMixin, BaseModel):
    """
    A purchasable bundle of meal vouchers.

    Fields:
        name / description: Catalog display data
        duration_days: Length of the subscription
        vouchers_per_day: Vouchers granted per day of the subscription
        voucher_validity_days: Days from purchase until issued vouchers expire
        price_cents / currency: Price of the plan
        status: Catalog status (only ACTIVE plans are purchasable)
        valid_from / valid_till: Optional sale window
    """

    name = models.CharField(
        max_length=120,
        help_text="Plan name shown to customers",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Plan description",
    )

    duration_days = models.PositiveIntegerField(
        help_text="Subscription length in days",
    )

    vouchers_per_day = models.PositiveIntegerField(
        default=1,
        help_text="Vouchers granted per subscription day",
    )

    voucher_validity_days = models.PositiveIntegerField(
        help_text="Days from purchase until the issued vouchers expire",
    )

    price_cents = models.PositiveBigIntegerField(
        help_text="Plan price in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="inr",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=10,
        choices=PlanStatus.choices,
        default=PlanStatus.ACTIVE,
        db_index=True,
        help_text="Catalog status",
    )

    valid_from = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Plan can be purchased from this instant (open if empty)",
    )

    valid_till = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Plan can be purchased until this instant (open if empty)",
    )

    class Meta:
        ordering = ["price_cents"]
        verbose_name = "Subscription plan"
        verbose_name_plural = "Subscription plans"

    def __str__(self) -> str:
        return f"SubscriptionPlan({self.name}, {self.total_vouchers} vouchers)"

    @property
    def total_vouchers(self) -> int:
        """Vouchers issued for one purchase of this plan."""
        return self.duration_days * self.vouchers_per_day

    def is_purchasable(self, now: datetime | None = None) -> bool:
        """Check catalog status and the optional sale window."""
        now = now or timezone.now()
        if self.status != PlanStatus.ACTIVE:
            return False
        if self.valid_from and now < self.valid_from:
            return False
        if self.valid_till and now > self.valid_till:
            return False
        return True

    def snapshot(self) -> dict:
        """Plan terms frozen onto a Subscription at purchase time."""
        return {
            "name": self.name,
            "duration_days": self.duration_days,
            "vouchers_per_day": self.vouchers_per_day,
            "total_vouchers": self.total_vouchers,
            "voucher_validity_days": self.voucher_validity_days,
            "price_cents": self.price_cents,
        }


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    One purchase of a SubscriptionPlan.

    Uses django-fsm for the status lifecycle.

    State Flow:
        ACTIVE -> CANCELLED (user or admin cancellation)
        ACTIVE -> EXPIRED (voucher expiry date passed)

    Fields:
        user: Subscriber
        plan: Plan purchased (PROTECT so history survives catalog edits)
        plan_snapshot: Plan terms at purchase time
        purchased_at / start_date / end_date: Subscription period
        total_vouchers_issued: Vouchers issued at purchase
        voucher_expiry_date: Expiry stamped on every issued voucher
        amount_paid_cents / currency / payment_id: Purchase payment
        status: Current FSM status
        cancelled_*, refund_*: Cancellation outcome

    Note:
        A user may hold several overlapping subscriptions; their vouchers
        pool together for redemption. Voucher counts are always derived
        from the Voucher table, never cached here.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="meal_subscriptions",
        help_text="Subscriber",
    )

    plan = models.ForeignKey(
        SubscriptionPlan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="Plan purchased",
    )

    plan_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text="Plan terms at purchase time",
    )

    # ==========================================================================
    # Period & Vouchers
    # ==========================================================================

    purchased_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the subscription was purchased",
    )

    start_date = models.DateTimeField(
        help_text="Subscription start",
    )

    end_date = models.DateTimeField(
        help_text="Subscription end",
    )

    total_vouchers_issued = models.PositiveIntegerField(
        default=0,
        help_text="Vouchers issued at purchase",
    )

    voucher_expiry_date = models.DateTimeField(
        db_index=True,
        help_text="Expiry date of the issued vouchers",
    )

    # ==========================================================================
    # Payment
    # ==========================================================================

    amount_paid_cents = models.PositiveBigIntegerField(
        help_text="Amount paid in smallest currency unit",
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
        help_text="Gateway payment reference for the purchase",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.ACTIVE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the subscription (managed by FSM)",
    )

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription was cancelled",
    )

    cancellation_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given for cancellation",
    )

    cancelled_by = models.CharField(
        max_length=10,
        choices=CancellationInitiator.choices,
        null=True,
        blank=True,
        help_text="Who cancelled the subscription",
    )

    refund_eligible = models.BooleanField(
        default=False,
        help_text="Whether the cancellation qualified for a refund",
    )

    refund_amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Refund owed on cancellation in smallest currency unit",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-purchased_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(
                fields=["user", "status"],
                name="subscription_user_status_idx",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        amount_display = f"{self.amount_paid_cents / 100:.2f} {self.currency.upper()}"
        return f"Subscription({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.CANCELLED,
    )
    def cancel(
        self,
        reason: str,
        initiator: str,
        refund_eligible: bool,
        refund_amount_cents: int,
        now: datetime | None = None,
    ):
        """
        Cancel the subscription and record the refund outcome.

        Transition: ACTIVE -> CANCELLED
        """
        self.cancelled_at = now or timezone.now()
        self.cancellation_reason = reason
        self.cancelled_by = initiator
        self.refund_eligible = refund_eligible
        self.refund_amount_cents = refund_amount_cents

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.EXPIRED,
    )
    def expire(self):
        """
        Mark the subscription expired once its vouchers have lapsed.

        Transition: ACTIVE -> EXPIRED
        """
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        """Check if subscription is currently active."""
        return self.status == SubscriptionStatus.ACTIVE
