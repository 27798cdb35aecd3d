"""
Voucher model: one prepaid meal credit.

A Voucher is issued in bulk when a subscription is purchased and is
spent one-per-meal when an order is placed from the meal menu. Status
changes are made with conditional bulk updates in
vouchers.services.VoucherService so that concurrent redemptions can
never claim the same row twice.

Usage:
    from vouchers.models import Voucher
    from vouchers.state_machines import VoucherStatus

    usable = Voucher.objects.usable_for(user, MealWindow.LUNCH, now)
"""

from __future__ import annotations

import secrets
from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from vouchers.state_machines import (
    USABLE_VOUCHER_STATUSES,
    RestorationReason,
    VoucherMealType,
    VoucherStatus,
)

# Unambiguous characters only (no 0/O, 1/I)
VOUCHER_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VOUCHER_CODE_PREFIX = "VCH"
VOUCHER_CODE_GROUP_LENGTH = 5


def generate_voucher_code() -> str:
    """
    Generate a voucher code in the form VCH-XXXXX-XXXXX.

    Uses the secrets module so codes are not guessable. Uniqueness is
    enforced by the database; callers regenerate on collision.
    """
    groups = [
        "".join(
            secrets.choice(VOUCHER_CODE_ALPHABET)
            for _ in range(VOUCHER_CODE_GROUP_LENGTH)
        )
        for _ in range(2)
    ]
    return "-".join([VOUCHER_CODE_PREFIX, *groups])


class VoucherQuerySet(models.QuerySet):
    """QuerySet helpers for the usable-voucher predicate."""

    def usable(self, now: datetime | None = None) -> VoucherQuerySet:
        """Vouchers in a usable status whose expiry is still in the future."""
        now = now or timezone.now()
        return self.filter(status__in=USABLE_VOUCHER_STATUSES, expiry_date__gt=now)

    def for_window(self, meal_window: str) -> VoucherQuerySet:
        """Vouchers accepted in the given meal window (ANY or an exact match)."""
        return self.filter(meal_type__in=[VoucherMealType.ANY, meal_window])

    def usable_for(
        self,
        user,
        meal_window: str,
        now: datetime | None = None,
    ) -> VoucherQuerySet:
        """
        A user's vouchers that can pay for an order in meal_window, FIFO by expiry.

        Ties on expiry_date fall back to issue order so the selection is
        deterministic.
        """
        return (
            self.filter(user=user)
            .usable(now)
            .for_window(meal_window)
            .order_by("expiry_date", "issued_at", "id")
        )


class Voucher(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single prepaid meal credit.

    Lifecycle:
        AVAILABLE/RESTORED -> REDEEMED (order placed)
        REDEEMED -> RESTORED (order cancelled or rejected)
        AVAILABLE/RESTORED -> EXPIRED (expiry sweep)
        AVAILABLE/RESTORED -> CANCELLED (subscription cancelled)

    Fields:
        voucher_code: Human-facing unique code (VCH-XXXXX-XXXXX)
        user: Owner of the voucher
        subscription: Subscription that issued it (null for goodwill vouchers)
        meal_type: Window(s) the voucher may be spent in
        issued_at / expiry_date: Validity period
        status: Current lifecycle status
        redeemed_*: Redemption detail, cleared on restore
        restored_at / restoration_reason: Latest restoration detail
        cancelled_at: When the owning subscription was cancelled

    Note:
        Vouchers are never deleted; the table is the audit trail.
    """

    # ==========================================================================
    # Identity & Ownership
    # ==========================================================================

    voucher_code = models.CharField(
        max_length=20,
        unique=True,
        default=generate_voucher_code,
        help_text="Unique voucher code (VCH-XXXXX-XXXXX)",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="vouchers",
        help_text="User who owns this voucher",
    )

    subscription = models.ForeignKey(
        "vouchers.Subscription",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="vouchers",
        help_text="Subscription that issued this voucher",
    )

    meal_type = models.CharField(
        max_length=10,
        choices=VoucherMealType.choices,
        default=VoucherMealType.ANY,
        help_text="Meal window(s) this voucher can be redeemed in",
    )

    # ==========================================================================
    # Validity
    # ==========================================================================

    issued_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the voucher was issued",
    )

    expiry_date = models.DateTimeField(
        db_index=True,
        help_text="Voucher is unusable from this instant onwards",
    )

    status = models.CharField(
        max_length=20,
        choices=VoucherStatus.choices,
        default=VoucherStatus.AVAILABLE,
        db_index=True,
        help_text="Current lifecycle status",
    )

    # ==========================================================================
    # Redemption Detail
    # ==========================================================================

    redeemed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the voucher was redeemed",
    )

    redeemed_order_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Order the voucher paid for",
    )

    redeemed_kitchen_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Kitchen the order was placed with",
    )

    redeemed_meal_window = models.CharField(
        max_length=10,
        null=True,
        blank=True,
        help_text="Meal window of the redeeming order",
    )

    # ==========================================================================
    # Restoration & Cancellation Detail
    # ==========================================================================

    restored_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the voucher was last restored",
    )

    restoration_reason = models.CharField(
        max_length=20,
        choices=RestorationReason.choices,
        null=True,
        blank=True,
        help_text="Why the voucher was last restored",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the voucher was cancelled with its subscription",
    )

    objects = VoucherQuerySet.as_manager()

    class Meta:
        ordering = ["expiry_date", "issued_at"]
        verbose_name = "Voucher"
        verbose_name_plural = "Vouchers"
        indexes = [
            models.Index(
                fields=["user", "status", "expiry_date"],
                name="voucher_user_status_expiry_idx",
            ),
            models.Index(
                fields=["subscription", "status"],
                name="voucher_subscription_status_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(status=VoucherStatus.REDEEMED)
                | Q(redeemed_order_id__isnull=False),
                name="voucher_redeemed_has_order",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with code and status."""
        return f"Voucher({self.voucher_code}, {self.status})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    def is_usable(self, now: datetime | None = None) -> bool:
        """Check whether the voucher could be redeemed at `now`."""
        now = now or timezone.now()
        return self.status in USABLE_VOUCHER_STATUSES and self.expiry_date > now

    def accepts_window(self, meal_window: str) -> bool:
        """Check whether the voucher can pay for an order in meal_window."""
        return self.meal_type in (VoucherMealType.ANY, meal_window)
