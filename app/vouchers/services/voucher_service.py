"""
Voucher ledger service.

This module provides the VoucherService class which owns every voucher
status change:

1. Issuing vouchers for a subscription
2. All-or-nothing redemption for an order (FIFO by expiry)
3. Restoration when an order is cancelled or rejected
4. Cancellation together with the owning subscription
5. The periodic expiry sweep
6. Eligibility checks and balance summaries for clients

Usage:
    from vouchers.services import VoucherService

    eligibility = VoucherService.check_eligibility(
        user,
        menu_type=MenuType.MEAL_MENU,
        meal_window=MealWindow.LUNCH,
        requested_count=2,
    )

    if eligibility.can_redeem:
        voucher_ids = VoucherService.redeem(
            user=user,
            count=eligibility.max_redeemable,
            meal_window=MealWindow.LUNCH,
            order_id=order.id,
            kitchen_id=order.kitchen_id,
        )
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.db.models import Count
from django.utils import timezone

from core.services import BaseService

from orders.models import MenuType
from vouchers.exceptions import InsufficientVouchersError, VoucherValidationError
from vouchers.models import Voucher, generate_voucher_code
from vouchers.services.cutoff import CutoffPolicy, CutoffStatus, get_default_policy
from vouchers.state_machines import (
    USABLE_VOUCHER_STATUSES,
    MealWindow,
    RestorationReason,
    VoucherMealType,
    VoucherStatus,
)

if TYPE_CHECKING:
    from vouchers.models import Subscription


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class VoucherEligibility:
    """
    Result of a redemption eligibility check.

    Attributes:
        can_redeem: Whether the order may be paid (partly) with vouchers
        available_count: Usable vouchers for the meal window
        max_redeemable: min(available_count, requested_count), 0 if not eligible
        cutoff: Cutoff status of the meal window (None for non meal-menu orders)
        reason: Human-readable reason when can_redeem is False
    """

    can_redeem: bool
    available_count: int = 0
    max_redeemable: int = 0
    cutoff: CutoffStatus | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "can_redeem": self.can_redeem,
            "available_count": self.available_count,
            "max_redeemable": self.max_redeemable,
            "cutoff": self.cutoff.to_dict() if self.cutoff else None,
            "reason": self.reason,
        }


@dataclass
class VoucherBalance:
    """
    Voucher balance summary for a user.

    Attributes:
        counts: Number of vouchers per status (lowercase keys) plus total
        usable: AVAILABLE + RESTORED vouchers that have not expired
        expiring_next: Soonest-expiring usable vouchers, if any
    """

    counts: dict[str, int] = field(default_factory=dict)
    usable: int = 0
    expiring_next: dict | None = None

    def to_dict(self) -> dict:
        return {
            "balance": {**self.counts, "usable": self.usable},
            "expiring_next": self.expiring_next,
        }


# =============================================================================
# Voucher Service
# =============================================================================


class VoucherService(BaseService):
    """
    Service for the voucher ledger.

    Concurrency:
        Redemption reads candidate rows with select_for_update() and
        claims them with a conditional UPDATE inside the same
        transaction. The UPDATE re-checks status and expiry, and the
        number of rows it touched must equal the number requested;
        otherwise the transaction is rolled back and
        InsufficientVouchersError is raised. No voucher is ever half
        claimed.

    Voucher counts are always derived from the Voucher table; nothing
    is cached on Subscription.
    """

    # Number of soonest-expiring vouchers reported in the balance summary
    EXPIRING_PREVIEW_LIMIT = 5

    # =========================================================================
    # Issuance
    # =========================================================================

    @classmethod
    def issue(
        cls,
        user,
        count: int,
        expiry_date: datetime,
        subscription: Subscription | None = None,
        meal_type: str = VoucherMealType.ANY,
        now: datetime | None = None,
    ) -> list[Voucher]:
        """
        Issue `count` AVAILABLE vouchers to a user.

        Args:
            user: Voucher owner
            count: Number of vouchers to create (>= 1)
            expiry_date: Expiry stamped on every voucher
            subscription: Issuing subscription, if any
            meal_type: ANY, LUNCH or DINNER
            now: Issue timestamp (defaults to now)

        Returns:
            The created vouchers

        Raises:
            VoucherValidationError: If count < 1 or expiry is not after now
        """
        now = now or timezone.now()

        if count < 1:
            raise VoucherValidationError(
                "Voucher count must be at least 1",
                details={"count": count},
            )
        if expiry_date <= now:
            raise VoucherValidationError(
                "Voucher expiry must be in the future",
                details={"expiry_date": expiry_date.isoformat()},
            )

        codes: set[str] = set()
        while len(codes) < count:
            codes.add(generate_voucher_code())

        vouchers = [
            Voucher(
                voucher_code=code,
                user=user,
                subscription=subscription,
                meal_type=meal_type,
                issued_at=now,
                expiry_date=expiry_date,
                status=VoucherStatus.AVAILABLE,
            )
            for code in sorted(codes)
        ]

        with cls.atomic():
            created = Voucher.objects.bulk_create(vouchers)

        cls.get_logger().info(
            "Vouchers issued",
            extra={
                "user_id": user.pk,
                "subscription_id": str(subscription.pk) if subscription else None,
                "count": count,
                "expiry_date": expiry_date.isoformat(),
            },
        )
        return created

    # =========================================================================
    # Redemption
    # =========================================================================

    @classmethod
    def redeem(
        cls,
        user,
        count: int,
        meal_window: str,
        order_id: uuid.UUID,
        kitchen_id: uuid.UUID,
        now: datetime | None = None,
        policy: CutoffPolicy | None = None,
    ) -> list[uuid.UUID]:
        """
        Claim exactly `count` usable vouchers for an order.

        Vouchers closest to expiry are spent first. Either all `count`
        vouchers are marked REDEEMED or none are.

        Args:
            user: Voucher owner placing the order
            count: Vouchers to redeem (>= 1)
            meal_window: LUNCH or DINNER
            order_id: Order the vouchers pay for
            kitchen_id: Kitchen the order was placed with
            now: Redemption instant (defaults to now)
            policy: Cutoff policy (defaults to the configured one)

        Returns:
            Ids of the redeemed vouchers, FIFO by expiry

        Raises:
            VoucherValidationError: Bad count or window, or the window's cutoff passed
            InsufficientVouchersError: Fewer than `count` vouchers could be claimed
        """
        now = now or timezone.now()
        policy = policy or get_default_policy()

        if count < 1:
            raise VoucherValidationError(
                "Voucher count must be at least 1",
                details={"count": count},
            )
        cls._validate_meal_window(meal_window)

        if not policy.is_open(meal_window, now):
            cutoff = policy.describe(meal_window, now)
            raise VoucherValidationError(
                cutoff.message,
                error_code="CUTOFF_PASSED",
                details=cutoff.to_dict(),
            )

        log_context = {
            "user_id": user.pk,
            "order_id": str(order_id),
            "meal_window": str(meal_window),
            "requested": count,
        }

        with cls.atomic():
            candidate_ids = cls._select_candidates(user, count, meal_window, now)

            if len(candidate_ids) < count:
                cls.get_logger().warning(
                    "Not enough usable vouchers to redeem",
                    extra={**log_context, "available": len(candidate_ids)},
                )
                raise InsufficientVouchersError(
                    f"Only {len(candidate_ids)} vouchers available, {count} requested",
                    requested=count,
                    available=len(candidate_ids),
                )

            claimed = (
                Voucher.objects.filter(id__in=candidate_ids)
                .usable(now)
                .update(
                    status=VoucherStatus.REDEEMED,
                    redeemed_at=now,
                    redeemed_order_id=order_id,
                    redeemed_kitchen_id=kitchen_id,
                    redeemed_meal_window=meal_window,
                    updated_at=now,
                )
            )

            if claimed != count:
                # Raising inside atomic() rolls back the rows we did claim
                cls.get_logger().warning(
                    "Voucher state changed during redemption",
                    extra={**log_context, "claimed": claimed},
                )
                raise InsufficientVouchersError(
                    f"Voucher state changed during redemption. "
                    f"Only {claimed} of {count} vouchers were available.",
                    requested=count,
                    available=claimed,
                )

        cls.get_logger().info(
            "Vouchers redeemed",
            extra={**log_context, "voucher_ids": [str(v) for v in candidate_ids]},
        )
        return candidate_ids

    @classmethod
    def _select_candidates(
        cls,
        user,
        count: int,
        meal_window: str,
        now: datetime,
    ) -> list[uuid.UUID]:
        """
        Lock and return up to `count` usable voucher ids, FIFO by expiry.

        Rows locked by another redemption are skipped so concurrent
        requests take distinct vouchers. Must be called inside a transaction.
        """
        return list(
            Voucher.objects.select_for_update(skip_locked=True)
            .usable_for(user, meal_window, now)
            .values_list("id", flat=True)[:count]
        )

    # =========================================================================
    # Restoration
    # =========================================================================

    @classmethod
    def map_restoration_reason(cls, reason: str | None) -> str:
        """
        Map a free-text reason onto a RestorationReason.

        "...cancel..." -> ORDER_CANCELLED, "...reject..." -> ORDER_REJECTED,
        "...admin..." -> ADMIN_ACTION, anything else -> OTHER.
        """
        text = (reason or "").lower()
        if "cancel" in text:
            return RestorationReason.ORDER_CANCELLED
        if "reject" in text:
            return RestorationReason.ORDER_REJECTED
        if "admin" in text:
            return RestorationReason.ADMIN_ACTION
        return RestorationReason.OTHER

    @classmethod
    def restore(
        cls,
        voucher_ids: Iterable[uuid.UUID | str],
        reason: str,
        force: bool = False,
        now: datetime | None = None,
    ) -> list[uuid.UUID]:
        """
        Return redeemed vouchers to their owner's balance.

        Vouchers that are REDEEMED (and, with force=True, EXPIRED) become
        RESTORED; their redemption detail is cleared. Vouchers in any
        other status are skipped; fewer restored than requested is not
        an error.

        Args:
            voucher_ids: Vouchers to restore
            reason: RestorationReason value or free text
            force: Also revive EXPIRED vouchers (admin override)
            now: Restoration instant (defaults to now)

        Returns:
            Ids actually restored
        """
        now = now or timezone.now()
        requested = [uuid.UUID(str(v)) for v in voucher_ids]
        if not requested:
            return []

        restorable = [VoucherStatus.REDEEMED]
        if force:
            restorable.append(VoucherStatus.EXPIRED)

        restoration_reason = cls.map_restoration_reason(reason)

        with cls.atomic():
            restored_ids = list(
                Voucher.objects.select_for_update()
                .filter(id__in=requested, status__in=restorable)
                .order_by("expiry_date", "id")
                .values_list("id", flat=True)
            )
            if restored_ids:
                Voucher.objects.filter(id__in=restored_ids).update(
                    status=VoucherStatus.RESTORED,
                    restored_at=now,
                    restoration_reason=restoration_reason,
                    redeemed_at=None,
                    redeemed_order_id=None,
                    redeemed_kitchen_id=None,
                    redeemed_meal_window=None,
                    updated_at=now,
                )

        skipped = len(requested) - len(restored_ids)
        cls.get_logger().info(
            "Vouchers restored",
            extra={
                "requested": len(requested),
                "restored": len(restored_ids),
                "skipped": skipped,
                "reason": restoration_reason,
                "force": force,
            },
        )
        return restored_ids

    @classmethod
    def restore_for_order(
        cls,
        order_id: uuid.UUID,
        reason: str,
        force: bool = False,
        now: datetime | None = None,
    ) -> list[uuid.UUID]:
        """Restore every voucher currently redeemed against an order."""
        voucher_ids = list(
            Voucher.objects.filter(
                redeemed_order_id=order_id,
                status=VoucherStatus.REDEEMED,
            ).values_list("id", flat=True)
        )
        return cls.restore(voucher_ids, reason, force=force, now=now)

    # =========================================================================
    # Cancellation & Expiry
    # =========================================================================

    @classmethod
    def cancel_for_subscription(
        cls,
        subscription: Subscription,
        now: datetime | None = None,
    ) -> int:
        """
        Cancel every unredeemed voucher of a subscription.

        AVAILABLE and RESTORED vouchers become CANCELLED; redeemed ones
        are left alone.

        Returns:
            Number of vouchers cancelled
        """
        now = now or timezone.now()
        cancelled = Voucher.objects.filter(
            subscription=subscription,
            status__in=USABLE_VOUCHER_STATUSES,
        ).update(
            status=VoucherStatus.CANCELLED,
            cancelled_at=now,
            updated_at=now,
        )

        cls.get_logger().info(
            "Subscription vouchers cancelled",
            extra={"subscription_id": str(subscription.pk), "count": cancelled},
        )
        return cancelled

    @classmethod
    def sweep_expiry(cls, now: datetime | None = None) -> dict[str, int]:
        """
        Mark AVAILABLE/RESTORED vouchers past their expiry as EXPIRED.

        Idempotent: a second run with the same `now` changes nothing.

        Returns:
            {"expired_count": n}
        """
        now = now or timezone.now()
        expired = Voucher.objects.filter(
            status__in=USABLE_VOUCHER_STATUSES,
            expiry_date__lt=now,
        ).update(status=VoucherStatus.EXPIRED, updated_at=now)

        cls.get_logger().info(
            "Voucher expiry sweep finished",
            extra={"expired_count": expired, "now": now.isoformat()},
        )
        return {"expired_count": expired}

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def available_count(
        cls,
        user,
        meal_window: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """Usable vouchers for a user, optionally restricted to one meal window."""
        queryset = Voucher.objects.filter(user=user).usable(now)
        if meal_window:
            queryset = queryset.for_window(meal_window)
        return queryset.count()

    @classmethod
    def check_eligibility(
        cls,
        user,
        menu_type: str,
        meal_window: str,
        requested_count: int = 1,
        kitchen_id: uuid.UUID | None = None,
        now: datetime | None = None,
        policy: CutoffPolicy | None = None,
    ) -> VoucherEligibility:
        """
        Decide whether an order may be paid with vouchers.

        Vouchers only pay for meal-menu orders, only while the meal
        window is open, and only if the user has at least one usable
        voucher for that window.

        Args:
            user: Customer placing the order
            menu_type: MEAL_MENU or ON_DEMAND_MENU
            meal_window: LUNCH or DINNER
            requested_count: Vouchers the customer wants to use
            kitchen_id: Kitchen the order is for (logged only)
            now: Check instant (defaults to now)
            policy: Cutoff policy (defaults to the configured one)
        """
        now = now or timezone.now()
        policy = policy or get_default_policy()
        cls._validate_meal_window(meal_window)

        if menu_type != MenuType.MEAL_MENU:
            return VoucherEligibility(
                can_redeem=False,
                reason="Vouchers can only be used for meal menu orders",
            )

        cutoff = policy.describe(meal_window, now)
        available = cls.available_count(user, meal_window, now)

        if not cutoff.is_open:
            reason = cutoff.message
        elif available < 1:
            reason = "No usable vouchers available"
        else:
            reason = None

        can_redeem = reason is None
        eligibility = VoucherEligibility(
            can_redeem=can_redeem,
            available_count=available,
            max_redeemable=min(available, max(requested_count, 0)) if can_redeem else 0,
            cutoff=cutoff,
            reason=reason,
        )

        cls.get_logger().debug(
            "Voucher eligibility checked",
            extra={
                "user_id": user.pk,
                "kitchen_id": str(kitchen_id) if kitchen_id else None,
                "meal_window": str(meal_window),
                "can_redeem": can_redeem,
                "available": available,
            },
        )
        return eligibility

    @classmethod
    def get_balance(cls, user, now: datetime | None = None) -> VoucherBalance:
        """
        Summarise a user's vouchers.

        Counts every status, derives the usable total and previews the
        soonest-expiring usable vouchers with whole days remaining.
        """
        now = now or timezone.now()

        counts = {status.lower(): 0 for status in VoucherStatus.values}
        rows = (
            Voucher.objects.filter(user=user)
            .values("status")
            .annotate(count=Count("id"))
            .order_by()
        )
        for row in rows:
            counts[row["status"].lower()] = row["count"]
        counts["total"] = sum(counts.values())

        usable_qs = Voucher.objects.filter(user=user).usable(now)
        usable = usable_qs.count()

        expiring_next = None
        soonest = list(
            usable_qs.order_by("expiry_date")[: cls.EXPIRING_PREVIEW_LIMIT]
        )
        if soonest:
            first_expiry = soonest[0].expiry_date
            seconds_left = (first_expiry - now).total_seconds()
            expiring_next = {
                "count": len(soonest),
                "soonest_expiry": first_expiry.isoformat(),
                "days_remaining": math.ceil(seconds_left / 86400),
            }

        return VoucherBalance(counts=counts, usable=usable, expiring_next=expiring_next)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _validate_meal_window(cls, meal_window: str) -> None:
        if meal_window not in MealWindow.values:
            raise VoucherValidationError(
                f"Invalid meal window: {meal_window}",
                error_code="INVALID_MEAL_WINDOW",
                details={"meal_window": str(meal_window)},
            )
