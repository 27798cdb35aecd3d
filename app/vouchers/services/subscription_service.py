"""
Subscription issuance and cancellation.

This module provides the SubscriptionService class which handles:
1. Purchasing a plan: snapshot the plan terms and issue its vouchers
2. Cancelling: compute the usage-based refund and cancel unused vouchers
3. Lapsing subscriptions whose vouchers have expired

Cancellation Refund Rule:
    r = redeemed / issued * 100 (percent of vouchers used)
    eligible iff r <= 25
    amount = round_half_up(amount_paid * (100 - 2r) / 100), never negative

    The refund shrinks twice as fast as usage grows: at 15% usage the
    customer gets 70% back, at 25% usage 50%.

Usage:
    from vouchers.services import SubscriptionService

    subscription = SubscriptionService.purchase(user, plan, payment_id="pi_xxx")

    outcome = SubscriptionService.cancel(
        subscription.id,
        reason="Moving city",
        initiator=CancellationInitiator.USER,
        user=request.user,
    )
    if outcome.refund_eligible:
        print(f"Refund owed: {outcome.refund_amount_cents}")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.exceptions import NotFoundError, PermissionDeniedError
from core.services import BaseService

from vouchers.exceptions import SubscriptionValidationError
from vouchers.models import Subscription, SubscriptionPlan, Voucher
from vouchers.services.voucher_service import VoucherService
from vouchers.state_machines import (
    CancellationInitiator,
    SubscriptionStatus,
    VoucherStatus,
)

# =============================================================================
# Constants
# =============================================================================

# Highest usage (percent of issued vouchers redeemed) that still earns a refund
REFUND_USAGE_THRESHOLD_PERCENT = Decimal("25")


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CancellationRefund:
    """
    Outcome of the usage-based refund rule.

    Attributes:
        eligible: Whether usage was within the refund threshold
        amount_cents: Refund owed (0 when not eligible)
        usage_percent: Redeemed / issued * 100
        reason: Human-readable explanation
    """

    eligible: bool
    amount_cents: int
    usage_percent: Decimal
    reason: str


@dataclass
class SubscriptionCancellation:
    """
    Result of SubscriptionService.cancel().

    Attributes:
        subscription: The now CANCELLED subscription
        vouchers_cancelled: Unused vouchers moved to CANCELLED
        refund_eligible: Whether a refund is owed
        refund_amount_cents: Amount owed (0 when not eligible)
        refund_reason: Explanation of the refund decision
        usage_percent: Percent of issued vouchers that were redeemed
    """

    subscription: Subscription
    vouchers_cancelled: int
    refund_eligible: bool
    refund_amount_cents: int
    refund_reason: str
    usage_percent: Decimal


# =============================================================================
# Subscription Service
# =============================================================================


class SubscriptionService(BaseService):
    """
    Service for buying and cancelling voucher subscriptions.

    The subscription row and all of its vouchers are created in one
    transaction, and cancellation updates both under a row lock on the
    subscription.
    """

    # =========================================================================
    # Purchase
    # =========================================================================

    @classmethod
    def purchase(
        cls,
        user,
        plan: SubscriptionPlan | uuid.UUID | str,
        payment_id: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Purchase a plan and issue its vouchers.

        Args:
            user: Subscriber
            plan: SubscriptionPlan instance or id
            payment_id: Gateway payment reference for the purchase
            now: Purchase instant (defaults to now)

        Returns:
            The ACTIVE subscription

        Raises:
            NotFoundError: If the plan id does not exist
            SubscriptionValidationError: If the plan is not purchasable
        """
        now = now or timezone.now()

        if not isinstance(plan, SubscriptionPlan):
            plan_id = plan
            plan = SubscriptionPlan.objects.filter(id=plan_id).first()
            if plan is None:
                raise NotFoundError(
                    f"Subscription plan {plan_id} not found",
                    error_code="PLAN_NOT_FOUND",
                    details={"plan_id": str(plan_id)},
                )

        if not plan.is_purchasable(now):
            raise SubscriptionValidationError(
                f"Plan '{plan.name}' is not available for purchase",
                error_code="PLAN_NOT_AVAILABLE",
                details={"plan_id": str(plan.id), "status": plan.status},
            )

        voucher_expiry = now + timedelta(days=plan.voucher_validity_days)

        with cls.atomic():
            subscription = Subscription.objects.create(
                user=user,
                plan=plan,
                plan_snapshot=plan.snapshot(),
                purchased_at=now,
                start_date=now,
                end_date=now + timedelta(days=plan.duration_days),
                total_vouchers_issued=plan.total_vouchers,
                voucher_expiry_date=voucher_expiry,
                amount_paid_cents=plan.price_cents,
                currency=plan.currency,
                payment_id=payment_id,
            )
            VoucherService.issue(
                user,
                plan.total_vouchers,
                voucher_expiry,
                subscription=subscription,
                now=now,
            )

        cls.get_logger().info(
            "Subscription purchased",
            extra={
                "subscription_id": str(subscription.id),
                "user_id": user.pk,
                "plan_id": str(plan.id),
                "vouchers_issued": plan.total_vouchers,
                "amount_paid_cents": plan.price_cents,
            },
        )
        return subscription

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def calculate_cancellation_refund(
        cls,
        amount_paid_cents: int,
        redeemed: int,
        issued: int,
    ) -> CancellationRefund:
        """
        Apply the usage-based refund rule.

        Args:
            amount_paid_cents: What the subscriber paid
            redeemed: Vouchers of the subscription currently REDEEMED
            issued: Vouchers issued at purchase

        Returns:
            CancellationRefund with eligibility, amount and usage
        """
        if issued > 0:
            usage = Decimal(redeemed) * 100 / Decimal(issued)
        else:
            usage = Decimal(0)
        usage_display = usage.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        if usage > REFUND_USAGE_THRESHOLD_PERCENT:
            return CancellationRefund(
                eligible=False,
                amount_cents=0,
                usage_percent=usage_display,
                reason=(
                    f"Usage {usage_display}% exceeds the "
                    f"{REFUND_USAGE_THRESHOLD_PERCENT}% refund threshold"
                ),
            )

        raw = Decimal(amount_paid_cents) * (100 - 2 * usage) / 100
        amount = max(int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)), 0)

        return CancellationRefund(
            eligible=True,
            amount_cents=amount,
            usage_percent=usage_display,
            reason=(
                f"Usage {usage_display}% is within the "
                f"{REFUND_USAGE_THRESHOLD_PERCENT}% refund threshold"
            ),
        )

    @classmethod
    def cancel(
        cls,
        subscription_id: uuid.UUID,
        reason: str,
        initiator: str = CancellationInitiator.USER,
        user=None,
        now: datetime | None = None,
    ) -> SubscriptionCancellation:
        """
        Cancel an ACTIVE subscription.

        The subscription always ends CANCELLED and its unredeemed
        vouchers are cancelled, whether or not a refund is owed. The
        refund itself is settled by the payments side.

        Args:
            subscription_id: Subscription to cancel
            reason: Free-text cancellation reason
            initiator: USER or ADMIN
            user: Acting user; a USER cancellation must come from the owner
            now: Cancellation instant (defaults to now)

        Raises:
            NotFoundError: If the subscription does not exist
            PermissionDeniedError: If a user cancels someone else's subscription
            SubscriptionValidationError: If the subscription is not ACTIVE
        """
        now = now or timezone.now()

        with cls.atomic():
            subscription = (
                Subscription.objects.select_for_update()
                .filter(id=subscription_id)
                .first()
            )
            if subscription is None:
                raise NotFoundError(
                    f"Subscription {subscription_id} not found",
                    error_code="SUBSCRIPTION_NOT_FOUND",
                    details={"subscription_id": str(subscription_id)},
                )

            if (
                user is not None
                and initiator == CancellationInitiator.USER
                and subscription.user_id != user.pk
            ):
                raise PermissionDeniedError(
                    "You can only cancel your own subscriptions",
                    details={"subscription_id": str(subscription_id)},
                )

            if subscription.status != SubscriptionStatus.ACTIVE:
                raise SubscriptionValidationError(
                    f"Cannot cancel subscription in {subscription.status} status",
                    error_code="SUBSCRIPTION_NOT_ACTIVE",
                    details={
                        "subscription_id": str(subscription_id),
                        "current_status": subscription.status,
                    },
                )

            redeemed = Voucher.objects.filter(
                subscription=subscription,
                status=VoucherStatus.REDEEMED,
            ).count()
            refund = cls.calculate_cancellation_refund(
                subscription.amount_paid_cents,
                redeemed,
                subscription.total_vouchers_issued,
            )

            try:
                subscription.cancel(
                    reason=reason,
                    initiator=initiator,
                    refund_eligible=refund.eligible,
                    refund_amount_cents=refund.amount_cents,
                    now=now,
                )
            except TransitionNotAllowed:
                raise SubscriptionValidationError(
                    f"Cannot cancel subscription in {subscription.status} status",
                    error_code="SUBSCRIPTION_NOT_ACTIVE",
                    details={"current_status": subscription.status},
                ) from None
            subscription.save()

            vouchers_cancelled = VoucherService.cancel_for_subscription(
                subscription, now=now
            )

        cls.get_logger().info(
            "Subscription cancelled",
            extra={
                "subscription_id": str(subscription.id),
                "initiator": initiator,
                "usage_percent": str(refund.usage_percent),
                "refund_eligible": refund.eligible,
                "refund_amount_cents": refund.amount_cents,
                "vouchers_cancelled": vouchers_cancelled,
            },
        )

        return SubscriptionCancellation(
            subscription=subscription,
            vouchers_cancelled=vouchers_cancelled,
            refund_eligible=refund.eligible,
            refund_amount_cents=refund.amount_cents,
            refund_reason=refund.reason,
            usage_percent=refund.usage_percent,
        )

    # =========================================================================
    # Expiry
    # =========================================================================

    @classmethod
    def expire_lapsed(cls, now: datetime | None = None) -> int:
        """
        Move ACTIVE subscriptions past their voucher expiry to EXPIRED.

        Returns:
            Number of subscriptions expired
        """
        now = now or timezone.now()
        expired = 0

        with cls.atomic():
            lapsed = Subscription.objects.select_for_update().filter(
                status=SubscriptionStatus.ACTIVE,
                voucher_expiry_date__lt=now,
            )
            for subscription in lapsed:
                subscription.expire()
                subscription.save()
                expired += 1

        if expired:
            cls.get_logger().info(
                "Lapsed subscriptions expired",
                extra={"expired_count": expired},
            )
        return expired
