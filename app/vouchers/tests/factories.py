"""
Factory Boy factories for voucher ledger models.

Usage:
    from vouchers.tests.factories import VoucherFactory, SubscriptionFactory

    # Five usable vouchers for one user
    vouchers = VoucherFactory.create_batch(5, user=user)

    # A voucher already spent on an order
    voucher = VoucherFactory(redeemed=True)
"""

import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from orders.tests.factories import UserFactory
from vouchers.models import Subscription, SubscriptionPlan, Voucher
from vouchers.state_machines import (
    MealWindow,
    PlanStatus,
    SubscriptionStatus,
    VoucherMealType,
    VoucherStatus,
)


class SubscriptionPlanFactory(factory.django.DjangoModelFactory):
    """
    Factory for an ACTIVE 20-day plan with one voucher per day.

    Examples:
        plan = SubscriptionPlanFactory()
        retired = SubscriptionPlanFactory(status=PlanStatus.ARCHIVED)
    """

    class Meta:
        model = SubscriptionPlan

    name = factory.Sequence(lambda n: f"Monthly Lunch {n}")
    description = "Weekday lunches"
    duration_days = 20
    vouchers_per_day = 1
    voucher_validity_days = 30
    price_cents = 10000
    currency = "inr"
    status = PlanStatus.ACTIVE


class SubscriptionFactory(factory.django.DjangoModelFactory):
    """
    Factory for an ACTIVE subscription.

    Does not issue vouchers; create them with VoucherFactory or use
    SubscriptionService.purchase() when the full flow matters.
    """

    class Meta:
        model = Subscription

    user = factory.SubFactory(UserFactory)
    plan = factory.SubFactory(SubscriptionPlanFactory)
    plan_snapshot = factory.LazyAttribute(lambda o: o.plan.snapshot())
    purchased_at = factory.LazyFunction(timezone.now)
    start_date = factory.LazyAttribute(lambda o: o.purchased_at)
    end_date = factory.LazyAttribute(
        lambda o: o.purchased_at + timedelta(days=o.plan.duration_days)
    )
    total_vouchers_issued = factory.LazyAttribute(lambda o: o.plan.total_vouchers)
    voucher_expiry_date = factory.LazyAttribute(
        lambda o: o.purchased_at + timedelta(days=o.plan.voucher_validity_days)
    )
    amount_paid_cents = factory.LazyAttribute(lambda o: o.plan.price_cents)
    currency = "inr"
    payment_id = factory.LazyFunction(lambda: f"pi_{uuid.uuid4().hex[:24]}")
    status = SubscriptionStatus.ACTIVE


class VoucherFactory(factory.django.DjangoModelFactory):
    """
    Factory for an AVAILABLE voucher valid for any meal.

    The default expiry is a year out so vouchers stay usable whatever
    fixed instant a test pins `now` to.

    Traits:
        redeemed: REDEEMED against a random order at lunch
    """

    class Meta:
        model = Voucher

    user = factory.SubFactory(UserFactory)
    subscription = None
    meal_type = VoucherMealType.ANY
    issued_at = factory.LazyFunction(timezone.now)
    expiry_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=365))
    status = VoucherStatus.AVAILABLE

    class Params:
        redeemed = factory.Trait(
            status=VoucherStatus.REDEEMED,
            redeemed_at=factory.LazyFunction(timezone.now),
            redeemed_order_id=factory.LazyFunction(uuid.uuid4),
            redeemed_kitchen_id=factory.LazyFunction(uuid.uuid4),
            redeemed_meal_window=MealWindow.LUNCH,
        )
