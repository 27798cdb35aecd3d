"""
Tests for voucher Celery tasks.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from vouchers.models import Subscription, Voucher
from vouchers.state_machines import SubscriptionStatus, VoucherStatus
from vouchers.tasks import expire_vouchers
from vouchers.tests.factories import SubscriptionFactory, VoucherFactory


@pytest.mark.django_db
class TestExpireVouchersTask:
    """Tests for the expire_vouchers periodic task."""

    def test_expires_vouchers_and_lapses_subscriptions(self, user):
        past = timezone.now() - timedelta(days=1)
        subscription = SubscriptionFactory(user=user, voucher_expiry_date=past)
        VoucherFactory.create_batch(
            2, user=user, subscription=subscription, expiry_date=past
        )
        VoucherFactory(user=user)

        result = expire_vouchers()

        assert result == {"expired_count": 2, "subscriptions_expired": 1}
        assert Voucher.objects.filter(status=VoucherStatus.EXPIRED).count() == 2
        assert Subscription.objects.get(pk=subscription.pk).status == (
            SubscriptionStatus.EXPIRED
        )

    def test_second_run_changes_nothing(self, user):
        VoucherFactory(user=user, expiry_date=timezone.now() - timedelta(hours=1))

        expire_vouchers()
        result = expire_vouchers()

        assert result == {"expired_count": 0, "subscriptions_expired": 0}
