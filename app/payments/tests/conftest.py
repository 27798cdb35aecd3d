"""
Pytest fixtures for refund tests.

Redis is replaced by a MagicMock for every test so DistributedLock
always acquires, and the gateway is a MagicMock injected into
RefundService. Fixtures provide refunds in the statuses the service
cares about.

Usage:
    def test_process(initiated_refund, mock_gateway):
        mock_gateway.create_refund.return_value = make_refund_result()
        result = RefundService.process(initiated_refund.id)
        assert result.success
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from rest_framework.test import APIClient

from payments.services import RefundService
from payments.state_machines import RefundStatus
from payments.tests.factories import (
    AdminUserFactory,
    OrderFactory,
    RefundFactory,
    UserFactory,
    make_refund_result,
)


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Mock Redis connection used by DistributedLock.

    Locks always acquire and release; tests that need contention set
    `mock_redis.set.return_value = False`.
    """
    redis_instance = mocker.MagicMock()
    redis_instance.set.return_value = True
    redis_instance.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=redis_instance)
    return redis_instance


@pytest.fixture
def mock_gateway(mocker):
    """
    Inject a mock gateway adapter into RefundService.

    Defaults to a successful refund; override create_refund.return_value
    or side_effect per test.
    """
    gateway = mocker.MagicMock()
    gateway.create_refund.return_value = make_refund_result()
    RefundService.set_gateway_adapter(gateway)
    yield gateway
    RefundService.set_gateway_adapter(None)


@pytest.fixture
def fixed_now():
    """A fixed instant for deterministic timestamps."""
    return datetime(2026, 3, 10, 6, 0, tzinfo=dt_timezone.utc)


# =============================================================================
# User and Client Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    """Create a second user to check ownership rules."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    """Create a staff user."""
    return AdminUserFactory()


@pytest.fixture
def authenticated_client(user):
    """Return API client authenticated as `user`."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_client(admin_user):
    """Return API client authenticated as a staff user."""
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# =============================================================================
# Order Fixtures
# =============================================================================


@pytest.fixture
def paid_order(db, user):
    """A PAID order of 250.00 INR with a gateway payment reference."""
    return OrderFactory(user=user, amount_paid_cents=25000)


# =============================================================================
# Refund State Fixtures
# =============================================================================


@pytest.fixture
def initiated_refund(db, paid_order):
    """An INITIATED full refund of paid_order."""
    return RefundFactory(order=paid_order)


@pytest.fixture
def pending_refund(db, paid_order):
    """A manual refund awaiting approval."""
    return RefundFactory(order=paid_order, status=RefundStatus.PENDING)


@pytest.fixture
def processing_refund(db, paid_order):
    """A refund with a gateway attempt in flight."""
    return RefundFactory(order=paid_order, status=RefundStatus.PROCESSING)


@pytest.fixture
def failed_refund(db, paid_order, fixed_now):
    """A FAILED refund whose automatic retry is due."""
    return RefundFactory(
        order=paid_order,
        status=RefundStatus.FAILED,
        retry_count=1,
        attempt_count=1,
        failure_reason="Gateway unavailable",
        failed_at=fixed_now - timedelta(hours=2),
        next_retry_at=fixed_now - timedelta(hours=1),
    )


@pytest.fixture
def completed_refund(db, paid_order, fixed_now):
    """A COMPLETED full refund."""
    return RefundFactory(
        order=paid_order,
        status=RefundStatus.COMPLETED,
        gateway_refund_id="re_done123",
        completed_at=fixed_now,
    )
