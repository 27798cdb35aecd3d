"""
Pytest fixtures for voucher ledger tests.

Instants are pinned relative to the default Asia/Kolkata cutoffs
(lunch 11:00, dinner 21:00) so open/closed checks are deterministic.

Usage:
    def test_redeem(user, lunch_open_now):
        VoucherService.redeem(user, 1, MealWindow.LUNCH, order_id, kitchen_id,
                              now=lunch_open_now)
"""

from datetime import datetime, timezone as dt_timezone

import pytest
from rest_framework.test import APIClient

from orders.tests.factories import AdminUserFactory, UserFactory
from vouchers.services.cutoff import CutoffConfig, CutoffPolicy, get_cutoff_store


# =============================================================================
# Clock Fixtures
# =============================================================================


@pytest.fixture
def lunch_open_now():
    """09:30 IST: both windows open."""
    return datetime(2026, 3, 10, 4, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def lunch_closed_now():
    """12:00 IST: lunch closed, dinner open."""
    return datetime(2026, 3, 10, 6, 30, tzinfo=dt_timezone.utc)


@pytest.fixture
def all_closed_now():
    """21:30 IST: both windows closed for the day."""
    return datetime(2026, 3, 10, 16, 0, tzinfo=dt_timezone.utc)


# =============================================================================
# Cutoff Fixtures
# =============================================================================


@pytest.fixture
def default_policy():
    """Policy for the default 11:00 / 21:00 Asia/Kolkata cutoffs."""
    return CutoffPolicy(CutoffConfig())


@pytest.fixture(autouse=True)
def reset_cutoff_store():
    """Undo cutoff updates made through the process-wide store."""
    yield
    get_cutoff_store().reset(CutoffConfig())


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
def api_client():
    """Return unauthenticated API client."""
    return APIClient()


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
