"""
State enums for voucher ledger models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Voucher Status:
    AVAILABLE → REDEEMED → RESTORED → REDEEMED ...
    AVAILABLE/RESTORED → EXPIRED (expiry sweep)
    AVAILABLE/RESTORED → CANCELLED (subscription cancelled)
    EXPIRED → RESTORED (forced restore only)

Subscription Status:
    ACTIVE → CANCELLED
    ACTIVE → EXPIRED (voucher expiry date passed)
"""

from django.db import models


class VoucherStatus(models.TextChoices):
    """
    States for the Voucher model lifecycle.

    Usable states: AVAILABLE, RESTORED (and only while expiry_date > now).
    Terminal states: EXPIRED, CANCELLED (a forced restore may revive EXPIRED).

    Note:
        A RESTORED voucher behaves exactly like an AVAILABLE one for
        redemption; the distinct status keeps the audit trail readable.
    """

    AVAILABLE = "AVAILABLE", "Available"
    REDEEMED = "REDEEMED", "Redeemed"
    EXPIRED = "EXPIRED", "Expired"
    RESTORED = "RESTORED", "Restored"
    CANCELLED = "CANCELLED", "Cancelled"


# Statuses a voucher can be redeemed from (expiry checked separately)
USABLE_VOUCHER_STATUSES = (VoucherStatus.AVAILABLE, VoucherStatus.RESTORED)


class MealWindow(models.TextChoices):
    """Service windows an order (and therefore a redemption) belongs to."""

    LUNCH = "LUNCH", "Lunch"
    DINNER = "DINNER", "Dinner"


class VoucherMealType(models.TextChoices):
    """
    Which meal windows a voucher may be spent in.

    ANY vouchers are accepted in every window; LUNCH/DINNER vouchers
    only in the matching window.
    """

    ANY = "ANY", "Any meal"
    LUNCH = "LUNCH", "Lunch"
    DINNER = "DINNER", "Dinner"


class RestorationReason(models.TextChoices):
    """Why a redeemed voucher was returned to the user's balance."""

    ORDER_CANCELLED = "ORDER_CANCELLED", "Order cancelled"
    ORDER_REJECTED = "ORDER_REJECTED", "Order rejected"
    ADMIN_ACTION = "ADMIN_ACTION", "Admin action"
    OTHER = "OTHER", "Other"


class PlanStatus(models.TextChoices):
    """Catalog status of a SubscriptionPlan. Only ACTIVE plans can be bought."""

    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"
    ARCHIVED = "ARCHIVED", "Archived"


class SubscriptionStatus(models.TextChoices):
    """
    States for the Subscription model lifecycle.

    Terminal states: EXPIRED, CANCELLED

    State Flow:
        ACTIVE → CANCELLED (user or admin cancellation)
        ACTIVE → EXPIRED (voucher_expiry_date passed)
    """

    ACTIVE = "ACTIVE", "Active"
    EXPIRED = "EXPIRED", "Expired"
    CANCELLED = "CANCELLED", "Cancelled"


class CancellationInitiator(models.TextChoices):
    """Who cancelled a subscription."""

    USER = "USER", "User"
    ADMIN = "ADMIN", "Admin"
