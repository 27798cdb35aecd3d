"""
State machine enums for voucher ledger models.

Voucher status changes are bulk conditional updates (see
vouchers.services.voucher_service); Subscription uses django-fsm.
"""

from vouchers.state_machines.states import (
    USABLE_VOUCHER_STATUSES,
    CancellationInitiator,
    MealWindow,
    PlanStatus,
    RestorationReason,
    SubscriptionStatus,
    VoucherMealType,
    VoucherStatus,
)

__all__ = [
    "USABLE_VOUCHER_STATUSES",
    "CancellationInitiator",
    "MealWindow",
    "PlanStatus",
    "RestorationReason",
    "SubscriptionStatus",
    "VoucherMealType",
    "VoucherStatus",
]
