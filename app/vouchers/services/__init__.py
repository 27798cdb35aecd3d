"""
Voucher ledger services.

- VoucherService: issue, redeem, restore, cancel, expire, eligibility, balance
- SubscriptionService: purchase, cancel (usage-based refund), lapse
- CutoffPolicy / CutoffConfig / CutoffConfigStore: meal window cutoffs
"""

from vouchers.services.cutoff import (
    CutoffConfig,
    CutoffConfigStore,
    CutoffPolicy,
    CutoffStatus,
    get_cutoff_store,
    get_default_policy,
)
from vouchers.services.subscription_service import (
    CancellationRefund,
    SubscriptionCancellation,
    SubscriptionService,
)
from vouchers.services.voucher_service import (
    VoucherBalance,
    VoucherEligibility,
    VoucherService,
)

__all__ = [
    "CancellationRefund",
    "CutoffConfig",
    "CutoffConfigStore",
    "CutoffPolicy",
    "CutoffStatus",
    "SubscriptionCancellation",
    "SubscriptionService",
    "VoucherBalance",
    "VoucherEligibility",
    "VoucherService",
    "get_cutoff_store",
    "get_default_policy",
]
