"""
Voucher ledger models.

- Voucher: One prepaid meal credit
- SubscriptionPlan: Catalog entry vouchers are bought through
- Subscription: One purchase of a plan, owner of its vouchers
"""

from vouchers.models.subscription import Subscription, SubscriptionPlan
from vouchers.models.voucher import Voucher, generate_voucher_code

__all__ = [
    "Subscription",
    "SubscriptionPlan",
    "Voucher",
    "generate_voucher_code",
]
