"""
Vouchers app: prepaid meal voucher ledger.

This app handles:
- Voucher issue, all-or-nothing redemption, restoration and expiry
- Meal window cutoff policy
- Subscription purchase (voucher issuance) and cancellation refunds

Related apps:
    - orders: orders redeem vouchers and carry their ids
    - payments: refund initiation restores vouchers of cancelled orders

Usage:
    from vouchers.services import VoucherService

    voucher_ids = VoucherService.redeem(
        user=user,
        count=2,
        meal_window=MealWindow.LUNCH,
        order_id=order.id,
        kitchen_id=order.kitchen_id,
    )
"""
