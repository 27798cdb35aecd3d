"""
Payments app: refund settlement.

This app handles:
- Refund initiation with one live refund per order
- Gateway processing with bounded automatic retries
- Admin approval, cancellation, manual retry and statistics

Related apps:
    - orders: refunds are raised against orders
    - vouchers: vouchers spent on a refunded order are restored

Usage:
    from payments.services import RefundService

    initiation = RefundService.initiate(order.id, reason=RefundReason.ORDER_REJECTED)
    if initiation.refund:
        RefundService.process(initiation.refund.id)
"""
