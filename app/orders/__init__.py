"""
Orders app: the slice of the order record the ledger depends on.

Order placement, kitchen workflow and payment capture live elsewhere;
this app only stores what voucher redemption and refund settlement
read and write (amount paid, gateway payment id, payment status and
the vouchers spent on the order).
"""
