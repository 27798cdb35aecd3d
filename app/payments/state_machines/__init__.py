"""
State machine enums for refund settlement.

The Refund model drives RefundStatus with django-fsm.
"""

from payments.state_machines.states import (
    LIVE_REFUND_STATUSES,
    TERMINAL_REFUND_STATUSES,
    RefundInitiator,
    RefundReason,
    RefundStatus,
    RefundType,
)

__all__ = [
    "LIVE_REFUND_STATUSES",
    "TERMINAL_REFUND_STATUSES",
    "RefundInitiator",
    "RefundReason",
    "RefundStatus",
    "RefundType",
]
