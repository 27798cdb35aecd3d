"""
Voucher ledger exceptions.

Exception Hierarchy:
    ValidationError (core)
    ├── VoucherValidationError - Bad redemption input, closed meal window
    └── SubscriptionValidationError - Plan not purchasable, wrong status

    ConflictError (core)
    └── InsufficientVouchersError - Not enough usable vouchers to claim

Usage:
    from vouchers.exceptions import InsufficientVouchersError

    raise InsufficientVouchersError(
        "Need 3 vouchers, only 1 available",
        details={"requested": 3, "available": 1},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError, ValidationError

if TYPE_CHECKING:
    from typing import Any


class VoucherValidationError(ValidationError):
    """
    Raised when a voucher operation is given invalid input.

    Use for:
    - Non-positive voucher counts
    - Redemption after the meal window cutoff (error_code CUTOFF_PASSED)
    - Unknown meal windows or restoration reasons
    """

    default_error_code: str = "VOUCHER_VALIDATION_ERROR"


class SubscriptionValidationError(ValidationError):
    """
    Raised when a subscription cannot be bought or changed.

    Use for:
    - Plans that are not ACTIVE or outside their sale window
    - Cancelling a subscription that is not ACTIVE
    """

    default_error_code: str = "SUBSCRIPTION_VALIDATION_ERROR"


class InsufficientVouchersError(ConflictError):
    """
    Raised when a redemption cannot claim the requested number of vouchers.

    Covers both "the user never had enough" and "a concurrent redemption
    claimed some of them first". In both cases nothing was redeemed.

    Attributes:
        requested: Vouchers asked for
        available: Vouchers that could be claimed at the time
    """

    default_error_code: str = "INSUFFICIENT_VOUCHERS"

    def __init__(
        self,
        message: str,
        requested: int,
        available: int,
        details: dict[str, Any] | None = None,
    ):
        self.requested = requested
        self.available = available
        merged = {"requested": requested, "available": available}
        merged.update(details or {})
        super().__init__(message, details=merged)
