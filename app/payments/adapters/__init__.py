"""
Payment gateway adapters.

All refund calls to the payment provider go through these adapters to
ensure consistent error handling, timeouts, idempotency, and
observability.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    result = StripeAdapter.create_refund(
        payment_intent_id="pi_xxx",
        idempotency_key=IdempotencyKeyGenerator.generate("create_refund", refund.id),
        amount_cents=5000,
    )
"""

from payments.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    RefundResult,
    StripeAdapter,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "RefundResult",
    "StripeAdapter",
]
