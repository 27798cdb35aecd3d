"""
Refund settlement models.

- Refund: Money returned to a customer for an order
"""

from payments.models.refund import Refund, generate_refund_number

__all__ = [
    "Refund",
    "generate_refund_number",
]
