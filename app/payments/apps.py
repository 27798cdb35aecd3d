"""
Payments app configuration.

This app settles refunds:
- Refund records and their state machine
- Stripe refund calls through the gateway adapter
- Redis locks serialising initiation and processing
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
