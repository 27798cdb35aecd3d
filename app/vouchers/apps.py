"""
Vouchers app configuration.

Owns the voucher ledger, subscription issuance and the meal cutoff
policy. The process-wide CutoffConfigStore is created here so every
request and worker reads the same cutoff times.
"""

from django.apps import AppConfig


class VouchersConfig(AppConfig):
    """Configuration for the vouchers application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "vouchers"
    verbose_name = "Vouchers"

    def ready(self):
        from vouchers.services.cutoff import CutoffConfig, CutoffConfigStore

        self.cutoff_store = CutoffConfigStore(CutoffConfig.from_settings())
