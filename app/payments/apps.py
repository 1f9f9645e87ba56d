"""
Payments app configuration.

This app provides the order refund engine:
- Refund ledger (create, approve, reject, cancel, list)
- Stripe refund processing with inventory restock and payment status
- Webhook handling and periodic reconciliation against Stripe
- Discount calculation
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
