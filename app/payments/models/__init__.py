"""
Order and refund domain models.

- Order / OrderItem: purchases and their lines
- Discount: reusable discount rules
- Refund / RefundItem / RefundHistory: refund ledger and audit trail
- WebhookEvent: Stripe webhook event tracking for idempotent processing
- ReconciliationRun / ReconciliationDiscrepancy: refund reconciliation history
"""

from payments.models.discount import Discount
from payments.models.order import Order, OrderItem
from payments.models.reconciliation import (
    DiscrepancyResolution,
    ReconciliationDiscrepancy,
    ReconciliationRun,
)
from payments.models.refund import Refund, RefundHistory, RefundItem
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "DiscrepancyResolution",
    "Discount",
    "Order",
    "OrderItem",
    "ReconciliationDiscrepancy",
    "ReconciliationRun",
    "Refund",
    "RefundHistory",
    "RefundItem",
    "WebhookEvent",
]
