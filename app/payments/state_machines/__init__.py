"""
State machine enums for order and refund models.
"""

from payments.state_machines.states import (
    DiscountType,
    OrderPaymentStatus,
    ReconciliationRunStatus,
    RefundHistoryAction,
    RefundReason,
    RefundStatus,
    WebhookEventStatus,
)

__all__ = [
    "DiscountType",
    "OrderPaymentStatus",
    "ReconciliationRunStatus",
    "RefundHistoryAction",
    "RefundReason",
    "RefundStatus",
    "WebhookEventStatus",
]
