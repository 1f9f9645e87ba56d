"""
Refund services.

This module provides:
- RefundLedgerService: Create, approve, reject, cancel and list refunds
- RefundProcessingService: Send approved refunds to Stripe and apply the outcome
- RefundReconciliationService: Converge APPROVED refunds with Stripe
- StockRestorer / PaymentStatusAggregator: Inventory and order status side effects
- Discount calculator functions

Usage:
    from payments.services import CallerContext, RefundLedgerService, RefundProcessingService

    caller = CallerContext.from_request(request)

    result = RefundLedgerService.approve(caller, refund_id)
    if result.ok:
        result = RefundProcessingService.process(caller, refund_id)
"""

from payments.services.discount_calculator import (
    EligibleSubtotal,
    LineSnapshot,
    apply_discount,
    compute_discount,
    compute_eligible_subtotal,
)
from payments.services.payment_status import PaymentStatusAggregator
from payments.services.reconciliation_service import (
    RefundReconciliationResult,
    RefundReconciliationService,
)
from payments.services.refund_ledger import (
    RefundItemInput,
    RefundLedgerService,
    RefundListParams,
    refund_ordering,
    should_restock_by_default,
)
from payments.services.refund_processor import RefundProcessingService
from payments.services.results import (
    ActionResult,
    ActionStatus,
    CallerContext,
    is_administrator,
)
from payments.services.stock_restorer import StockRestorer

__all__ = [
    # Results
    "ActionResult",
    "ActionStatus",
    "CallerContext",
    "is_administrator",
    # Discounts
    "EligibleSubtotal",
    "LineSnapshot",
    "apply_discount",
    "compute_discount",
    "compute_eligible_subtotal",
    # Refunds
    "RefundItemInput",
    "RefundLedgerService",
    "RefundListParams",
    "refund_ordering",
    "RefundProcessingService",
    "should_restock_by_default",
    # Side effects
    "PaymentStatusAggregator",
    "StockRestorer",
    # Reconciliation
    "RefundReconciliationResult",
    "RefundReconciliationService",
]
