"""
Payments app for order refunds.

This app handles:
- The refund ledger (create, approve, reject, cancel, list)
- Sending approved refunds to Stripe and applying the outcome
- Inventory restock and order payment status after a refund
- Reconciliation of refunds whose Stripe outcome is unknown
- Stripe refund webhooks
- Discount previews

Related apps:
    - catalog: SKU inventory restored by refunds

Usage:
    from payments.services import CallerContext, RefundProcessingService

    result = RefundProcessingService.process(CallerContext.system(), refund_id)
"""
