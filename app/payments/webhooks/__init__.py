"""
Stripe refund webhooks.

Stripe reports refund status changes (refund.updated and
charge.refund.updated) to POST /api/v1/payments/webhooks/stripe/. The
view checks the signature, stores each event once by its Stripe event id
and queues payments.tasks.process_webhook_event, which dispatches to the
handler registered for the event type.

A refund left APPROVED while Stripe settled it (pending, timed out, or
flagged for reconciliation) is completed or failed here, through the same
RefundReconciliationService.apply_remote_status path the reconciliation
job uses.

Adding a handler:
    from payments.webhooks import register_handler

    @register_handler("charge.refund.updated")
    def handle_refund_updated(webhook_event):
        ...
"""

from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
