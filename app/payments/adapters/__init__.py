"""
Payment adapters for external services.

All Stripe calls go through StripeAdapter to ensure consistent error
handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StripeAdapter

    result = StripeAdapter.create_refund(
        payment_intent_id="pi_xxx",
        amount_cents=4000,
        idempotency_key="refund_<uuid>",
    )
"""

from payments.adapters.stripe_adapter import RefundResult, StripeAdapter

__all__ = [
    "RefundResult",
    "StripeAdapter",
]
