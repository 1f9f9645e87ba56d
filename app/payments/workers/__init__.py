"""
Workers for background refund processing.

This module contains Celery tasks for refund reconciliation:
- reconcile_approved_refunds: Periodic cross-check of APPROVED refunds
- reconcile_single_refund: On-demand reconciliation of one refund

Usage:
    from payments.workers import reconcile_approved_refunds, reconcile_single_refund

    reconcile_approved_refunds.delay()
    reconcile_single_refund.delay(str(refund_id))
"""

from payments.workers.reconciliation_worker import (
    reconcile_approved_refunds,
    reconcile_single_refund,
)

__all__ = [
    "reconcile_approved_refunds",
    "reconcile_single_refund",
]
