"""
Reconciliation worker for APPROVED refunds.

This module provides Celery tasks that converge refunds left APPROVED
(Stripe timeout, pending Stripe refund, failed local commit) with
Stripe's own refund record.

Tasks:
- reconcile_approved_refunds: Periodic task, scheduled every 15 minutes
- reconcile_single_refund: On-demand reconciliation for a specific refund

Celery Beat Schedule:
    Created by migration payments.0002_refund_reconciliation_schedule as a
    django-celery-beat PeriodicTask:

        'reconcile-approved-refunds': {
            'task': 'payments.workers.reconciliation_worker.reconcile_approved_refunds',
            'schedule': every 15 minutes,
        }
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from payments.exceptions import ReconciliationLockError

logger = logging.getLogger(__name__)


# =============================================================================
# Periodic Task: Approved Refund Reconciliation
# =============================================================================


@shared_task(bind=True)
def reconcile_approved_refunds(
    self,
    min_age_minutes: int | None = None,
    batch_size: int | None = None,
) -> dict:
    """
    Cross-check APPROVED refunds older than min_age_minutes against Stripe.

    Args:
        min_age_minutes: Defaults to settings.REFUND_RECONCILIATION_MIN_AGE_MINUTES
        batch_size: Defaults to settings.REFUND_RECONCILIATION_BATCH_SIZE

    Returns:
        Dict with:
        - status: "completed", "skipped" (lock held), or "failed"
        - run_id, checked, updated, errors, has_more when completed
        - error: Error message if failed

    Note:
        If another run holds the lock, this task returns "skipped" rather
        than waiting, so slow runs never pile up in the queue.
    """
    from payments.services import RefundReconciliationService

    try:
        result = RefundReconciliationService.reconcile_approved_refunds(
            min_age_minutes=min_age_minutes,
            batch_size=batch_size,
        )
    except ReconciliationLockError:
        logger.info(
            "Refund reconciliation skipped - another run in progress",
            extra={"task_id": self.request.id},
        )
        return {
            "status": "skipped",
            "reason": "Another reconciliation run is in progress",
        }
    except Exception as e:
        logger.exception(
            f"Unexpected error during refund reconciliation: {e}",
            extra={"error": str(e)},
        )
        return {
            "status": "failed",
            "error": str(e),
            "error_code": "UNEXPECTED_ERROR",
        }

    if not result.success:
        logger.error(
            f"Refund reconciliation failed: {result.error}",
            extra={"error": result.error, "error_code": result.error_code},
        )
        return {
            "status": "failed",
            "error": result.error,
            "error_code": result.error_code,
        }

    if result.data.has_more:
        logger.info(
            "Refund reconciliation backlog remains",
            extra={"run_id": str(result.data.run_id)},
        )

    return {"status": "completed", **result.data.to_dict()}


# =============================================================================
# On-Demand Task: Single Refund Reconciliation
# =============================================================================


@shared_task
def reconcile_single_refund(refund_id: str) -> dict:
    """
    Reconcile one APPROVED refund against Stripe.

    Returns:
        Dict with status "ok" and the outcome ("completed", "failed",
        "unchanged"), or status "failed" with the error
    """
    from payments.services import RefundReconciliationService

    try:
        refund_uuid = UUID(refund_id)
    except ValueError:
        logger.error(f"Invalid refund_id format: {refund_id}")
        return {
            "status": "failed",
            "refund_id": refund_id,
            "error": "Invalid UUID format",
        }

    result = RefundReconciliationService.reconcile_refund(refund_uuid)
    if not result.success:
        return {
            "status": "failed",
            "refund_id": refund_id,
            "error": result.error,
            "error_code": result.error_code,
        }

    return {"status": "ok", "refund_id": refund_id, "outcome": result.data}
