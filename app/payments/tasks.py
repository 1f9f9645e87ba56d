"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing Stripe webhook events
- Retrying failed or never-queued webhook events
- Refund reconciliation (re-exported from payments.workers)

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5

# PENDING events older than this were never queued successfully
UNQUEUED_THRESHOLD_MINUTES = 10


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    Marks the event PROCESSING, routes it to its registered handler and
    marks it PROCESSED or FAILED. Already processed events are skipped.

    Raises:
        Exception: Re-raised to trigger the Celery retry mechanism
    """
    from payments.webhooks.handlers import dispatch_webhook

    try:
        webhook_event = WebhookEvent.objects.get(id=UUID(str(webhook_event_id)))
    except (ValueError, WebhookEvent.DoesNotExist):
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event.id)}

    webhook_event.mark_processing()
    webhook_event.save()

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "retry_count": webhook_event.retry_count,
            },
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event.id),
            "error": error_msg,
        }

    webhook_event.mark_processed()
    webhook_event.save()
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event.id),
        "stripe_event_id": webhook_event.stripe_event_id,
        "outcome": result.data,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Re-queue FAILED events under the retry limit, and PENDING events
    that were never queued.

    Returns:
        Dict with count of webhooks queued
    """
    unqueued_before = timezone.now() - timedelta(minutes=UNQUEUED_THRESHOLD_MINUTES)
    candidates = WebhookEvent.objects.filter(
        Q(status=WebhookEventStatus.FAILED, retry_count__lt=MAX_WEBHOOK_RETRIES)
        | Q(status=WebhookEventStatus.PENDING, created_at__lt=unqueued_before)
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in candidates:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    if queued_count:
        logger.info(
            f"Queued {queued_count} webhooks for retry",
            extra={"queued_count": queued_count},
        )
    return {"queued_count": queued_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# Defined in payments.workers; imported here so that Celery autodiscovery
# registers them.

from payments.workers import (  # noqa: E402, F401
    reconcile_approved_refunds,
    reconcile_single_refund,
)
