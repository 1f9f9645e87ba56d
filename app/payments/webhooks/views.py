"""
Webhook endpoint for Stripe refund events.

The view verifies the signature, stores the event once per
stripe_event_id, queues it for the Celery task and returns. Refund
outcomes are applied by the task, never in the request.

Usage:
    # In payments/urls.py
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue a Stripe webhook event.

    Returns:
        200 when the event is accepted, including redeliveries of an event
        already processed; 400 for a missing or invalid signature or an
        event without id or type
    """
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message, "stripe_code": e.stripe_code},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")
    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Duplicate webhook already processed",
            extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
        )
        return HttpResponse("Already processed", status=200)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
            "webhook_event_id": str(webhook_event.id),
            "redelivery": not created,
        },
    )

    from payments.tasks import process_webhook_event

    try:
        process_webhook_event.delay(str(webhook_event.id))
    except Exception:
        # The event stays PENDING; retry_failed_webhooks or a Stripe
        # redelivery picks it up
        logger.exception(
            "Failed to queue webhook",
            extra={"stripe_event_id": stripe_event_id},
        )

    return HttpResponse("Accepted", status=200)
