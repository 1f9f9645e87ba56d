"""
Webhook event handlers for Stripe events.

This module provides a handler registry and the handlers for refund
events. Refund outcomes reported by Stripe are applied through
RefundReconciliationService.apply_remote_status, the same path the
periodic reconciliation job uses.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    # Dispatch an event to its handler
    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from core.services import ServiceResult
from payments.adapters import RefundResult
from payments.models import Refund, WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("refund.updated")
        def handle_refund_updated(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Events without a registered handler succeed without doing anything,
    so Stripe does not keep redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler("charge.refund.updated")
@register_handler("refund.updated")
def handle_refund_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply a Stripe refund status change to the matching local refund.

    The local refund is found by metadata["refund_id"] (set when the
    refund was created) or by its stored Stripe refund id. Refunds issued
    outside this system (e.g. from the Stripe dashboard) are ignored.

    Returns:
        ServiceResult with the outcome ("completed", "failed", "unchanged"),
        or None when no local refund matches
    """
    from payments.services import RefundReconciliationService

    data = webhook_event.get_data_object()
    if not data.get("id") or data.get("object", "refund") != "refund":
        logger.error(
            f"{webhook_event.event_type}: payload does not contain a refund",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.failure(
            "Could not extract refund from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    stripe_result = RefundResult.from_payload(data)
    refund = _find_local_refund(stripe_result)

    if refund is None:
        logger.info(
            "No local refund for Stripe refund, ignoring",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "stripe_refund_id": stripe_result.id,
            },
        )
        return ServiceResult.success(None)

    outcome = RefundReconciliationService.apply_remote_status(
        refund,
        stripe_result,
        source="webhook",
    )

    logger.info(
        f"Processed {webhook_event.event_type}",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "refund_id": str(refund.id),
            "stripe_refund_id": stripe_result.id,
            "stripe_status": stripe_result.status,
            "outcome": outcome,
        },
    )
    return ServiceResult.success(outcome)


def _find_local_refund(stripe_result: RefundResult) -> Refund | None:
    local_id = stripe_result.metadata.get("refund_id")
    if local_id:
        try:
            refund = Refund.objects.select_related("order").filter(id=uuid.UUID(str(local_id))).first()
        except ValueError:
            refund = None
        if refund is not None:
            return refund

    return Refund.objects.select_related("order").filter(stripe_refund_id=stripe_result.id).first()
