"""
Pytest fixtures for webhook tests.

Order, refund and infrastructure fixtures are shared with the payments
service tests.
"""

import pytest

from payments.tests.conftest import (  # noqa: F401
    admin_user,
    approved_refund,
    completed_refund,
    fake_stripe,
    mock_redis,
    order_line,
    paid_order,
    sku,
)
from payments.tests.factories import WebhookEventFactory


def refund_payload(**overrides) -> dict:
    """Stripe refund object as it appears in event.data.object."""
    payload = {
        "id": "re_webhook",
        "object": "refund",
        "amount": 5000,
        "currency": "usd",
        "status": "succeeded",
        "payment_intent": "pi_test",
        "metadata": {},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def refund_event(db):
    """Create a stored refund webhook event around a refund payload."""

    def _create(event_type: str = "charge.refund.updated", **payload_overrides):
        event = WebhookEventFactory(event_type=event_type)
        event.payload = {
            "id": event.stripe_event_id,
            "type": event_type,
            "data": {"object": refund_payload(**payload_overrides)},
        }
        event.save()
        return event

    return _create
