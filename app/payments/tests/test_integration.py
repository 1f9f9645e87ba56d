"""
End-to-end refund journeys through the HTTP API.

Stripe and Redis are doubles; everything else (ledger, processing,
inventory, order status, reconciliation) runs for real.
"""

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from catalog.models import Sku
from payments.exceptions import StripeInvalidRequestError, StripeTimeoutError
from payments.models import Order, Refund
from payments.services import RefundReconciliationService
from payments.state_machines import OrderPaymentStatus, RefundHistoryAction, RefundStatus
from payments.tests.conftest import make_refund_result
from payments.tests.factories import WebhookEventFactory
from payments.webhooks import dispatch_webhook


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


def create_refund(client, order, line, quantity=1):
    response = client.post(
        reverse("payments:refund-list"),
        {
            "order_id": str(order.id),
            "reason": "customer_request",
            "items": [{"order_item_id": line.id, "quantity": quantity}],
        },
        format="json",
    )
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return response.json()["data"]["id"]


def post_action(client, name, refund_id):
    return client.post(reverse(f"payments:refund-{name}", kwargs={"refund_id": refund_id}))


@pytest.mark.django_db
class TestRefundJourney:
    def test_two_partial_refunds_fully_refund_order(self, admin_client, paid_order, order_line, sku, fake_stripe):
        # First unit
        first_id = create_refund(admin_client, paid_order, order_line)
        assert post_action(admin_client, "approve", first_id).status_code == status.HTTP_200_OK

        fake_stripe.create_refund.return_value = make_refund_result(id="re_first")
        response = post_action(admin_client, "process", first_id)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["status"] == RefundStatus.COMPLETED
        assert Sku.objects.get(pk=sku.pk).inventory == 11
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

        # Second unit
        second_id = create_refund(admin_client, paid_order, order_line)
        post_action(admin_client, "approve", second_id)
        fake_stripe.create_refund.return_value = make_refund_result(id="re_second")
        response = post_action(admin_client, "process", second_id)

        assert response.status_code == status.HTTP_200_OK
        assert Sku.objects.get(pk=sku.pk).inventory == 12
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.REFUNDED

        # Nothing left to refund
        response = admin_client.post(
            reverse("payments:refund-list"),
            {"order_id": str(paid_order.id), "amount_cents": 1},
            format="json",
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "AMOUNT_EXCEEDS_REMAINING"

        detail = admin_client.get(
            reverse("payments:refund-detail", kwargs={"refund_id": second_id})
        ).json()["data"]
        assert detail["order_refunded_cents"] == 10000
        assert detail["order_refundable_cents"] == 0
        assert [h["action"] for h in detail["history"]] == [
            RefundHistoryAction.CREATED,
            RefundHistoryAction.APPROVED,
            RefundHistoryAction.PROCESSED,
            RefundHistoryAction.COMPLETED,
        ]

    def test_stripe_rejection_leaves_order_untouched(self, admin_client, paid_order, order_line, sku, fake_stripe):
        refund_id = create_refund(admin_client, paid_order, order_line, quantity=2)
        post_action(admin_client, "approve", refund_id)
        fake_stripe.create_refund.side_effect = StripeInvalidRequestError("This charge has been disputed.")

        response = post_action(admin_client, "process", refund_id)

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["message"] == "This charge has been disputed."
        assert Refund.objects.get(id=refund_id).status == RefundStatus.FAILED
        assert Sku.objects.get(pk=sku.pk).inventory == 10
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PAID

        # A failed refund frees its quantity for a new attempt
        create_refund(admin_client, paid_order, order_line, quantity=2)

    def test_timeout_then_reconciliation_completes(self, admin_client, paid_order, order_line, sku, fake_stripe):
        refund_id = create_refund(admin_client, paid_order, order_line)
        post_action(admin_client, "approve", refund_id)
        fake_stripe.create_refund.side_effect = StripeTimeoutError("Stripe did not respond in time.")

        response = post_action(admin_client, "process", refund_id)

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error_code"] == "OUTCOME_UNKNOWN"
        assert Refund.objects.get(id=refund_id).status == RefundStatus.APPROVED

        # Stripe did create the refund; reconciliation finds it by metadata
        fake_stripe.find_refund_by_metadata.return_value = make_refund_result(
            id="re_late",
            metadata={"refund_id": refund_id},
        )
        result = RefundReconciliationService.reconcile_approved_refunds(min_age_minutes=0, batch_size=10)

        assert result.data.updated == 1
        refund = Refund.objects.get(id=refund_id)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.stripe_refund_id == "re_late"
        assert Sku.objects.get(pk=sku.pk).inventory == 11
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

    def test_cancelled_refund_frees_amount(self, admin_client, paid_order, order_line, fake_stripe):
        refund_id = create_refund(admin_client, paid_order, order_line, quantity=2)
        post_action(admin_client, "approve", refund_id)

        assert post_action(admin_client, "cancel", refund_id).status_code == status.HTTP_200_OK
        assert post_action(admin_client, "process", refund_id).status_code == status.HTTP_404_NOT_FOUND

        create_refund(admin_client, paid_order, order_line, quantity=2)

    def test_refund_pending_at_stripe_survives_cancel(self, admin_client, paid_order, order_line, sku, fake_stripe):
        refund_id = create_refund(admin_client, paid_order, order_line)
        post_action(admin_client, "approve", refund_id)
        fake_stripe.create_refund.return_value = make_refund_result(id="re_pending", status="pending")
        assert post_action(admin_client, "process", refund_id).json()["data"]["pending"] is True

        response = post_action(admin_client, "cancel", refund_id)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "CANNOT_CANCEL"

        # Stripe settles the refund later and reports it by webhook
        event = WebhookEventFactory(
            event_type="refund.updated",
            payload={
                "type": "refund.updated",
                "data": {
                    "object": {
                        "id": "re_pending",
                        "object": "refund",
                        "amount": 5000,
                        "currency": "usd",
                        "status": "succeeded",
                        "metadata": {"refund_id": refund_id},
                    }
                },
            },
        )
        result = dispatch_webhook(event)

        assert result.success
        assert result.data == "completed"
        refund = Refund.objects.get(id=refund_id)
        assert refund.status == RefundStatus.COMPLETED
        assert Sku.objects.get(pk=sku.pk).inventory == 11
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

    def test_partial_then_remaining_amount(self, admin_client, paid_order, order_line, sku, fake_stripe):
        response = admin_client.post(
            reverse("payments:refund-list"),
            {
                "order_id": str(paid_order.id),
                "amount_cents": 4000,
                "items": [{"order_item_id": order_line.id, "quantity": 2, "restock": True}],
            },
            format="json",
        )
        first_id = response.json()["data"]["id"]
        post_action(admin_client, "approve", first_id)
        fake_stripe.create_refund.return_value = make_refund_result(id="re_4000", amount_cents=4000)

        assert post_action(admin_client, "process", first_id).status_code == status.HTTP_200_OK
        assert Refund.objects.get(id=first_id).status == RefundStatus.COMPLETED
        assert Sku.objects.get(pk=sku.pk).inventory == 12
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.PARTIALLY_REFUNDED

        response = admin_client.post(
            reverse("payments:refund-list"),
            {"order_id": str(paid_order.id), "amount_cents": 6000},
            format="json",
        )
        second_id = response.json()["data"]["id"]
        post_action(admin_client, "approve", second_id)
        fake_stripe.create_refund.return_value = make_refund_result(id="re_6000", amount_cents=6000)

        assert post_action(admin_client, "process", second_id).status_code == status.HTTP_200_OK
        assert Order.objects.get(pk=paid_order.pk).payment_status == OrderPaymentStatus.REFUNDED
        assert Sku.objects.get(pk=sku.pk).inventory == 12
        keys = [c.kwargs["idempotency_key"] for c in fake_stripe.create_refund.call_args_list]
        assert keys == [f"refund_{first_id}", f"refund_{second_id}"]
