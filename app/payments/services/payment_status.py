"""
Order payment status aggregation.

The order's payment_status is derived from the sum of its COMPLETED
refunds. Refunds are append-only, so the derived status only ever moves
forward: paid -> partially_refunded -> refunded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import Sum

from core.services import BaseService
from payments.models import Refund
from payments.state_machines import OrderPaymentStatus, RefundStatus

if TYPE_CHECKING:
    from payments.models import Order


class PaymentStatusAggregator(BaseService):
    """Recomputes Order.payment_status from completed refunds."""

    @classmethod
    def get_total_refunded(cls, order: Order) -> int:
        """Sum of COMPLETED refund amounts for the order, in cents."""
        total = Refund.objects.filter(
            order_id=order.id,
            status=RefundStatus.COMPLETED,
        ).aggregate(total=Sum("amount_cents"))["total"]
        return total or 0

    @classmethod
    def get_reserved_amount(cls, order: Order) -> int:
        """Sum of PENDING, APPROVED and COMPLETED refund amounts, in cents."""
        total = Refund.objects.filter(
            order_id=order.id,
            status__in=RefundStatus.active(),
        ).aggregate(total=Sum("amount_cents"))["total"]
        return total or 0

    @classmethod
    def get_refundable_amount(cls, order: Order) -> int:
        """What new refunds may still claim: total minus active refunds."""
        return max(order.total_cents - cls.get_reserved_amount(order), 0)

    @classmethod
    def derive_status(cls, current_status: str, total_cents: int, total_refunded: int) -> str:
        if total_refunded >= total_cents and total_refunded > 0:
            return OrderPaymentStatus.REFUNDED
        if total_refunded > 0:
            return OrderPaymentStatus.PARTIALLY_REFUNDED
        return current_status

    @classmethod
    def recompute(cls, order: Order) -> str:
        """
        Recompute and persist the order's payment status.

        Must be called inside the transaction that completed the refund,
        with the order row locked.

        Returns:
            The new payment status
        """
        total_refunded = cls.get_total_refunded(order)
        new_status = cls.derive_status(order.payment_status, order.total_cents, total_refunded)

        if new_status != order.payment_status:
            cls.get_logger().info(
                "Order payment status changed",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "from_status": order.payment_status,
                    "to_status": new_status,
                    "total_refunded_cents": total_refunded,
                    "total_cents": order.total_cents,
                },
            )
            order.payment_status = new_status
            order.save(update_fields=["payment_status", "updated_at"])

        return new_status
