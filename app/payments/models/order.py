"""
Order and OrderItem models.

An Order is one purchase transaction. Orders are created by the checkout
flow; once refunds exist, the only writer of payment_status is the refund
processing path (PaymentStatusAggregator).

Usage:
    from payments.models import Order

    order = Order.objects.select_for_update().get(id=order_id)
    order.total_refunded_cents  # sum of COMPLETED refunds
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import OrderPaymentStatus


class Order(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    One purchase transaction.

    Fields:
        order_number: Human-readable order number shown to customers
        customer: Purchasing user, if the order was not a guest checkout
        customer_email: Contact e-mail captured at checkout
        total_cents: Total charged amount in cents
        currency: ISO 4217 currency code (lowercase)
        payment_status: Aggregate payment status
        stripe_payment_intent_id: Stripe PaymentIntent (pi_xxx)
        stripe_charge_id: Stripe Charge (ch_xxx), for legacy charges

    Invariant:
        sum(completed refund amounts) <= total_cents
    """

    # ==========================================================================
    # Identification
    # ==========================================================================

    order_number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Human-readable order number",
    )

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Customer who placed the order (null for guest checkout)",
    )

    customer_email = models.EmailField(
        blank=True,
        default="",
        help_text="Customer contact e-mail captured at checkout",
    )

    # ==========================================================================
    # Amount & Status
    # ==========================================================================

    total_cents = models.PositiveBigIntegerField(
        help_text="Total charged amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.PENDING,
        db_index=True,
        help_text="Aggregate payment status, derived from completed refunds once paid",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    stripe_charge_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Charge ID (ch_xxx), used when no PaymentIntent exists",
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(
                fields=["payment_status", "created_at"],
                name="payments_or_payment_3c1f2a_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.payment_status})"

    @property
    def charge_reference(self) -> str | None:
        """The Stripe reference a refund is issued against, if any."""
        return self.stripe_payment_intent_id or self.stripe_charge_id or None

    @property
    def total_refunded_cents(self) -> int:
        from payments.state_machines import RefundStatus

        total = self.refunds.filter(status=RefundStatus.COMPLETED).aggregate(
            total=models.Sum("amount_cents")
        )["total"]
        return total or 0


class OrderItem(BaseModel):
    """
    A line of an order.

    Product data is snapshotted at checkout so that later catalog edits do
    not change what was sold. compare_at_price_cents carries the sale
    marker used by the discount calculator.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
        help_text="Order this line belongs to",
    )

    sku = models.ForeignKey(
        "catalog.Sku",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="order_items",
        help_text="Purchased SKU (null if the line is not backed by inventory)",
    )

    product_title = models.CharField(
        max_length=255,
        help_text="Product title at the time of purchase",
    )

    sku_code = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="SKU code at the time of purchase",
    )

    quantity = models.PositiveIntegerField(
        help_text="Units purchased",
    )

    unit_price_cents = models.PositiveBigIntegerField(
        help_text="Charged unit price in cents, tax included",
    )

    compare_at_price_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Compare-at unit price in cents when the line was on sale",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Order Item"
        verbose_name_plural = "Order Items"
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="order_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_title}"

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity
