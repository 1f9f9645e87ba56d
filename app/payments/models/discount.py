"""
Discount model.

A reusable discount rule. The discount amount is never stored; it is
computed at calculation time by payments.services.discount_calculator.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.models import BaseModel
from payments.state_machines import DiscountType


class Discount(BaseModel):
    """
    A discount rule.

    Fields:
        code: Code entered by the customer
        discount_type: PERCENTAGE or FIXED_AMOUNT
        value: Whole percent (0-100) or amount in cents
        exclude_sale_items: Skip lines already on sale when computing the
            eligible subtotal
        is_active: Whether the code can currently be redeemed
    """

    code = models.CharField(
        max_length=64,
        unique=True,
        help_text="Discount code entered at checkout",
    )

    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        help_text="How the value is applied",
    )

    value = models.PositiveIntegerField(
        help_text="Whole percent for percentage discounts, cents for fixed amounts",
    )

    exclude_sale_items = models.BooleanField(
        default=False,
        help_text="Exclude lines already on sale from the eligible subtotal",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this discount can be redeemed",
    )

    class Meta:
        ordering = ["code"]
        verbose_name = "Discount"
        verbose_name_plural = "Discounts"
        constraints = [
            models.CheckConstraint(
                condition=~Q(discount_type=DiscountType.PERCENTAGE) | Q(value__lte=100),
                name="discount_percentage_at_most_100",
            ),
        ]

    def __str__(self) -> str:
        if self.discount_type == DiscountType.PERCENTAGE:
            return f"{self.code} ({self.value}%)"
        return f"{self.code} ({self.value / 100:.2f})"
