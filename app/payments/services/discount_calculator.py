"""
Discount calculation.

Pure functions over integer cent amounts. Nothing here touches the
database; apply_discount only reads the flags of a Discount row.

Rules:
- PERCENTAGE: floor(eligible_subtotal * value / 100)
- FIXED_AMOUNT: min(value, eligible_subtotal)
- A zero or negative subtotal yields 0
- Lines already on sale (compare-at price above the charged price) can be
  excluded from the eligible subtotal

Usage:
    from payments.services.discount_calculator import (
        LineSnapshot,
        compute_discount,
        compute_eligible_subtotal,
    )

    subtotal = compute_eligible_subtotal(
        [LineSnapshot(unit_price_cents=1999, quantity=2)],
        exclude_sale_items=True,
    )
    amount = compute_discount(DiscountType.PERCENTAGE, 10, subtotal.eligible_subtotal)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from payments.state_machines import DiscountType

if TYPE_CHECKING:
    from payments.models import Discount, OrderItem


@dataclass(frozen=True)
class LineSnapshot:
    """
    Minimal cart or order line consumed by the calculator.

    Attributes:
        unit_price_cents: Charged unit price, tax included
        quantity: Units on the line (validated upstream)
        compare_at_price_cents: Original price when the line is on sale
    """

    unit_price_cents: int
    quantity: int
    compare_at_price_cents: int | None = None

    @property
    def is_on_sale(self) -> bool:
        return (
            self.compare_at_price_cents is not None
            and self.compare_at_price_cents > self.unit_price_cents
        )

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @classmethod
    def from_order_item(cls, item: OrderItem) -> LineSnapshot:
        return cls(
            unit_price_cents=item.unit_price_cents,
            quantity=item.quantity,
            compare_at_price_cents=item.compare_at_price_cents,
        )


@dataclass(frozen=True)
class EligibleSubtotal:
    """Sum of all lines and sum of the lines a discount may apply to."""

    total_subtotal: int
    eligible_subtotal: int


def compute_eligible_subtotal(
    lines: Iterable[LineSnapshot],
    exclude_sale_items: bool,
) -> EligibleSubtotal:
    """
    Split a cart into total and discount-eligible subtotals.

    Sale lines always count toward total_subtotal. They count toward
    eligible_subtotal only when exclude_sale_items is False.
    """
    total = 0
    eligible = 0
    for line in lines:
        line_total = line.line_total_cents
        total += line_total
        if exclude_sale_items and line.is_on_sale:
            continue
        eligible += line_total
    return EligibleSubtotal(total_subtotal=total, eligible_subtotal=eligible)


def compute_discount(discount_type: str, value: int, eligible_subtotal: int) -> int:
    """
    Compute a discount amount in cents.

    The result is always between 0 and eligible_subtotal inclusive.

    Raises:
        ValidationError: Negative value, percentage above 100, or unknown type
    """
    if value < 0:
        raise ValidationError(
            "Discount value cannot be negative",
            error_code="INVALID_DISCOUNT_VALUE",
            details={"value": value},
        )

    if discount_type == DiscountType.PERCENTAGE:
        if value > 100:
            raise ValidationError(
                "Percentage discount cannot exceed 100",
                error_code="INVALID_DISCOUNT_VALUE",
                details={"value": value},
            )
        if eligible_subtotal <= 0:
            return 0
        # Integer floor division; never rounds up
        return eligible_subtotal * value // 100

    if discount_type == DiscountType.FIXED_AMOUNT:
        if eligible_subtotal <= 0:
            return 0
        return min(value, eligible_subtotal)

    raise ValidationError(
        f"Unknown discount type: {discount_type}",
        error_code="INVALID_DISCOUNT_TYPE",
        details={"discount_type": discount_type},
    )


def apply_discount(discount: Discount, lines: Iterable[LineSnapshot]) -> int:
    """Discount amount for a cart, honoring the discount's exclude_sale_items flag."""
    subtotal = compute_eligible_subtotal(lines, discount.exclude_sale_items)
    return compute_discount(discount.discount_type, discount.value, subtotal.eligible_subtotal)
