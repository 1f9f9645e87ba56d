"""
Catalog models.

Sku is a specific purchasable variant of a product (one color/size
combination) with its own inventory count. Prices are integer minor
units (cents).
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Sku(UUIDPrimaryKeyMixin, BaseModel):
    """
    A sellable product variant.

    A SKU is "on sale" when compare_at_price_cents is set and strictly
    greater than price_cents.

    Note:
        Inventory must only be changed with F() expressions (see
        InventoryService) so that concurrent restocks never lose updates.
    """

    sku_code = models.CharField(
        max_length=64,
        unique=True,
        help_text="Merchant-facing SKU code",
    )
    title = models.CharField(
        max_length=255,
        help_text="Product title including the variant",
    )
    price_cents = models.PositiveIntegerField(
        default=0,
        help_text="Current unit price in cents, tax included",
    )
    compare_at_price_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Original price in cents when the SKU is on sale",
    )
    inventory = models.IntegerField(
        default=0,
        help_text="Units available for sale",
    )

    class Meta:
        ordering = ["sku_code"]
        verbose_name = "SKU"
        verbose_name_plural = "SKUs"
        constraints = [
            models.CheckConstraint(
                condition=Q(inventory__gte=0),
                name="sku_inventory_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.sku_code} ({self.inventory} in stock)"

    @property
    def is_on_sale(self) -> bool:
        return (
            self.compare_at_price_cents is not None
            and self.compare_at_price_cents > self.price_cents
        )
