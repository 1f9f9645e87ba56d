"""
Catalog services.

InventoryService is the only writer of Sku.inventory outside the admin.

Usage:
    from catalog.services import InventoryService

    result = InventoryService.increment_inventory(sku_id, 2)
    if not result:
        logger.warning(result.error)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db.models import F

from catalog.models import Sku
from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from uuid import UUID


class InventoryService(BaseService):
    """Inventory mutations for SKUs."""

    @classmethod
    def increment_inventory(cls, sku_id: UUID | str, quantity: int) -> ServiceResult[Sku]:
        """
        Add quantity units back to a SKU's sellable inventory.

        The increment is unconditional and applied with a single UPDATE
        using an F() expression, so it composes with any surrounding
        transaction and never loses concurrent updates.

        Args:
            sku_id: SKU primary key
            quantity: Units to add, must be positive

        Returns:
            ServiceResult.ok(Sku) with the refreshed SKU, or a failure with
            error_code "NOT_FOUND" when no SKU has this id.

        Raises:
            ValidationError: If quantity is not a positive integer
        """
        if quantity <= 0:
            raise ValidationError(
                "Quantity must be positive",
                error_code="INVALID_QUANTITY",
                details={"quantity": quantity},
            )

        try:
            sku_uuid = uuid.UUID(str(sku_id))
        except ValueError:
            return ServiceResult.failure("SKU not found", error_code="NOT_FOUND")

        updated = Sku.objects.filter(id=sku_uuid).update(
            inventory=F("inventory") + quantity
        )
        if not updated:
            cls.get_logger().warning(
                "Inventory increment skipped: SKU not found",
                extra={"sku_id": str(sku_id), "quantity": quantity},
            )
            return ServiceResult.failure("SKU not found", error_code="NOT_FOUND")

        sku = Sku.objects.get(id=sku_uuid)
        cls.get_logger().info(
            "Inventory incremented",
            extra={
                "sku_id": str(sku.id),
                "sku_code": sku.sku_code,
                "quantity": quantity,
                "inventory": sku.inventory,
            },
        )
        return ServiceResult.ok(sku)
