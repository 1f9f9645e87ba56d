"""
Stock restoration for refunded items.

StockRestorer returns refunded quantities to sellable inventory through
the catalog's InventoryService. It does not guard against double
invocation: restore_items runs inside the COMPLETED transition, which
happens at most once per refund.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from catalog.services import InventoryService
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from uuid import UUID

    from catalog.models import Sku
    from payments.models import Refund


class StockRestorer(BaseService):
    """Applies inventory increments for restockable refund items."""

    @classmethod
    def restore(cls, sku_id: UUID | str, quantity: int) -> ServiceResult[Sku]:
        """Unconditionally add quantity to the SKU's inventory."""
        return InventoryService.increment_inventory(sku_id, quantity)

    @classmethod
    def restore_items(cls, refund: Refund) -> int:
        """
        Restore inventory for every restockable item of a refund.

        Items whose order line has no SKU, or whose SKU no longer exists,
        are logged and skipped.

        Returns:
            Total units returned to inventory
        """
        logger = cls.get_logger()
        restored = 0

        items = refund.items.select_related("order_item").filter(restock=True)
        for item in items:
            sku_id = item.order_item.sku_id
            if sku_id is None:
                logger.info(
                    "Refund item has no SKU, nothing to restock",
                    extra={"refund_id": str(refund.id), "order_item_id": item.order_item_id},
                )
                continue

            result = cls.restore(sku_id, item.quantity)
            if not result:
                logger.warning(
                    "Skipping restock for missing SKU",
                    extra={
                        "refund_id": str(refund.id),
                        "sku_id": str(sku_id),
                        "quantity": item.quantity,
                    },
                )
                continue
            restored += item.quantity

        return restored
