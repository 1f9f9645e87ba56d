"""
Catalog app.

Owns sellable SKUs and their inventory counts. Other apps mutate
inventory only through catalog.services.InventoryService.
"""
