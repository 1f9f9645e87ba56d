"""
Catalog admin configuration.
"""

from django.contrib import admin

from catalog.models import Sku


@admin.register(Sku)
class SkuAdmin(admin.ModelAdmin):
    """Admin configuration for Sku."""

    list_display = [
        "sku_code",
        "title",
        "price_cents",
        "compare_at_price_cents",
        "inventory",
        "created_at",
    ]
    search_fields = ["sku_code", "title"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["sku_code"]
