import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Sku",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "sku_code",
                    models.CharField(
                        help_text="Merchant-facing SKU code",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "title",
                    models.CharField(
                        help_text="Product title including the variant",
                        max_length=255,
                    ),
                ),
                (
                    "price_cents",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Current unit price in cents, tax included",
                    ),
                ),
                (
                    "compare_at_price_cents",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Original price in cents when the SKU is on sale",
                        null=True,
                    ),
                ),
                (
                    "inventory",
                    models.IntegerField(
                        default=0,
                        help_text="Units available for sale",
                    ),
                ),
            ],
            options={
                "verbose_name": "SKU",
                "verbose_name_plural": "SKUs",
                "ordering": ["sku_code"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("inventory__gte", 0)),
                        name="sku_inventory_non_negative",
                    )
                ],
            },
        ),
    ]
