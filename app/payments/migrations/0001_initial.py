import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def timestamp_fields():
    return [
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
    ]


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def bigauto_pk():
    return (
        "id",
        models.BigAutoField(
            auto_created=True,
            primary_key=True,
            serialize=False,
            verbose_name="ID",
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "is_deleted",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether this record has been soft deleted",
                    ),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Timestamp when this record was soft deleted",
                        null=True,
                    ),
                ),
                (
                    "order_number",
                    models.CharField(
                        help_text="Human-readable order number",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "customer_email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Customer contact e-mail captured at checkout",
                        max_length=254,
                    ),
                ),
                (
                    "total_cents",
                    models.PositiveBigIntegerField(
                        help_text="Total charged amount in smallest currency unit (e.g., cents)",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Aggregate payment status, derived from completed refunds once paid",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "stripe_charge_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Charge ID (ch_xxx), used when no PaymentIntent exists",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Customer who placed the order (null for guest checkout)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment_status", "created_at"],
                        name="payments_or_payment_3c1f2a_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                bigauto_pk(),
                *timestamp_fields(),
                (
                    "product_title",
                    models.CharField(
                        help_text="Product title at the time of purchase",
                        max_length=255,
                    ),
                ),
                (
                    "sku_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="SKU code at the time of purchase",
                        max_length=64,
                    ),
                ),
                (
                    "quantity",
                    models.PositiveIntegerField(help_text="Units purchased"),
                ),
                (
                    "unit_price_cents",
                    models.PositiveBigIntegerField(
                        help_text="Charged unit price in cents, tax included",
                    ),
                ),
                (
                    "compare_at_price_cents",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Compare-at unit price in cents when the line was on sale",
                        null=True,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this line belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="payments.order",
                    ),
                ),
                (
                    "sku",
                    models.ForeignKey(
                        blank=True,
                        help_text="Purchased SKU (null if the line is not backed by inventory)",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                        to="catalog.sku",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Item",
                "verbose_name_plural": "Order Items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="order_item_quantity_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Discount",
            fields=[
                bigauto_pk(),
                *timestamp_fields(),
                (
                    "code",
                    models.CharField(
                        help_text="Discount code entered at checkout",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage"),
                            ("fixed_amount", "Fixed Amount"),
                        ],
                        help_text="How the value is applied",
                        max_length=20,
                    ),
                ),
                (
                    "value",
                    models.PositiveIntegerField(
                        help_text="Whole percent for percentage discounts, cents for fixed amounts",
                    ),
                ),
                (
                    "exclude_sale_items",
                    models.BooleanField(
                        default=False,
                        help_text="Exclude lines already on sale from the eligible subtotal",
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Whether this discount can be redeemed",
                    ),
                ),
            ],
            options={
                "verbose_name": "Discount",
                "verbose_name_plural": "Discounts",
                "ordering": ["code"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("discount_type", "percentage"), _negated=True),
                            ("value__lte", 100),
                            _connector="OR",
                        ),
                        name="discount_percentage_at_most_100",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in smallest currency unit (e.g., cents)",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("customer_request", "Customer Request"),
                            ("defective", "Defective"),
                            ("wrong_item", "Wrong Item"),
                            ("lost_in_transit", "Lost In Transit"),
                            ("fraud", "Fraud"),
                            ("other", "Other"),
                        ],
                        db_index=True,
                        default="customer_request",
                        help_text="Refund reason category",
                        max_length=32,
                    ),
                ),
                (
                    "note",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Internal note from the administrator",
                    ),
                ),
                (
                    "rejection_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Why the refund was rejected",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "stripe_refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Refund ID (re_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "approved_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the refund was approved",
                        null=True,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When Stripe confirmed the refund",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Gateway error message if the refund failed",
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata (gateway status, reconciliation notes)",
                    ),
                ),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who approved the refund",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who created the refund",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"],
                        name="payments_re_order_i_5b0e3d_idx",
                    ),
                    models.Index(
                        fields=["status", "updated_at"],
                        name="payments_re_status_8d41c7_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="refund_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundItem",
            fields=[
                bigauto_pk(),
                *timestamp_fields(),
                ("quantity", models.PositiveIntegerField(help_text="Units refunded")),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Portion of the refund amount attributed to this line, in cents",
                    ),
                ),
                (
                    "restock",
                    models.BooleanField(
                        default=True,
                        help_text="Return the refunded quantity to sellable inventory on completion",
                    ),
                ),
                (
                    "order_item",
                    models.ForeignKey(
                        help_text="Order line being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_items",
                        to="payments.orderitem",
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        help_text="Refund this line belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="payments.refund",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund Item",
                "verbose_name_plural": "Refund Items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="refund_item_quantity_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundHistory",
            fields=[
                bigauto_pk(),
                *timestamp_fields(),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("processed", "Processed"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("reconciled", "Reconciled"),
                        ],
                        help_text="What happened",
                        max_length=20,
                    ),
                ),
                (
                    "note",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Free-form detail (gateway message, reconciliation outcome)",
                    ),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who performed the action (null for automation)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        help_text="Refund this entry belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history",
                        to="payments.refund",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund History Entry",
                "verbose_name_plural": "Refund History",
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'charge.refund.updated')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of processing attempts",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="payments_we_status_a27f90_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationRun",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "started_at",
                    models.DateTimeField(help_text="When this reconciliation run started"),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When this reconciliation run completed (or failed)",
                        null=True,
                    ),
                ),
                (
                    "min_age_minutes",
                    models.PositiveIntegerField(
                        help_text="Minimum age of APPROVED refunds checked by this run",
                    ),
                ),
                (
                    "refunds_checked",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of APPROVED refunds checked against Stripe",
                    ),
                ),
                (
                    "refunds_updated",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Refunds moved to COMPLETED or FAILED",
                    ),
                ),
                (
                    "errors",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Refunds that could not be checked or updated",
                    ),
                ),
                (
                    "has_more",
                    models.BooleanField(
                        default=False,
                        help_text="Whether eligible refunds remained beyond the batch size",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="running",
                        help_text="Current status of this reconciliation run",
                        max_length=20,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if the run failed",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Reconciliation Run",
                "verbose_name_plural": "Reconciliation Runs",
                "ordering": ["-started_at"],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationDiscrepancy",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "stripe_refund_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Refund ID (re_xxx), when known",
                        max_length=255,
                    ),
                ),
                (
                    "local_state",
                    models.CharField(
                        help_text="Local refund status when the discrepancy was detected",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_state",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe refund status when the discrepancy was detected",
                        max_length=30,
                    ),
                ),
                (
                    "resolution",
                    models.CharField(
                        choices=[
                            ("auto_healed", "Auto Healed"),
                            ("flagged_for_review", "Flagged for Review"),
                            ("manually_resolved", "Manually Resolved"),
                            ("failed_to_heal", "Failed to Heal"),
                        ],
                        db_index=True,
                        help_text="How the discrepancy was resolved",
                        max_length=20,
                    ),
                ),
                (
                    "action_taken",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Description of the corrective action",
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error raised while healing, if any",
                        null=True,
                    ),
                ),
                (
                    "reviewed",
                    models.BooleanField(
                        default=False,
                        help_text="Whether an administrator has reviewed this discrepancy",
                    ),
                ),
                (
                    "reviewed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When it was reviewed",
                        null=True,
                    ),
                ),
                (
                    "refund",
                    models.ForeignKey(
                        blank=True,
                        help_text="Refund concerned",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="discrepancies",
                        to="payments.refund",
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who reviewed it",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "run",
                    models.ForeignKey(
                        blank=True,
                        help_text="Run that found this discrepancy",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discrepancies",
                        to="payments.reconciliationrun",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reconciliation Discrepancy",
                "verbose_name_plural": "Reconciliation Discrepancies",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["resolution", "reviewed"],
                        name="payments_re_resolut_e6b2d4_idx",
                    )
                ],
            },
        ),
    ]
