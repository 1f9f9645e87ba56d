"""
Django admin configuration for the payments app.

Orders and discounts are editable. Refunds are read-mostly: their status
only changes through RefundLedgerService and RefundProcessingService, so
the admin shows the audit trail and never offers delete for completed
refunds. Discrepancies flagged for review form the manual reconciliation
queue.
"""

from __future__ import annotations

from django.contrib import admin
from django.utils import timezone

from payments.models import (
    DiscrepancyResolution,
    Discount,
    Order,
    OrderItem,
    ReconciliationDiscrepancy,
    ReconciliationRun,
    Refund,
    RefundHistory,
    RefundItem,
    WebhookEvent,
)
from payments.state_machines import RefundStatus


def format_cents(amount_cents: int, currency: str) -> str:
    return f"${amount_cents / 100:.2f} {currency.upper()}"


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = [
        "sku",
        "product_title",
        "sku_code",
        "quantity",
        "unit_price_cents",
        "compare_at_price_cents",
    ]
    raw_id_fields = ["sku"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Soft-deleted orders are included so that refunds against them stay
    reachable.
    """

    list_display = [
        "order_number",
        "customer_email",
        "amount_display",
        "payment_status",
        "is_deleted",
        "created_at",
    ]
    list_filter = ["payment_status", "is_deleted", "currency", "created_at"]
    search_fields = [
        "id",
        "order_number",
        "customer_email",
        "stripe_payment_intent_id",
        "stripe_charge_id",
    ]
    readonly_fields = ["id", "created_at", "updated_at", "deleted_at"]
    raw_id_fields = ["customer"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [OrderItemInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order_number", "customer", "customer_email"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("total_cents", "currency", "payment_status"),
            },
        ),
        (
            "Stripe",
            {
                "fields": ("stripe_payment_intent_id", "stripe_charge_id"),
            },
        ),
        (
            "Deletion",
            {
                "fields": ("is_deleted", "deleted_at"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def get_queryset(self, request):
        return Order.all_objects.all()

    def amount_display(self, obj: Order) -> str:
        return format_cents(obj.total_cents, obj.currency)

    amount_display.short_description = "Total"


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ["code", "discount_type", "value", "exclude_sale_items", "is_active"]
    list_filter = ["discount_type", "is_active", "exclude_sale_items"]
    search_fields = ["code"]
    ordering = ["code"]


class RefundItemInline(admin.TabularInline):
    model = RefundItem
    extra = 0
    fields = ["order_item", "quantity", "amount_cents", "restock"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class RefundHistoryInline(admin.TabularInline):
    model = RefundHistory
    extra = 0
    fields = ["action", "actor", "note", "created_at"]
    readonly_fields = fields
    ordering = ["created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and history. Status, amounts
    and Stripe references are read-only here.
    """

    list_display = [
        "id",
        "order",
        "amount_display",
        "status",
        "reason",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "reason", "currency", "created_at"]
    search_fields = [
        "id",
        "stripe_refund_id",
        "order__order_number",
        "order__customer_email",
    ]
    readonly_fields = [
        "id",
        "order",
        "amount_cents",
        "currency",
        "status",
        "stripe_refund_id",
        "created_by",
        "approved_by",
        "approved_at",
        "processed_at",
        "failure_reason",
        "rejection_reason",
        "version",
        "metadata",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [RefundItemInline, RefundHistoryInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "currency"),
            },
        ),
        (
            "Refund Details",
            {
                "fields": ("reason", "note", "stripe_refund_id"),
            },
        ),
        (
            "Approval",
            {
                "fields": ("created_by", "approved_by", "approved_at", "processed_at"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason", "rejection_reason"),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: Refund) -> str:
        return format_cents(obj.amount_cents, obj.currency)

    amount_display.short_description = "Amount"

    def has_add_permission(self, request) -> bool:
        """Refunds are created through the refund API."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Only PENDING and APPROVED refunds may be deleted."""
        if obj is None:
            return super().has_delete_permission(request, obj)
        return obj.status in RefundStatus.cancellable()


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Read-only: events are written by the webhook endpoint and task.
    """

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


class ReconciliationDiscrepancyInline(admin.TabularInline):
    model = ReconciliationDiscrepancy
    extra = 0
    fields = ["refund", "local_state", "stripe_state", "resolution", "reviewed"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ReconciliationRun)
class ReconciliationRunAdmin(admin.ModelAdmin):
    list_display = [
        "started_at",
        "status",
        "refunds_checked",
        "refunds_updated",
        "errors",
        "has_more",
        "duration_display",
    ]
    list_filter = ["status", "started_at"]
    readonly_fields = [
        "id",
        "started_at",
        "completed_at",
        "min_age_minutes",
        "refunds_checked",
        "refunds_updated",
        "errors",
        "has_more",
        "status",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "started_at"
    ordering = ["-started_at"]
    inlines = [ReconciliationDiscrepancyInline]

    def duration_display(self, obj: ReconciliationRun) -> str:
        if obj.completed_at is None:
            return "-"
        return f"{(obj.completed_at - obj.started_at).total_seconds():.1f}s"

    duration_display.short_description = "Duration"

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(ReconciliationDiscrepancy)
class ReconciliationDiscrepancyAdmin(admin.ModelAdmin):
    """
    Admin configuration for ReconciliationDiscrepancy.

    Review queue for refunds that Stripe completed but that could not be
    committed locally. Supports bulk marking as reviewed.
    """

    list_display = [
        "id",
        "run_link",
        "refund",
        "local_state",
        "stripe_state",
        "resolution",
        "reviewed",
        "created_at",
    ]
    list_filter = ["resolution", "reviewed", "created_at"]
    search_fields = ["id", "refund__id", "stripe_refund_id"]
    readonly_fields = [
        "id",
        "run",
        "refund",
        "stripe_refund_id",
        "local_state",
        "stripe_state",
        "resolution",
        "action_taken",
        "error_message",
        "reviewed_at",
        "reviewed_by",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["mark_reviewed"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "run", "refund", "resolution"),
            },
        ),
        (
            "Discrepancy Details",
            {
                "fields": ("stripe_refund_id", "local_state", "stripe_state"),
            },
        ),
        (
            "Resolution",
            {
                "fields": ("action_taken", "error_message"),
            },
        ),
        (
            "Review",
            {
                "fields": ("reviewed", "reviewed_at", "reviewed_by"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def run_link(self, obj: ReconciliationDiscrepancy) -> str:
        if obj.run_id:
            return str(obj.run_id)[:8]
        return "-"

    run_link.short_description = "Run"

    @admin.action(description="Mark selected discrepancies as reviewed")
    def mark_reviewed(self, request, queryset):
        count = queryset.filter(
            resolution=DiscrepancyResolution.FLAGGED_FOR_REVIEW,
            reviewed=False,
        ).update(
            reviewed=True,
            reviewed_at=timezone.now(),
            reviewed_by=request.user,
        )
        self.message_user(request, f"Marked {count} discrepancies as reviewed.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
