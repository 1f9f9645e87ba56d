"""
Serializers for the refund administration API.

This module provides DRF serializers for:
- Refund, RefundItem and RefundHistory (read operations)
- Refund creation and rejection requests
- Refund listing query parameters
- Discount previews

Related files:
    - views.py: Views that use these serializers
    - services/refund_ledger.py: RefundLedgerService consuming the validated data
"""

from rest_framework import serializers

from payments.models import Refund, RefundHistory, RefundItem
from payments.services import PaymentStatusAggregator, RefundItemInput
from payments.services.refund_ledger import DEFAULT_SORT, SORT_FIELDS
from payments.state_machines import DiscountType, RefundReason, RefundStatus

SORT_CHOICES = [
    f"{key}-{direction}" for key in SORT_FIELDS for direction in ("ascending", "descending")
]


# =============================================================================
# Read Serializers
# =============================================================================


class RefundItemSerializer(serializers.ModelSerializer):
    """A refunded order line."""

    order_item_id = serializers.IntegerField(source="order_item.id", read_only=True)
    product_title = serializers.CharField(source="order_item.product_title", read_only=True)
    sku_code = serializers.CharField(source="order_item.sku_code", read_only=True)

    class Meta:
        model = RefundItem
        fields = [
            "id",
            "order_item_id",
            "product_title",
            "sku_code",
            "quantity",
            "amount_cents",
            "restock",
        ]
        read_only_fields = fields


class RefundHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = RefundHistory
        fields = ["action", "actor", "note", "created_at"]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    """
    Serializer for Refund model (read operations).

    Used for list rows and action responses.
    """

    order_id = serializers.UUIDField(source="order.id", read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    items = RefundItemSerializer(many=True, read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "order_id",
            "order_number",
            "amount_cents",
            "currency",
            "status",
            "reason",
            "note",
            "rejection_reason",
            "stripe_refund_id",
            "failure_reason",
            "created_by",
            "approved_by",
            "approved_at",
            "processed_at",
            "version",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RefundDetailSerializer(RefundSerializer):
    """
    Refund with its audit trail and the order's refund totals.
    """

    history = RefundHistorySerializer(many=True, read_only=True)
    order_total_cents = serializers.IntegerField(source="order.total_cents", read_only=True)
    order_payment_status = serializers.CharField(source="order.payment_status", read_only=True)
    order_refunded_cents = serializers.SerializerMethodField()
    order_refundable_cents = serializers.SerializerMethodField()

    class Meta(RefundSerializer.Meta):
        fields = RefundSerializer.Meta.fields + [
            "history",
            "order_total_cents",
            "order_payment_status",
            "order_refunded_cents",
            "order_refundable_cents",
        ]
        read_only_fields = fields

    def get_order_refunded_cents(self, obj):
        return PaymentStatusAggregator.get_total_refunded(obj.order)

    def get_order_refundable_cents(self, obj):
        return PaymentStatusAggregator.get_refundable_amount(obj.order)


# =============================================================================
# Request Serializers
# =============================================================================


class RefundItemInputSerializer(serializers.Serializer):
    order_item_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    amount_cents = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    restock = serializers.BooleanField(required=False, allow_null=True, default=None)

    def to_input(self, data) -> RefundItemInput:
        return RefundItemInput(
            order_item_id=data["order_item_id"],
            quantity=data["quantity"],
            amount_cents=data.get("amount_cents"),
            restock=data.get("restock"),
        )


class RefundCreateSerializer(serializers.Serializer):
    """
    Request body for creating a refund.

    Either items or amount_cents is required. When both are given,
    amount_cents overrides the item sum.
    """

    order_id = serializers.UUIDField()
    amount_cents = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    reason = serializers.ChoiceField(
        choices=RefundReason.choices,
        default=RefundReason.CUSTOMER_REQUEST,
    )
    note = serializers.CharField(required=False, allow_blank=True, default="")
    restock = serializers.BooleanField(required=False, allow_null=True, default=None)
    items = RefundItemInputSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        if not attrs.get("items") and attrs.get("amount_cents") is None:
            raise serializers.ValidationError("Provide items or amount_cents.")
        return attrs

    def to_service_kwargs(self) -> dict:
        data = self.validated_data
        item_serializer = RefundItemInputSerializer()
        return {
            "order_id": data["order_id"],
            "amount_cents": data.get("amount_cents"),
            "reason": data["reason"],
            "note": data.get("note", ""),
            "restock": data.get("restock"),
            "items": [item_serializer.to_input(item) for item in data.get("items", [])],
        }


class RefundRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class CommaSeparatedListField(serializers.ListField):
    """List query parameter accepting repeated keys and/or comma-separated values."""

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = [data]
        values = []
        for value in data:
            values.extend(part.strip() for part in str(value).split(",") if part.strip())
        return super().to_internal_value(values)


class RefundListQuerySerializer(serializers.Serializer):
    """Query parameters of GET /refunds/."""

    order = serializers.UUIDField(required=False)
    status = CommaSeparatedListField(
        child=serializers.ChoiceField(choices=RefundStatus.choices),
        required=False,
    )
    reason = CommaSeparatedListField(
        child=serializers.ChoiceField(choices=RefundReason.choices),
        required=False,
    )
    amount_min = serializers.IntegerField(min_value=0, required=False)
    amount_max = serializers.IntegerField(min_value=0, required=False)
    created_after = serializers.DateTimeField(required=False)
    created_before = serializers.DateTimeField(required=False)
    search = serializers.CharField(required=False, allow_blank=True, default="")
    sort = serializers.ChoiceField(choices=SORT_CHOICES, default=DEFAULT_SORT)
    limit = serializers.IntegerField(min_value=1, required=False)
    cursor = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        amount_min = attrs.get("amount_min")
        amount_max = attrs.get("amount_max")
        if amount_min is not None and amount_max is not None and amount_min > amount_max:
            raise serializers.ValidationError("amount_min cannot exceed amount_max.")
        return attrs


class LineSnapshotSerializer(serializers.Serializer):
    unit_price_cents = serializers.IntegerField(min_value=0)
    quantity = serializers.IntegerField(min_value=1)
    compare_at_price_cents = serializers.IntegerField(
        min_value=0,
        required=False,
        allow_null=True,
        default=None,
    )


class DiscountPreviewSerializer(serializers.Serializer):
    """
    Request body for a discount preview.

    Either code (an active Discount) or discount_type and value.
    """

    code = serializers.CharField(required=False)
    discount_type = serializers.ChoiceField(choices=DiscountType.choices, required=False)
    value = serializers.IntegerField(min_value=0, required=False)
    exclude_sale_items = serializers.BooleanField(required=False, default=False)
    lines = LineSnapshotSerializer(many=True)

    def validate(self, attrs):
        if not attrs.get("code") and (
            attrs.get("discount_type") is None or attrs.get("value") is None
        ):
            raise serializers.ValidationError("Provide code, or discount_type and value.")
        if attrs.get("discount_type") == DiscountType.PERCENTAGE and attrs.get("value", 0) > 100:
            raise serializers.ValidationError({"value": "Percentage cannot exceed 100."})
        return attrs


class DiscountPreviewResponseSerializer(serializers.Serializer):
    total_subtotal = serializers.IntegerField()
    eligible_subtotal = serializers.IntegerField()
    discount_cents = serializers.IntegerField()
    total_after_discount_cents = serializers.IntegerField()
