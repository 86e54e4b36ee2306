"""
Serializers for the orders and escrow API.

Read serializers expose the order aggregate; request serializers only
validate input shape. Business rules live in the services.
"""

from __future__ import annotations

from rest_framework import serializers

from orders.models import Order, OrderItem, SellerOrder, SellerOrderStatusChange, TransferRecord
from orders.state_machines import DisputeAction, PaymentMethod, SellerOrderStatus

# =============================================================================
# Read serializers
# =============================================================================


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "product_name",
            "seller",
            "quantity",
            "selected_tier",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class SellerOrderStatusChangeSerializer(serializers.ModelSerializer):
    class Meta:
        model = SellerOrderStatusChange
        fields = ["status", "changed_at", "changed_by", "notes"]
        read_only_fields = fields


class SellerOrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = SellerOrderStatusChangeSerializer(many=True, read_only=True)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = SellerOrder
        fields = [
            "id",
            "seller",
            "subtotal",
            "delivery_charge",
            "distance_km",
            "total",
            "status",
            "delivered_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class TransferRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = TransferRecord
        fields = [
            "id",
            "seller",
            "transfer_id",
            "payment_intent_id",
            "amount",
            "currency",
            "status",
            "metadata",
            "released_at",
            "refunded_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class EscrowDetailsSerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = [
            "release_date",
            "released_at",
            "released_by",
            "dispute_raised",
            "dispute_reason",
            "dispute_raised_by",
            "dispute_raised_at",
            "dispute_resolved",
            "dispute_resolution",
            "dispute_action",
            "dispute_resolved_by",
            "dispute_resolved_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order aggregate as seen by its buyer, sellers and admins."""

    items = OrderItemSerializer(many=True, read_only=True)
    seller_orders = SellerOrderSerializer(many=True, read_only=True)
    transfers = TransferRecordSerializer(many=True, read_only=True)
    escrow_details = EscrowDetailsSerializer(source="*", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer",
            "total_amount",
            "currency",
            "status",
            "payment_status",
            "payment_method",
            "shipping_address",
            "contact_info",
            "delivery_notes",
            "escrow_details",
            "items",
            "seller_orders",
            "transfers",
            "version",
            "confirmed_at",
            "completed_at",
            "cancelled_at",
            "cancellation_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = ["id", "buyer", "status", "payment_status", "total_amount", "currency", "created_at"]
        read_only_fields = fields


class SellerOrderListSerializer(SellerOrderSerializer):
    order = OrderSummarySerializer(read_only=True)
    shipping_address = serializers.JSONField(source="order.shipping_address", read_only=True)

    class Meta(SellerOrderSerializer.Meta):
        fields = [*SellerOrderSerializer.Meta.fields, "order", "shipping_address"]
        read_only_fields = fields


class HoldSerializer(serializers.Serializer):
    seller_id = serializers.IntegerField()
    payment_intent_id = serializers.CharField()
    client_secret = serializers.CharField(allow_null=True)


class CreateOrderResponseSerializer(serializers.Serializer):
    order = OrderSerializer()
    holds = HoldSerializer(many=True)
    client_secret = serializers.CharField(allow_null=True)


class EntryResultSerializer(serializers.Serializer):
    seller_id = serializers.IntegerField()
    success = serializers.BooleanField()
    status = serializers.CharField()
    message = serializers.CharField()
    transfer_id = serializers.CharField(allow_null=True)
    error_code = serializers.CharField(allow_null=True)


class ReleaseSummarySerializer(serializers.Serializer):
    order_id = serializers.CharField()
    all_succeeded = serializers.BooleanField()
    released_count = serializers.IntegerField()
    results = EntryResultSerializer(many=True)


# =============================================================================
# Request serializers
# =============================================================================


class ShippingAddressSerializer(serializers.Serializer):
    address_id = serializers.IntegerField(required=False)
    street = serializers.CharField(required=False, allow_blank=True, max_length=255)
    address_line2 = serializers.CharField(required=False, allow_blank=True, max_length=255)
    area = serializers.CharField(required=False, allow_blank=True, max_length=120)
    city = serializers.CharField(required=False, allow_blank=True, max_length=120)
    state = serializers.CharField(required=False, allow_blank=True, max_length=120)
    postal_code = serializers.CharField(required=False, allow_blank=True, max_length=20)
    country = serializers.CharField(required=False, allow_blank=True, max_length=80)
    latitude = serializers.FloatField(required=False, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, min_value=-180, max_value=180)

    def validate(self, attrs):
        if not (attrs.get("address_id") or attrs.get("city") or "latitude" in attrs):
            raise serializers.ValidationError("Provide a saved address_id, a city, or coordinates.")
        if ("latitude" in attrs) != ("longitude" in attrs):
            raise serializers.ValidationError("latitude and longitude must be given together.")
        return attrs


class CreateOrderSerializer(serializers.Serializer):
    shipping_address = ShippingAddressSerializer()
    contact_info = serializers.DictField(required=False, default=dict)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CARD)
    delivery_notes = serializers.CharField(required=False, allow_blank=True, default="")


class ConfirmPaymentSerializer(serializers.Serializer):
    payment_method_id = serializers.CharField(required=False, allow_blank=False)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    version = serializers.IntegerField(required=False, min_value=1)


class SellerStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[choice for choice in SellerOrderStatus.choices if choice[0] != SellerOrderStatus.PENDING]
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReleaseEscrowSerializer(serializers.Serializer):
    seller_id = serializers.IntegerField(required=False)


class RaiseDisputeSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ResolveDisputeSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=DisputeAction.choices)
    resolution = serializers.CharField(required=False, allow_blank=True, default="")
