"""
Serializers for the cart API.
"""

from rest_framework import serializers

from catalog.models import CartItem, Product


class ProductSummarySerializer(serializers.ModelSerializer):
    seller_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = ["id", "name", "category", "product_type", "price_tiers", "stock", "seller_id"]
        read_only_fields = fields


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSummarySerializer(read_only=True)
    unit_price = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = ["id", "product", "quantity", "selected_tier", "unit_price"]
        read_only_fields = fields

    def get_unit_price(self, obj) -> str | None:
        price = obj.product.tier_price(obj.selected_tier)
        return str(price) if price is not None else None


class AddCartItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    selected_tier = serializers.IntegerField(min_value=0, default=0)
