import django_filters as filters

from orders.models import Order, SellerOrder


class OrderFilter(filters.FilterSet):
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "payment_status", "dispute_raised", "created_after", "created_before"]


class SellerOrderFilter(filters.FilterSet):
    payment_status = filters.CharFilter(field_name="order__payment_status")

    class Meta:
        model = SellerOrder
        fields = ["status", "payment_status"]
