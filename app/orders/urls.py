"""
URL configuration for the orders API.

Routes:
    /                           - List (GET) or place (POST) orders
    /seller/                    - Seller's sub-orders
    /{id}/                      - Order detail
    /{id}/confirm-payment/      - Capture holds
    /{id}/cancel/               - Cancel a pending order
    /{id}/seller-status/        - Seller fulfilment update
"""

from django.urls import path

from orders.views import (
    CancelOrderView,
    ConfirmPaymentView,
    OrderDetailView,
    OrderListCreateView,
    SellerOrderListView,
    SellerStatusView,
)

app_name = "orders"

urlpatterns = [
    path("", OrderListCreateView.as_view(), name="order-list"),
    path("seller/", SellerOrderListView.as_view(), name="seller-orders"),
    path("<uuid:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("<uuid:order_id>/confirm-payment/", ConfirmPaymentView.as_view(), name="confirm-payment"),
    path("<uuid:order_id>/cancel/", CancelOrderView.as_view(), name="cancel"),
    path("<uuid:order_id>/seller-status/", SellerStatusView.as_view(), name="seller-status"),
]
