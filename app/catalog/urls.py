"""
URL configuration for the cart API.

Routes:
    /          - Get (GET) or clear (DELETE) the cart
    /items/    - Add an item (POST)
"""

from django.urls import path

from catalog.views import CartItemView, CartView

app_name = "catalog"

urlpatterns = [
    path("", CartView.as_view(), name="cart"),
    path("items/", CartItemView.as_view(), name="cart-items"),
]
