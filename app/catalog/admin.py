"""
Django admin configuration for catalog models.
"""

from django.contrib import admin

from catalog.models import Cart, CartItem, Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "seller", "product_type", "stock", "created_at"]
    list_filter = ["product_type", "category"]
    search_fields = ["name", "seller__email"]
    raw_id_fields = ["seller"]


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    raw_id_fields = ["product"]


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ["user", "updated_at"]
    raw_id_fields = ["user"]
    inlines = [CartItemInline]
