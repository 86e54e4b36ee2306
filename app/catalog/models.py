"""
Catalog models.

Product prices are a list of quantity tiers and delivery charges a list of
distance tiers, both stored as JSON lists of ``{"min", "max", "price"}``:

    price_tiers = [{"min": 1, "max": 10, "price": 500}, {"min": 10, "max": None, "price": 450}]
    delivery_tiers = [{"min": 0, "max": 10, "price": 100}, {"min": 10, "max": 30, "price": 200}]

A cart line records which price tier the buyer picked (``selected_tier``).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ProductType(models.TextChoices):
    MARKETPLACE = "marketplace", "Marketplace"
    EMANDI = "emandi", "E-Mandi"
    AUCTION = "auction", "Auction"


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    A product listed by a seller.

    Fields:
        seller: Listing owner, receives the payout for this product
        name / category / product_type: Listing details
        price_tiers: Quantity tiers, indexed by CartItem.selected_tier
        delivery_tiers: Distance tiers in km used for delivery charges
        stock: Units available. Decremented at payment confirmation, not at
            order placement, so it may go negative under concurrent checkout.
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
        help_text="Seller who lists this product",
    )
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100, blank=True)
    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.MARKETPLACE,
    )
    price_tiers = models.JSONField(
        default=list,
        help_text='Quantity price tiers: [{"min": 1, "max": 10, "price": 500}]',
    )
    delivery_tiers = models.JSONField(
        default=list,
        blank=True,
        help_text='Distance delivery tiers in km: [{"min": 0, "max": 10, "price": 100}]',
    )
    stock = models.IntegerField(
        default=0,
        help_text="Units available for sale",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name

    def tier_price(self, index: int) -> Decimal | None:
        """Unit price for a tier index, or None when the tier does not exist."""
        if index < 0 or index >= len(self.price_tiers or []):
            return None
        try:
            return Decimal(str(self.price_tiers[index]["price"]))
        except (KeyError, TypeError, InvalidOperation):
            return None


class Cart(BaseModel):
    """One cart per buyer. Cleared, never deleted, when an order is placed."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart",
    )

    def __str__(self) -> str:
        return f"Cart({self.user_id})"


class CartItem(BaseModel):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="cart_items")
    quantity = models.PositiveIntegerField(default=1)
    selected_tier = models.PositiveIntegerField(
        default=0,
        help_text="Index into product.price_tiers",
    )

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="unique_cart_product"),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_id}"
