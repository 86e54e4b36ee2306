"""
Cart and product services used by the order flow.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db.models import F

from catalog.models import Cart, CartItem, Product
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


class CartService(BaseService):
    """
    Methods:
        get_cart: The buyer's cart, created on first access
        get_items: Cart lines with product and seller loaded
        add_item: Add or top up a line
        clear_cart: Remove every line (idempotent)
    """

    @classmethod
    def get_cart(cls, user: User) -> Cart:
        cart, _ = Cart.objects.get_or_create(user=user)
        return cart

    @classmethod
    def get_items(cls, user: User) -> list[CartItem]:
        return list(
            CartItem.objects.filter(cart__user=user)
            .select_related("product", "product__seller")
            .order_by("created_at")
        )

    @classmethod
    def add_item(cls, user: User, product_id, quantity: int = 1, selected_tier: int = 0) -> CartItem:
        """
        Add ``quantity`` units of a product, or top up an existing line.

        Raises:
            NotFoundError: Unknown product
            ValidationError: Non-positive quantity or unknown price tier
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", error_code="INVALID_QUANTITY")

        try:
            product = Product.objects.get(pk=product_id)
        except Product.DoesNotExist as exc:
            raise NotFoundError(
                "Product not found",
                error_code="PRODUCT_NOT_FOUND",
                details={"product_id": str(product_id)},
            ) from exc

        if product.tier_price(selected_tier) is None:
            raise ValidationError(
                "Selected price tier does not exist",
                error_code="INVALID_TIER",
                details={"product_id": str(product.id), "selected_tier": selected_tier},
            )

        cart = cls.get_cart(user)
        with cls.atomic():
            item, created = CartItem.objects.select_for_update().get_or_create(
                cart=cart,
                product=product,
                defaults={"quantity": quantity, "selected_tier": selected_tier},
            )
            if not created:
                item.quantity += quantity
                item.selected_tier = selected_tier
                item.save(update_fields=["quantity", "selected_tier", "updated_at"])
        return item

    @classmethod
    def clear_cart(cls, user: User) -> int:
        """Delete every line in the user's cart. Returns the number removed."""
        deleted, _ = CartItem.objects.filter(cart__user=user).delete()
        if deleted:
            cls.get_logger().debug(f"Cleared {deleted} cart items for user {user.pk}")
        return deleted


class ProductService(BaseService):
    @classmethod
    def decrement_stock(cls, product_id, quantity: int) -> None:
        """Atomic ``stock = stock - quantity`` in SQL."""
        Product.objects.filter(pk=product_id).update(stock=F("stock") - quantity)
