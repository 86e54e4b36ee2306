"""
Cart API.
"""

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from catalog.serializers import AddCartItemSerializer, CartItemSerializer
from catalog.services import CartService


class CartView(APIView):
    """
    GET    /api/v1/cart/  - Current cart lines
    DELETE /api/v1/cart/  - Clear the cart
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get cart", tags=["Cart"], responses={200: CartItemSerializer(many=True)})
    def get(self, request):
        items = CartService.get_items(request.user)
        return Response({"items": CartItemSerializer(items, many=True).data})

    @extend_schema(summary="Clear cart", tags=["Cart"], responses={204: None})
    def delete(self, request):
        CartService.clear_cart(request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartItemView(APIView):
    """POST /api/v1/cart/items/ - Add a product to the cart."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Add item to cart",
        tags=["Cart"],
        request=AddCartItemSerializer,
        responses={201: CartItemSerializer},
    )
    def post(self, request):
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = CartService.add_item(request.user, **serializer.validated_data)
        return Response(CartItemSerializer(item).data, status=status.HTTP_201_CREATED)
