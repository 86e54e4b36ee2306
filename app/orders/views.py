"""
Orders and escrow API.

Orders:
    GET  /api/v1/orders/                        - Buyer's orders (filterable)
    POST /api/v1/orders/                        - Checkout the cart
    GET  /api/v1/orders/{id}/                   - Order detail
    POST /api/v1/orders/{id}/confirm-payment/   - Capture the order's holds
    POST /api/v1/orders/{id}/cancel/            - Cancel a pending order
    POST /api/v1/orders/{id}/seller-status/     - Seller fulfilment update
    GET  /api/v1/orders/seller/                 - Seller's sub-orders

Escrow:
    POST /api/v1/escrow/orders/{id}/release/            - Manual release
    POST /api/v1/escrow/orders/{id}/disputes/           - Raise a dispute
    POST /api/v1/escrow/orders/{id}/disputes/resolve/   - Resolve (admin)
    POST /api/v1/escrow/process-releases/               - Internal sweep trigger

Domain errors raised by the services are rendered by
``core.exception_handler``.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.filters import OrderFilter, SellerOrderFilter
from orders.permissions import HasInternalAPISecret, IsSeller
from orders.serializers import (
    CancelOrderSerializer,
    ConfirmPaymentSerializer,
    CreateOrderResponseSerializer,
    CreateOrderSerializer,
    OrderSerializer,
    RaiseDisputeSerializer,
    ReleaseEscrowSerializer,
    ReleaseSummarySerializer,
    ResolveDisputeSerializer,
    SellerOrderListSerializer,
    SellerOrderSerializer,
    SellerStatusUpdateSerializer,
)
from orders.services import (
    DisputeService,
    EscrowReleaseService,
    OrderAssemblyService,
    OrderService,
    PaymentReconciliationService,
)

# =============================================================================
# Orders
# =============================================================================


class OrderListCreateView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = OrderFilter

    def get_queryset(self):
        return OrderService.list_buyer_orders(self.request.user)

    @extend_schema(summary="List my orders", tags=["Orders"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(
        summary="Place an order",
        description=(
            "Turns the cart into an order with one escrow hold per seller. "
            "The response carries every hold's client secret; the first one "
            "drives a single client-side confirmation."
        ),
        tags=["Orders"],
        request=CreateOrderSerializer,
        responses={201: CreateOrderResponseSerializer},
    )
    def post(self, request, *args, **kwargs):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = OrderAssemblyService.create_order(request.user, **serializer.validated_data)
        return Response(
            {
                "order": OrderSerializer(result.order).data,
                "holds": [
                    {
                        "seller_id": hold.seller_id,
                        "payment_intent_id": hold.payment_intent_id,
                        "client_secret": hold.client_secret,
                    }
                    for hold in result.holds
                ],
                "client_secret": result.client_secret,
            },
            status=status.HTTP_201_CREATED,
        )


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get order", tags=["Orders"], responses={200: OrderSerializer})
    def get(self, request, order_id):
        order = OrderService.get_order_for_user(order_id, request.user)
        return Response(OrderSerializer(order).data)


class ConfirmPaymentView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Confirm payment",
        description="Captures every hold of the order. Stock is committed and the cart cleared.",
        tags=["Orders"],
        request=ConfirmPaymentSerializer,
        responses={200: OrderSerializer},
    )
    def post(self, request, order_id):
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        result = PaymentReconciliationService.confirm_payment(
            order,
            request.user,
            payment_method_id=serializer.validated_data.get("payment_method_id"),
        )
        order = OrderService.get_order_for_user(result.order.pk, request.user)
        return Response({"order": OrderSerializer(order).data, "holds": result.holds})


class CancelOrderView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel order",
        tags=["Orders"],
        request=CancelOrderSerializer,
        responses={200: OrderSerializer, 409: OpenApiResponse(description="Order is not pending")},
    )
    def post(self, request, order_id):
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        OrderService.cancel_order(
            order,
            request.user,
            reason=serializer.validated_data["reason"],
            expected_version=serializer.validated_data.get("version"),
        )
        return Response(OrderSerializer(OrderService.get_order_for_user(order_id, request.user)).data)


class SellerStatusView(APIView):
    permission_classes = [IsAuthenticated, IsSeller]

    @extend_schema(
        summary="Update my sub-order status",
        tags=["Orders"],
        request=SellerStatusUpdateSerializer,
        responses={200: SellerOrderSerializer},
    )
    def post(self, request, order_id):
        serializer = SellerStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        seller_order = OrderService.update_seller_order_status(
            order,
            request.user,
            serializer.validated_data["status"],
            notes=serializer.validated_data["notes"],
        )
        return Response(SellerOrderSerializer(seller_order).data)


class SellerOrderListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, IsSeller]
    serializer_class = SellerOrderListSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = SellerOrderFilter

    def get_queryset(self):
        return OrderService.list_seller_orders(self.request.user)

    @extend_schema(summary="List my sub-orders as a seller", tags=["Orders"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


# =============================================================================
# Escrow
# =============================================================================


class ReleaseEscrowView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Release escrow",
        description="Pays the sellers (or one seller) out early. Per-seller results are returned.",
        tags=["Escrow"],
        request=ReleaseEscrowSerializer,
        responses={200: ReleaseSummarySerializer},
    )
    def post(self, request, order_id):
        serializer = ReleaseEscrowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        summary = EscrowReleaseService.release_escrow_funds(
            order,
            request.user,
            seller_id=serializer.validated_data.get("seller_id"),
        )
        return Response(summary.to_dict())


class RaiseDisputeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Raise dispute",
        tags=["Escrow"],
        request=RaiseDisputeSerializer,
        responses={200: OrderSerializer},
    )
    def post(self, request, order_id):
        serializer = RaiseDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        DisputeService.raise_dispute(order, request.user, serializer.validated_data["reason"])
        return Response(OrderSerializer(OrderService.get_order_for_user(order_id, request.user)).data)


class ResolveDisputeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Resolve dispute",
        description="Administrators only. Refunds the buyer or releases to the sellers.",
        tags=["Escrow"],
        request=ResolveDisputeSerializer,
    )
    def post(self, request, order_id):
        serializer = ResolveDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = OrderService.get_order_for_user(order_id, request.user)
        result = DisputeService.resolve_dispute(
            order,
            request.user,
            action=serializer.validated_data["action"],
            resolution=serializer.validated_data["resolution"],
        )
        return Response(result.to_dict())


class ProcessReleasesView(APIView):
    """Internal trigger for the release sweep; called by an external scheduler."""

    authentication_classes = []
    permission_classes = [HasInternalAPISecret]

    @extend_schema(summary="Run escrow release sweep", tags=["Escrow"], request=None)
    def post(self, request):
        summaries = EscrowReleaseService.run_sweep()
        return Response(
            {
                "processed": len(summaries),
                "orders": [summary.to_dict() for summary in summaries],
            }
        )
