"""
Order queries, buyer cancellation and seller fulfilment updates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction

from core.services import BaseService
from orders import messages
from orders.exceptions import EscrowStateError, OrderAccessDeniedError, OrderNotFoundError
from orders.models import Order, SellerOrder, SellerOrderStatusChange, TransferRecord
from orders.services.ledger import EscrowLedgerService
from orders.state_machines import OrderStatus, SellerOrderStatus
from payments.locks import check_version

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User


ORDER_DETAIL_PREFETCH = ("items", "seller_orders__status_history", "transfers")


class OrderService(BaseService):
    """
    Methods:
        list_buyer_orders: The buyer's orders, newest first
        get_order_for_user: One order, visible to its parties and admins
        list_seller_orders: A seller's sub-orders
        cancel_order: Buyer cancels a pending order, voiding every hold
        update_seller_order_status: Seller moves their sub-order forward
    """

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_buyer_orders(cls, user: User) -> QuerySet[Order]:
        return (
            Order.objects.filter(buyer=user)
            .prefetch_related(*ORDER_DETAIL_PREFETCH)
            .order_by("-created_at")
        )

    @classmethod
    def get_order_for_user(cls, order_id, user: User) -> Order:
        """
        Raises:
            OrderNotFoundError: No such order
            OrderAccessDeniedError: ``user`` is not a party to the order
        """
        order = (
            Order.objects.select_related("buyer")
            .prefetch_related(*ORDER_DETAIL_PREFETCH)
            .filter(pk=order_id)
            .first()
        )
        if order is None:
            raise OrderNotFoundError("Order not found", details={"order_id": str(order_id)})
        if not (user.is_admin or order.is_party(user)):
            raise OrderAccessDeniedError("You do not have access to this order")
        return order

    @classmethod
    def list_seller_orders(cls, seller: User) -> QuerySet[SellerOrder]:
        return (
            SellerOrder.objects.filter(seller=seller)
            .select_related("order", "order__buyer")
            .prefetch_related("items", "status_history")
            .order_by("-created_at")
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel_order(
        cls,
        order: Order,
        user: User,
        reason: str = "",
        expected_version: int | None = None,
    ) -> Order:
        """
        Cancel a pending order and void its holds.

        Every hold is reversed and every sub-order cancelled in a single
        transaction; if one hold cannot be reversed nothing is saved.
        ``expected_version`` rejects the cancel when the order changed since
        the client read it.

        Raises:
            OrderAccessDeniedError: ``user`` is not the buyer
            EscrowStateError: Order is past pending
            StaleRecordError: ``expected_version`` is out of date
            PaymentGatewayError: A hold could not be reversed
        """
        if order.buyer_id != user.pk:
            raise OrderAccessDeniedError("Only the buyer can cancel this order")

        with transaction.atomic():
            if expected_version is not None:
                order = check_version(Order, order.pk, expected_version)
            else:
                order = Order.objects.select_for_update().get(pk=order.pk)

            if order.status != OrderStatus.PENDING:
                raise EscrowStateError(
                    "Only pending orders can be cancelled",
                    error_code="ORDER_NOT_CANCELLABLE",
                    details={"status": order.status},
                )

            for entry in TransferRecord.objects.select_for_update().filter(order=order).select_related("seller"):
                if not entry.is_terminal:
                    EscrowLedgerService.refund_locked(order, entry)

            for seller_order in SellerOrder.objects.select_for_update().filter(order=order):
                if seller_order.status == SellerOrderStatus.CANCELLED:
                    continue
                seller_order.transition_to(SellerOrderStatus.CANCELLED)
                seller_order.save()
                SellerOrderStatusChange.objects.create(
                    seller_order=seller_order,
                    status=SellerOrderStatus.CANCELLED,
                    changed_by=user,
                    notes=reason,
                )

            order.cancellation_reason = reason
            order.recompute_status()
            order.save()

            messages.order_cancelled(order)

        cls.get_logger().info(
            f"Order {order.pk} cancelled by buyer",
            extra={"order_id": str(order.pk), "payment_status": order.payment_status},
        )
        return order

    # =========================================================================
    # Fulfilment
    # =========================================================================

    @classmethod
    def update_seller_order_status(
        cls,
        order: Order,
        seller: User,
        new_status: str,
        notes: str = "",
    ) -> SellerOrder:
        """
        Raises:
            OrderAccessDeniedError: ``seller`` has no sub-order on this order
            InvalidStateTransitionError: Transition not allowed
        """
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            try:
                seller_order = SellerOrder.objects.select_for_update().get(order=order, seller=seller)
            except SellerOrder.DoesNotExist as exc:
                raise OrderAccessDeniedError("You have no items on this order") from exc

            seller_order.transition_to(new_status)
            seller_order.save()
            SellerOrderStatusChange.objects.create(
                seller_order=seller_order,
                status=seller_order.status,
                changed_by=seller,
                notes=notes,
            )

            order.recompute_status()
            order.save()

            messages.seller_status_changed(order, seller_order.status, seller)

        cls.get_logger().info(
            f"Seller {seller.pk} moved order {order.pk} to {seller_order.status}",
            extra={"order_id": str(order.pk), "seller_id": seller.pk, "order_status": order.status},
        )
        return seller_order

