"""
Notifications sent by the order and escrow flows.

All of them are queued with ``notify_on_commit`` so a rolled back escrow
transaction never leaves a message about money that did not move.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from notifications.models import NotificationCategory
from notifications.services import NotificationService

if TYPE_CHECKING:
    from authentication.models import User
    from orders.models import Order


def _send(recipient: User, order: Order, title: str, body: str, category: str, **data) -> None:
    NotificationService.notify_on_commit(
        recipient,
        title=title,
        body=body,
        category=category,
        link=f"/orders/{order.id}",
        data={"order_id": str(order.id), **{k: str(v) for k, v in data.items() if v is not None}},
    )


def _sellers(order: Order) -> list[User]:
    return [seller_order.seller for seller_order in order.seller_orders.select_related("seller")]


def order_placed(order: Order) -> None:
    _send(
        order.buyer,
        order,
        "Order Placed",
        f"Your order for {order.currency.upper()} {order.total_amount} has been placed.",
        NotificationCategory.ORDER,
    )
    for seller_order in order.seller_orders.select_related("seller"):
        _send(
            seller_order.seller,
            order,
            "New Order",
            f"You received a new order worth {order.currency.upper()} {seller_order.total}.",
            NotificationCategory.ORDER,
        )


def payment_confirmed(order: Order) -> None:
    _send(
        order.buyer,
        order,
        "Payment Confirmed",
        "Your payment is held in escrow until the order is delivered.",
        NotificationCategory.PAYMENT,
    )
    for seller in _sellers(order):
        _send(
            seller,
            order,
            "Payment Received",
            "The buyer's payment is held in escrow. You can start processing the order.",
            NotificationCategory.PAYMENT,
        )


def payment_failed(order: Order, reason: str = "") -> None:
    _send(
        order.buyer,
        order,
        "Payment Failed",
        reason or "Your payment could not be completed.",
        NotificationCategory.PAYMENT,
    )


def refund_processed(order: Order, seller_id: int | None = None) -> None:
    _send(
        order.buyer,
        order,
        "Refund Processed",
        "Your payment has been returned to your original payment method.",
        NotificationCategory.PAYMENT,
        seller_id=seller_id,
    )


def funds_released(order: Order, seller: User, amount) -> None:
    _send(
        seller,
        order,
        "Funds Released",
        f"{order.currency.upper()} {amount} has been transferred to your payout account.",
        NotificationCategory.ESCROW,
        amount=amount,
    )


def escrow_released(order: Order) -> None:
    _send(
        order.buyer,
        order,
        "Escrow Released",
        "Escrowed funds for your order have been released to the sellers.",
        NotificationCategory.ESCROW,
    )


_STATUS_MESSAGES = {
    "processing": "{seller} is preparing your items.",
    "shipped": "{seller} has shipped your items.",
    "delivered": "Your items from {seller} were delivered.",
    "cancelled": "{seller} cancelled their part of your order.",
}


def seller_status_changed(order: Order, seller_order_status: str, seller: User) -> None:
    template = _STATUS_MESSAGES.get(seller_order_status, "{seller} updated your order.")
    _send(
        order.buyer,
        order,
        "Order Update",
        template.format(seller=seller.get_full_name()),
        NotificationCategory.ORDER,
        status=seller_order_status,
    )


def order_cancelled(order: Order) -> None:
    for seller in _sellers(order):
        _send(
            seller,
            order,
            "Order Cancelled",
            order.cancellation_reason or "The buyer cancelled the order.",
            NotificationCategory.ORDER,
        )


def dispute_raised(order: Order) -> None:
    for recipient in [order.buyer, *_sellers(order)]:
        _send(
            recipient,
            order,
            "Dispute Raised",
            f"A dispute was raised on this order: {order.dispute_reason}",
            NotificationCategory.DISPUTE,
        )


def dispute_resolved(order: Order) -> None:
    outcome = (
        "The payment has been refunded to the buyer."
        if order.dispute_action == "refund_buyer"
        else "The payment has been released to the sellers."
    )
    for recipient in [order.buyer, *_sellers(order)]:
        _send(
            recipient,
            order,
            "Dispute Resolved",
            f"{order.dispute_resolution} {outcome}",
            NotificationCategory.DISPUTE,
            action=order.dispute_action,
        )
