"""
Status enums, transition tables and status derivation for orders.

Two independent axes describe an order:

    status          fulfilment, aggregated from the seller sub-orders
    payment_status  money, derived from the per-seller transfer ledger

Transfer ledger (one entry per seller per order):

    pending ──► processing ──► completed ──► released
       │            │
       │            └──► failed
       │
       └── any non-terminal entry ──► refunded

    pending ──► completed     (succeeded event arriving before any other)
    failed ──► processing     (a PaymentIntent can succeed after a failed attempt)
    failed ──► completed

Seller sub-order:

    pending ──► processing ──► shipped ──► delivered
       └────────────┴────────────┴──► cancelled

Both tables are the single source for the django-fsm ``@transition``
sources on ``TransferRecord`` and ``SellerOrder``.
"""

from __future__ import annotations

from collections.abc import Iterable

from django.db import models

# =============================================================================
# Status Enums
# =============================================================================


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    COMPLETED = "completed", "Completed"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    HELD_IN_ESCROW = "held_in_escrow", "Held in Escrow"
    RELEASED = "released", "Released"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    DISPUTED = "disputed", "Disputed"


class SellerOrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class TransferStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    CARD = "card", "Card"
    CASH_ON_DELIVERY = "cash_on_delivery", "Cash on Delivery"


class DisputeAction(models.TextChoices):
    REFUND_BUYER = "refund_buyer", "Refund Buyer"
    RELEASE_TO_SELLER = "release_to_seller", "Release to Seller"


# =============================================================================
# Transition Tables
# =============================================================================

TRANSFER_TRANSITIONS: dict[str, frozenset[str]] = {
    TransferStatus.PENDING: frozenset(
        {TransferStatus.PROCESSING, TransferStatus.COMPLETED, TransferStatus.FAILED, TransferStatus.REFUNDED}
    ),
    TransferStatus.PROCESSING: frozenset(
        {TransferStatus.COMPLETED, TransferStatus.FAILED, TransferStatus.REFUNDED}
    ),
    TransferStatus.COMPLETED: frozenset({TransferStatus.RELEASED, TransferStatus.REFUNDED}),
    TransferStatus.FAILED: frozenset(
        {TransferStatus.PROCESSING, TransferStatus.COMPLETED, TransferStatus.REFUNDED}
    ),
    TransferStatus.RELEASED: frozenset(),
    TransferStatus.REFUNDED: frozenset(),
}

TERMINAL_TRANSFER_STATUSES = frozenset(
    status for status, targets in TRANSFER_TRANSITIONS.items() if not targets
)

SELLER_ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    SellerOrderStatus.PENDING: frozenset({SellerOrderStatus.PROCESSING, SellerOrderStatus.CANCELLED}),
    SellerOrderStatus.PROCESSING: frozenset({SellerOrderStatus.SHIPPED, SellerOrderStatus.CANCELLED}),
    SellerOrderStatus.SHIPPED: frozenset({SellerOrderStatus.DELIVERED, SellerOrderStatus.CANCELLED}),
    SellerOrderStatus.DELIVERED: frozenset(),
    SellerOrderStatus.CANCELLED: frozenset(),
}


def sources_for(table: dict[str, frozenset[str]], target: str) -> list[str]:
    """States from which ``target`` is reachable in one step."""
    return [str(source) for source, targets in table.items() if target in targets]


def can_transition(table: dict[str, frozenset[str]], current: str, target: str) -> bool:
    return target in table.get(current, frozenset())


# =============================================================================
# Status Derivation
# =============================================================================


def derive_payment_status(
    entry_statuses: Iterable[str],
    dispute_open: bool = False,
    resolved_by_release: bool = False,
) -> str:
    """
    Order payment status as a pure function of its ledger.

    Rules, first match wins:
        1. open dispute                               -> disputed
        2. no entries                                 -> pending
        3. every entry failed                         -> failed
        4. any entry still pending                    -> pending
        5. any entry processing                       -> paid
        6. any entry completed                        -> held_in_escrow
        7. released and refunded entries side by side -> released when a
           dispute was resolved by releasing, else refunded
        8. any entry released                         -> released
        9. any entry refunded                         -> refunded

    From rule 7 on nothing is held any more; failed holds never took money
    and do not count against released or refunded siblings.
    """
    statuses = list(entry_statuses)

    if dispute_open:
        return PaymentStatus.DISPUTED
    if not statuses:
        return PaymentStatus.PENDING
    if all(s == TransferStatus.FAILED for s in statuses):
        return PaymentStatus.FAILED
    if any(s == TransferStatus.PENDING for s in statuses):
        return PaymentStatus.PENDING
    if any(s == TransferStatus.PROCESSING for s in statuses):
        return PaymentStatus.PAID
    if any(s == TransferStatus.COMPLETED for s in statuses):
        return PaymentStatus.HELD_IN_ESCROW

    released = any(s == TransferStatus.RELEASED for s in statuses)
    refunded = any(s == TransferStatus.REFUNDED for s in statuses)
    if released and refunded:
        return PaymentStatus.RELEASED if resolved_by_release else PaymentStatus.REFUNDED
    if released:
        return PaymentStatus.RELEASED
    return PaymentStatus.REFUNDED


# Order statuses owned by the fulfilment flow; payment events never move
# an order out of these.
_FULFILMENT_STATUSES = frozenset(
    {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.COMPLETED}
)


def derive_order_status(
    current: str,
    seller_statuses: Iterable[str],
    payment_status: str,
    funds_released: bool = False,
) -> str:
    """
    Aggregate order status from sub-order statuses and payment status.

    - cancelled stays cancelled
    - every sub-order cancelled                       -> cancelled
    - every live sub-order delivered                  -> completed
    - any live sub-order shipped or delivered         -> shipped
    - any live sub-order processing                   -> processing
    - payment failed or refunded before fulfilment    -> cancelled,
      unless a seller was already paid out (``funds_released``)
    - money held (paid / escrow / released / disputed)-> confirmed
    - otherwise the current status
    """
    if current == OrderStatus.CANCELLED:
        return OrderStatus.CANCELLED

    statuses = list(seller_statuses)
    live = [s for s in statuses if s != SellerOrderStatus.CANCELLED]

    if statuses and not live:
        return OrderStatus.CANCELLED
    if live and all(s == SellerOrderStatus.DELIVERED for s in live):
        return OrderStatus.COMPLETED
    if any(s in (SellerOrderStatus.SHIPPED, SellerOrderStatus.DELIVERED) for s in live):
        return OrderStatus.SHIPPED
    if any(s == SellerOrderStatus.PROCESSING for s in live):
        return OrderStatus.PROCESSING

    if current in _FULFILMENT_STATUSES:
        return current
    if payment_status in (PaymentStatus.FAILED, PaymentStatus.REFUNDED):
        return OrderStatus.CONFIRMED if funds_released else OrderStatus.CANCELLED
    if payment_status in (
        PaymentStatus.PAID,
        PaymentStatus.HELD_IN_ESCROW,
        PaymentStatus.RELEASED,
        PaymentStatus.DISPUTED,
    ):
        return OrderStatus.CONFIRMED
    return current
