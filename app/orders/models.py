"""
Order aggregate: the escrow state store.

Models:
    Order: Aggregate root holding totals, snapshots and escrow details
    OrderItem: Immutable line snapshot taken at checkout
    SellerOrder: One seller's share of the order and its fulfilment status
    SellerOrderStatusChange: Append-only audit log of sub-order status changes
    TransferRecord: The per-seller escrow ledger entry

Every mutation of a TransferRecord is followed, in the same transaction, by
``Order.recompute_status()``, the only writer of ``Order.payment_status``
and ``Order.status``.

Orders are financial records and are never deleted; every relation pointing
at an order uses ``on_delete=PROTECT``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, TransitionNotAllowed, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from orders.exceptions import InvalidStateTransitionError
from orders.state_machines import (
    SELLER_ORDER_TRANSITIONS,
    TERMINAL_TRANSFER_STATUSES,
    TRANSFER_TRANSITIONS,
    DisputeAction,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    SellerOrderStatus,
    TransferStatus,
    derive_order_status,
    derive_payment_status,
    sources_for,
)
from payments.adapters import to_minor_units

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import User


def default_currency() -> str:
    return settings.ESCROW_CURRENCY


MONEY = {"max_digits": 12, "decimal_places": 2}


# =============================================================================
# Order
# =============================================================================


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A buyer's checkout across one or more sellers.

    ``status`` (fulfilment) and ``payment_status`` (money) are independent
    axes; both are derived in ``recompute_status``.
    """

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    total_amount = models.DecimalField(
        **MONEY,
        help_text="Sum of seller subtotals and delivery charges, computed at checkout",
    )
    currency = models.CharField(max_length=3, default=default_currency)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        help_text="Derived from the transfer ledger; never set directly",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )

    # ==========================================================================
    # Checkout snapshots
    # ==========================================================================

    shipping_address = models.JSONField(default=dict, help_text="Address as given at checkout")
    contact_info = models.JSONField(default=dict, blank=True)
    delivery_notes = models.TextField(blank=True, default="")

    # ==========================================================================
    # Escrow details
    # ==========================================================================

    release_date = models.DateTimeField(
        db_index=True,
        help_text="Earliest time the release sweep may pay sellers out",
    )
    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who released funds; empty for the automatic sweep",
    )

    dispute_raised = models.BooleanField(default=False, db_index=True)
    dispute_reason = models.TextField(blank=True, default="")
    dispute_raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    dispute_raised_at = models.DateTimeField(null=True, blank=True)
    dispute_resolved = models.BooleanField(default=False)
    dispute_resolution = models.TextField(blank=True, default="")
    dispute_action = models.CharField(
        max_length=20,
        choices=DisputeAction.choices,
        blank=True,
        default="",
    )
    dispute_resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    dispute_resolved_at = models.DateTimeField(null=True, blank=True)

    inventory_committed = models.BooleanField(
        default=False,
        help_text="Stock was decremented for this order's items",
    )

    # ==========================================================================
    # Lifecycle timestamps
    # ==========================================================================

    confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["payment_status", "release_date", "dispute_raised"],
                name="order_release_sweep_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Order {self.id} ({self.status}/{self.payment_status})"

    @property
    def transfer_group(self) -> str:
        return f"ORDER_{self.id}"

    @property
    def dispute_open(self) -> bool:
        return self.dispute_raised and not self.dispute_resolved

    def seller_ids(self) -> set[int]:
        return set(self.seller_orders.values_list("seller_id", flat=True))

    def is_party(self, user: User) -> bool:
        """Buyer, or a seller with a sub-order on this order."""
        return user.pk == self.buyer_id or self.seller_orders.filter(seller_id=user.pk).exists()

    def recompute_status(self) -> list[str]:
        """
        Re-derive ``payment_status`` and ``status`` from the stored ledger.

        Reads transfer and sub-order statuses from the database, so callers
        save the mutated rows first. Does not save; returns the names of the
        fields that changed.
        """
        entry_statuses = list(self.transfers.values_list("status", flat=True))
        seller_statuses = list(self.seller_orders.values_list("status", flat=True))

        payment_status = derive_payment_status(
            entry_statuses,
            dispute_open=self.dispute_open,
            resolved_by_release=(
                self.dispute_resolved and self.dispute_action == DisputeAction.RELEASE_TO_SELLER
            ),
        )
        status = derive_order_status(
            self.status,
            seller_statuses,
            payment_status,
            funds_released=TransferStatus.RELEASED in entry_statuses,
        )

        changed: list[str] = []
        if payment_status != self.payment_status:
            self.payment_status = payment_status
            changed.append("payment_status")
        if status != self.status:
            now = timezone.now()
            self.status = status
            changed.append("status")
            if status == OrderStatus.CONFIRMED and self.confirmed_at is None:
                self.confirmed_at = now
                changed.append("confirmed_at")
            elif status == OrderStatus.COMPLETED and self.completed_at is None:
                self.completed_at = now
                changed.append("completed_at")
            elif status == OrderStatus.CANCELLED and self.cancelled_at is None:
                self.cancelled_at = now
                changed.append("cancelled_at")
        return changed


class OrderItem(BaseModel):
    """Line snapshot; never updated after checkout."""

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="items")
    seller_order = models.ForeignKey(
        "orders.SellerOrder",
        on_delete=models.PROTECT,
        related_name="items",
    )
    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.SET_NULL,
        null=True,
        related_name="order_items",
    )
    product_name = models.CharField(max_length=200)
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sold_items",
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    selected_tier = models.PositiveSmallIntegerField(default=0)
    unit_price = models.DecimalField(**MONEY)
    line_total = models.DecimalField(**MONEY)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_name}"


# =============================================================================
# Seller sub-order
# =============================================================================


class SellerOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    One seller's share of an order.

    Status changes go through ``transition_to`` so every change is checked
    against ``SELLER_ORDER_TRANSITIONS``.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="seller_orders")
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="seller_orders",
    )
    subtotal = models.DecimalField(**MONEY)
    delivery_charge = models.DecimalField(**MONEY, default=Decimal("0.00"))
    distance_km = models.FloatField(
        null=True,
        blank=True,
        help_text="Buyer-seller great-circle distance used for the delivery tier",
    )
    status = FSMField(
        default=SellerOrderStatus.PENDING,
        choices=SellerOrderStatus.choices,
        db_index=True,
    )
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["order", "seller"], name="unique_seller_order"),
        ]

    def __str__(self) -> str:
        return f"SellerOrder({self.order_id}, seller={self.seller_id}, {self.status})"

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.delivery_charge

    @transition(
        field=status,
        source=sources_for(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.PROCESSING),
        target=SellerOrderStatus.PROCESSING,
    )
    def start_processing(self) -> None:
        pass

    @transition(
        field=status,
        source=sources_for(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.SHIPPED),
        target=SellerOrderStatus.SHIPPED,
    )
    def ship(self) -> None:
        pass

    @transition(
        field=status,
        source=sources_for(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.DELIVERED),
        target=SellerOrderStatus.DELIVERED,
    )
    def deliver(self) -> None:
        self.delivered_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.CANCELLED),
        target=SellerOrderStatus.CANCELLED,
    )
    def cancel(self) -> None:
        pass

    def transition_to(self, new_status: str) -> None:
        """
        Move to ``new_status`` via its transition method. Does not save.

        Raises:
            InvalidStateTransitionError: Not allowed from the current status
        """
        method = {
            SellerOrderStatus.PROCESSING: self.start_processing,
            SellerOrderStatus.SHIPPED: self.ship,
            SellerOrderStatus.DELIVERED: self.deliver,
            SellerOrderStatus.CANCELLED: self.cancel,
        }.get(new_status)
        if method is None:
            raise InvalidStateTransitionError(
                f"Unknown seller order status '{new_status}'",
                details={"status": new_status},
            )
        try:
            method()
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(
                f"Cannot change seller order from '{self.status}' to '{new_status}'",
                details={"from": self.status, "to": new_status},
            ) from exc


class SellerOrderStatusChange(BaseModel):
    """Append-only audit entry for a sub-order status change."""

    seller_order = models.ForeignKey(
        SellerOrder,
        on_delete=models.PROTECT,
        related_name="status_history",
    )
    status = models.CharField(max_length=20, choices=SellerOrderStatus.choices)
    changed_at = models.DateTimeField(default=timezone.now)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["changed_at"]


# =============================================================================
# Transfer ledger
# =============================================================================


class TransferRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Escrow ledger entry: one seller's hold on one order.

    ``transfer_id`` starts as the hold's PaymentIntent id and is replaced by
    the payout Transfer id on release; ``payment_intent_id`` never changes
    and is the key webhooks are matched on. ``released`` and ``refunded``
    are terminal.
    """

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="transfers")
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_transfers",
    )
    transfer_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Hold id until release, then the payout transfer id",
    )
    payment_intent_id = models.CharField(max_length=255, unique=True)
    amount = models.DecimalField(**MONEY, help_text="Seller subtotal plus delivery charge")
    currency = models.CharField(max_length=3, default=default_currency)
    status = FSMField(
        default=TransferStatus.PENDING,
        choices=TransferStatus.choices,
        db_index=True,
    )
    metadata = models.JSONField(default=dict, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["order", "seller"], name="unique_order_seller_transfer"),
        ]

    def __str__(self) -> str:
        return f"TransferRecord({self.payment_intent_id}, {self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRANSFER_STATUSES

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount, self.currency)

    def stamp(self, **values: Any) -> None:
        """Merge provider details into ``metadata`` as strings."""
        self.metadata = {
            **(self.metadata or {}),
            **{key: str(value) for key, value in values.items() if value is not None},
            "last_updated": timezone.now().isoformat(),
        }

    @transition(
        field=status,
        source=sources_for(TRANSFER_TRANSITIONS, TransferStatus.PROCESSING),
        target=TransferStatus.PROCESSING,
    )
    def mark_processing(self) -> None:
        pass

    @transition(
        field=status,
        source=sources_for(TRANSFER_TRANSITIONS, TransferStatus.COMPLETED),
        target=TransferStatus.COMPLETED,
    )
    def mark_completed(self) -> None:
        pass

    @transition(
        field=status,
        source=sources_for(TRANSFER_TRANSITIONS, TransferStatus.FAILED),
        target=TransferStatus.FAILED,
    )
    def mark_failed(self) -> None:
        pass

    @transition(
        field=status,
        source=sources_for(TRANSFER_TRANSITIONS, TransferStatus.RELEASED),
        target=TransferStatus.RELEASED,
    )
    def mark_released(self) -> None:
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(TRANSFER_TRANSITIONS, TransferStatus.REFUNDED),
        target=TransferStatus.REFUNDED,
    )
    def mark_refunded(self) -> None:
        self.refunded_at = timezone.now()

    def advance(self, new_status: str) -> None:
        """
        Move to ``new_status`` via its transition method. Does not save.

        Raises:
            InvalidStateTransitionError: Not allowed from the current status
        """
        method = {
            TransferStatus.PROCESSING: self.mark_processing,
            TransferStatus.COMPLETED: self.mark_completed,
            TransferStatus.FAILED: self.mark_failed,
            TransferStatus.RELEASED: self.mark_released,
            TransferStatus.REFUNDED: self.mark_refunded,
        }.get(new_status)
        if method is None:
            raise InvalidStateTransitionError(
                f"Unknown transfer status '{new_status}'",
                details={"status": new_status},
            )
        try:
            method()
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(
                f"Cannot move transfer {self.payment_intent_id} from '{self.status}' to '{new_status}'",
                details={"from": self.status, "to": new_status, "transfer": str(self.id)},
            ) from exc
