"""
Escrow release: paying sellers out of held funds.

Two entry points share the per-seller release in ``EscrowLedgerService``:

- ``release_due_order`` for the daily sweep: orders whose hold period has
  passed without a dispute
- ``release_escrow_funds`` for a buyer or administrator releasing early,
  for the whole order or a single seller

Each seller is released in its own transaction. A seller whose payout
fails keeps a ``completed`` entry and is picked up again by the next
attempt, while the sellers already paid stay paid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService
from orders import messages
from orders.exceptions import EscrowStateError, OrderAccessDeniedError
from orders.models import Order, TransferRecord
from orders.services.ledger import RELEASABLE_STATUSES, EntryResult, EscrowLedgerService
from orders.state_machines import PaymentStatus, TransferStatus
from payments.exceptions import LockAcquisitionError
from payments.locks import order_lock

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from authentication.models import User


@dataclass
class ReleaseSummary:
    order_id: str
    results: list[EntryResult] = field(default_factory=list)
    skipped: str = ""

    @property
    def all_succeeded(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def released_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def retryable(self) -> bool:
        """A seller failed on a transient gateway error worth retrying soon."""
        return any(result.retryable for result in self.results if not result.success)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "all_succeeded": self.all_succeeded,
            "released_count": self.released_count,
            "skipped": self.skipped,
            "results": [result.to_dict() for result in self.results],
        }


class EscrowReleaseService(BaseService):
    """
    Methods:
        due_orders: Orders the sweep should release now
        release_due_order: Sweep release of one order (no user)
        run_sweep: Release every due order inline, skipping locked ones
        release_escrow_funds: Manual release by the buyer or an administrator
    """

    @classmethod
    def due_orders(cls, now: datetime | None = None) -> QuerySet[Order]:
        return Order.objects.filter(
            payment_status=PaymentStatus.HELD_IN_ESCROW,
            release_date__lte=now or timezone.now(),
            dispute_raised=False,
        ).order_by("release_date")

    @classmethod
    def release_due_order(cls, order_id) -> ReleaseSummary:
        """
        Release every unreleased seller of a due order.

        Eligibility is checked again here since the order may have been
        disputed or released after it was selected. Callers hold the
        order lock.
        """
        log = cls.get_logger()
        order = Order.objects.filter(pk=order_id).first()
        summary = ReleaseSummary(order_id=str(order_id))
        if order is None:
            summary.skipped = "not_found"
            return summary
        if not cls.due_orders().filter(pk=order.pk).exists():
            log.info(f"Order {order_id} no longer due for release", extra={"order_id": str(order_id)})
            summary.skipped = "not_due"
            return summary

        cls._release_entries(order, summary, seller_id=None, released_by=None)
        log.info(
            f"Sweep released {summary.released_count}/{len(summary.results)} sellers of order {order_id}",
            extra={"order_id": str(order_id), "all_succeeded": summary.all_succeeded},
        )
        return summary

    @classmethod
    def run_sweep(cls, now: datetime | None = None) -> list[ReleaseSummary]:
        """Release all due orders in this process. Orders locked elsewhere are skipped."""
        summaries = []
        for order_id in list(cls.due_orders(now).values_list("id", flat=True)):
            try:
                with order_lock(order_id):
                    summaries.append(cls.release_due_order(order_id))
            except LockAcquisitionError:
                cls.get_logger().info(f"Order {order_id} is locked, skipping", extra={"order_id": str(order_id)})
                summaries.append(ReleaseSummary(order_id=str(order_id), skipped="locked"))
        return summaries

    @classmethod
    def release_escrow_funds(cls, order: Order, user: User, seller_id: int | None = None) -> ReleaseSummary:
        """
        Release an order's escrow early.

        Raises:
            OrderAccessDeniedError: Not the buyer or an administrator
            EscrowStateError: Already released, disputed, or holding no funds
            ValidationError: ``seller_id`` has no entry on this order
            LockAcquisitionError: Another release of this order is running
        """
        if order.buyer_id != user.pk and not user.is_admin:
            raise OrderAccessDeniedError("Only the buyer or an administrator can release escrow")

        with order_lock(order.pk):
            order.refresh_from_db()
            if order.payment_status == PaymentStatus.RELEASED:
                raise EscrowStateError("Escrow funds have already been released")
            if order.dispute_open:
                raise EscrowStateError("Escrow cannot be released while a dispute is open")
            if order.payment_status != PaymentStatus.HELD_IN_ESCROW:
                raise EscrowStateError(
                    "Order has no funds held in escrow",
                    details={"payment_status": order.payment_status},
                )
            if seller_id is not None and not order.transfers.filter(seller_id=seller_id).exists():
                raise ValidationError(
                    "Seller has no share of this order",
                    error_code="SELLER_NOT_ON_ORDER",
                    details={"seller_id": seller_id},
                )

            summary = ReleaseSummary(order_id=str(order.pk))
            cls._release_entries(order, summary, seller_id=seller_id, released_by=user)

        cls.get_logger().info(
            f"Manual release of order {order.pk} by user {user.pk}",
            extra={
                "order_id": str(order.pk),
                "seller_id": seller_id,
                "all_succeeded": summary.all_succeeded,
            },
        )
        return summary

    @classmethod
    def _release_entries(
        cls,
        order: Order,
        summary: ReleaseSummary,
        seller_id: int | None,
        released_by: User | None,
    ) -> None:
        entries = TransferRecord.objects.filter(
            order=order,
            status__in=[*RELEASABLE_STATUSES, TransferStatus.RELEASED],
        )
        if seller_id is not None:
            entries = entries.filter(seller_id=seller_id)

        for entry_id in list(entries.order_by("created_at").values_list("id", flat=True)):
            summary.results.append(
                EscrowLedgerService.release_entry(
                    order.pk, entry_id, released_by=released_by, require_no_dispute=True
                )
            )

        if not any(result.applied for result in summary.results):
            return

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if order.payment_status == PaymentStatus.RELEASED and order.released_at is None:
                order.released_at = timezone.now()
                order.released_by = released_by
                order.save()
            messages.escrow_released(order)
