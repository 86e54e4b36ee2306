"""
Dispute handling.

A dispute freezes an order's escrow: the sweep skips disputed orders and
manual release is refused until an administrator resolves it, either by
refunding the buyer or by releasing to the sellers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from core.exceptions import PermissionDeniedError, ValidationError
from core.services import BaseService
from orders import messages
from orders.exceptions import EscrowStateError, OrderAccessDeniedError
from orders.models import Order, TransferRecord
from orders.services.ledger import RELEASABLE_STATUSES, EntryResult, EscrowLedgerService
from orders.state_machines import TERMINAL_TRANSFER_STATUSES, DisputeAction, PaymentStatus
from payments.locks import order_lock

if TYPE_CHECKING:
    from authentication.models import User

DEFAULT_DISPUTE_REASON = "No reason provided"
DEFAULT_RESOLUTION = "Dispute resolved by administrator"

DISPUTABLE_PAYMENT_STATUSES = (PaymentStatus.PAID, PaymentStatus.HELD_IN_ESCROW)


@dataclass
class ResolutionResult:
    order: Order
    resolved: bool
    results: list[EntryResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order_id": str(self.order.pk),
            "resolved": self.resolved,
            "payment_status": self.order.payment_status,
            "results": [result.to_dict() for result in self.results],
        }


class DisputeService(BaseService):
    """
    Methods:
        raise_dispute: Buyer or seller freezes the order's escrow
        resolve_dispute: Administrator refunds the buyer or pays the sellers
    """

    @classmethod
    def raise_dispute(cls, order: Order, user: User, reason: str | None = None) -> Order:
        """
        Raises:
            OrderAccessDeniedError: ``user`` is neither buyer nor a seller on the order
            EscrowStateError: A dispute is already open, or no money is held
        """
        if not order.is_party(user):
            raise OrderAccessDeniedError("Only the buyer or a seller on this order can raise a dispute")

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if order.dispute_open:
                raise EscrowStateError("A dispute is already open for this order", error_code="DISPUTE_ALREADY_OPEN")
            if order.payment_status not in DISPUTABLE_PAYMENT_STATUSES:
                raise EscrowStateError(
                    "Only orders with held funds can be disputed",
                    details={"payment_status": order.payment_status},
                )

            order.dispute_raised = True
            order.dispute_resolved = False
            order.dispute_reason = (reason or "").strip() or DEFAULT_DISPUTE_REASON
            order.dispute_raised_by = user
            order.dispute_raised_at = timezone.now()
            order.dispute_resolution = ""
            order.dispute_action = ""
            order.dispute_resolved_by = None
            order.dispute_resolved_at = None
            order.recompute_status()
            order.save()

            messages.dispute_raised(order)

        cls.get_logger().info(
            f"Dispute raised on order {order.pk} by user {user.pk}",
            extra={"order_id": str(order.pk), "raised_by": user.pk},
        )
        return order

    @classmethod
    def resolve_dispute(
        cls,
        order: Order,
        admin: User,
        action: str,
        resolution: str | None = None,
    ) -> ResolutionResult:
        """
        Apply ``action`` to every entry still holding money.

        ``refund_buyer`` cancels or refunds each hold. ``release_to_seller``
        pays out each captured or capturable hold; holds that never took the
        buyer's money are voided. The dispute is closed only when every entry
        succeeded; otherwise the order stays disputed and the call can be
        repeated.

        Raises:
            PermissionDeniedError: ``admin`` is not an administrator
            ValidationError: Unknown action
            EscrowStateError: Order is not disputed
            LockAcquisitionError: A release of this order is running
        """
        if not admin.is_admin:
            raise PermissionDeniedError("Only administrators can resolve disputes")
        if action not in DisputeAction.values:
            raise ValidationError(
                f"Unknown dispute action '{action}'",
                error_code="INVALID_DISPUTE_ACTION",
                details={"allowed": list(DisputeAction.values)},
            )

        log = cls.get_logger()
        with order_lock(order.pk):
            order.refresh_from_db()
            if order.payment_status != PaymentStatus.DISPUTED:
                raise EscrowStateError(
                    "Order is not under dispute",
                    details={"payment_status": order.payment_status},
                )

            results = []
            open_entries = (
                TransferRecord.objects.filter(order=order)
                .exclude(status__in=TERMINAL_TRANSFER_STATUSES)
                .order_by("created_at")
            )
            for entry in list(open_entries):
                if action == DisputeAction.RELEASE_TO_SELLER and entry.status in RELEASABLE_STATUSES:
                    results.append(EscrowLedgerService.release_entry(order.pk, entry.pk, released_by=admin))
                else:
                    results.append(EscrowLedgerService.refund_entry(order.pk, entry.pk))

            if not all(result.success for result in results):
                order.refresh_from_db()
                log.warning(
                    f"Dispute on order {order.pk} left open: some sellers failed",
                    extra={"order_id": str(order.pk), "action": action},
                )
                return ResolutionResult(order=order, resolved=False, results=results)

            with transaction.atomic():
                order = Order.objects.select_for_update().get(pk=order.pk)
                now = timezone.now()
                order.dispute_resolved = True
                order.dispute_resolution = (resolution or "").strip() or DEFAULT_RESOLUTION
                order.dispute_action = action
                order.dispute_resolved_by = admin
                order.dispute_resolved_at = now
                order.recompute_status()
                if order.payment_status == PaymentStatus.RELEASED and order.released_at is None:
                    order.released_at = now
                    order.released_by = admin
                order.save()

                messages.dispute_resolved(order)

        log.info(
            f"Dispute on order {order.pk} resolved with {action}",
            extra={"order_id": str(order.pk), "action": action, "resolved_by": admin.pk},
        )
        return ResolutionResult(order=order, resolved=True, results=results)
