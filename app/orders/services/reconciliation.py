"""
Payment reconciliation: applying gateway outcomes to the escrow ledger.

Gateway outcomes reach the ledger two ways:

1. Webhooks (``handle_*``), delivered at least once and in any order
2. The buyer's payment confirmation (``confirm_payment``), which drives
   each hold forward synchronously

Both go through the same reducers. A reducer looks at an entry's current
status and the provider object and returns the update to apply, or no
update at all. Applying an event twice therefore changes the entry once.

Usage:
    from orders.services.reconciliation import PaymentReconciliationService

    result = PaymentReconciliationService.handle_payment_succeeded(payment_intent)
    if result.data["applied"]:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from catalog.services import CartService, ProductService
from core.services import BaseService, ServiceResult
from orders import messages
from orders.exceptions import OrderAccessDeniedError, PaymentNotProcessableError
from orders.models import Order, TransferRecord
from orders.state_machines import OrderStatus, PaymentStatus, TransferStatus
from payments.adapters import IdempotencyKeyGenerator, PaymentIntentResult, StripeAdapter

if TYPE_CHECKING:
    from typing import Any

    from authentication.models import User

logger = logging.getLogger(__name__)


# =============================================================================
# Reducers
# =============================================================================


@dataclass(frozen=True)
class LedgerUpdate:
    """Status to move an entry to (None for no change) and details to record."""

    target: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    note: str = ""

    @property
    def applies(self) -> bool:
        return self.target is not None


NO_CHANGE = LedgerUpdate()


def apply_payment_authorized(current: str, payment_intent: dict[str, Any]) -> LedgerUpdate:
    """Hold authorized, not yet captured."""
    if current in (TransferStatus.PENDING, TransferStatus.FAILED):
        return LedgerUpdate(
            TransferStatus.PROCESSING,
            {"payment_intent_status": payment_intent.get("status")},
        )
    return NO_CHANGE


def apply_payment_succeeded(current: str, payment_intent: dict[str, Any]) -> LedgerUpdate:
    if current in (TransferStatus.PENDING, TransferStatus.PROCESSING, TransferStatus.FAILED):
        return LedgerUpdate(
            TransferStatus.COMPLETED,
            {
                "payment_intent_status": payment_intent.get("status"),
                "charge_id": payment_intent.get("latest_charge"),
            },
        )
    return NO_CHANGE


def apply_payment_failed(current: str, payment_intent: dict[str, Any]) -> LedgerUpdate:
    """
    A failed attempt only moves entries that hold no money yet; a late
    failure event after success is ignored.
    """
    if current not in (TransferStatus.PENDING, TransferStatus.PROCESSING):
        return NO_CHANGE
    error = payment_intent.get("last_payment_error") or {}
    return LedgerUpdate(
        TransferStatus.FAILED,
        {
            "failure_code": error.get("decline_code") or error.get("code"),
            "failure_message": error.get("message"),
        },
    )


def apply_charge_refunded(current: str, charge: dict[str, Any]) -> LedgerUpdate:
    if not charge.get("refunded", True):
        # Partial refunds are not issued by this platform
        return NO_CHANGE
    if current == TransferStatus.RELEASED:
        return LedgerUpdate(note="refund_after_release")
    if current == TransferStatus.REFUNDED:
        return NO_CHANGE
    return LedgerUpdate(
        TransferStatus.REFUNDED,
        {"charge_id": charge.get("id"), "amount_refunded": charge.get("amount_refunded")},
    )


def apply_transfer_paid(current: str, transfer: dict[str, Any]) -> LedgerUpdate:
    if current == TransferStatus.COMPLETED:
        return LedgerUpdate(
            TransferStatus.RELEASED,
            {"payout_transfer_id": transfer.get("id"), "destination_account": transfer.get("destination")},
        )
    return NO_CHANGE


def _intent_payload(intent: PaymentIntentResult) -> dict[str, Any]:
    return {"id": intent.id, "status": intent.status, "latest_charge": intent.latest_charge}


# =============================================================================
# Service
# =============================================================================


@dataclass
class ConfirmationResult:
    order: Order
    holds: list[dict[str, Any]]


class PaymentReconciliationService(BaseService):
    """
    Methods:
        handle_payment_authorized / handle_payment_succeeded /
        handle_payment_failed: PaymentIntent events, matched on the hold id
        handle_charge_refunded: Matched on the charge's payment_intent
        handle_transfer_paid: Matched on the payout transfer id, falling back
            to the ledger entry id in the transfer metadata
        confirm_payment: Drive every hold of an order to captured
    """

    # =========================================================================
    # Webhook entry points
    # =========================================================================

    @classmethod
    def handle_payment_authorized(cls, payment_intent: dict[str, Any]) -> ServiceResult:
        return cls._reconcile(
            "payment_intent.amount_capturable_updated",
            [{"payment_intent_id": payment_intent["id"]}],
            apply_payment_authorized,
            payment_intent,
        )

    @classmethod
    def handle_payment_succeeded(cls, payment_intent: dict[str, Any]) -> ServiceResult:
        return cls._reconcile(
            "payment_intent.succeeded",
            [{"payment_intent_id": payment_intent["id"]}],
            apply_payment_succeeded,
            payment_intent,
        )

    @classmethod
    def handle_payment_failed(cls, payment_intent: dict[str, Any]) -> ServiceResult:
        return cls._reconcile(
            "payment_intent.payment_failed",
            [{"payment_intent_id": payment_intent["id"]}],
            apply_payment_failed,
            payment_intent,
        )

    @classmethod
    def handle_charge_refunded(cls, charge: dict[str, Any]) -> ServiceResult:
        payment_intent_id = charge.get("payment_intent")
        if not payment_intent_id:
            return ServiceResult.success({"applied": False, "reason": "no_payment_intent"})
        return cls._reconcile(
            "charge.refunded",
            [{"payment_intent_id": payment_intent_id}],
            apply_charge_refunded,
            charge,
        )

    @classmethod
    def handle_transfer_paid(cls, transfer: dict[str, Any]) -> ServiceResult:
        lookups: list[dict[str, Any]] = [{"transfer_id": transfer["id"]}]
        entry_id = (transfer.get("metadata") or {}).get("ledger_entry_id")
        if entry_id:
            lookups.append({"pk": entry_id})
        return cls._reconcile("transfer.paid", lookups, apply_transfer_paid, transfer)

    @classmethod
    def _find_entry(cls, lookups: list[dict[str, Any]]) -> TransferRecord | None:
        for lookup in lookups:
            try:
                entry = TransferRecord.objects.filter(**lookup).first()
            except (DjangoValidationError, ValueError, TypeError):
                # Malformed ledger_entry_id in provider metadata
                continue
            if entry is not None:
                return entry
        return None

    @classmethod
    def _reconcile(
        cls,
        event_name: str,
        lookups: list[dict[str, Any]],
        reducer: Callable[[str, dict[str, Any]], LedgerUpdate],
        obj: dict[str, Any],
    ) -> ServiceResult:
        """
        Apply one provider object to its ledger entry.

        Unmatched objects succeed with ``applied=False``: they belong to
        payments this ledger does not track.
        """
        log = cls.get_logger()
        found = cls._find_entry(lookups)
        if found is None:
            log.info(
                f"{event_name}: no ledger entry for {obj.get('id')}",
                extra={"object_id": obj.get("id"), "event": event_name},
            )
            return ServiceResult.success({"applied": False, "reason": "unmatched"})

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=found.order_id)
            entry = TransferRecord.objects.select_for_update().get(pk=found.pk)
            previous_payment_status = order.payment_status

            update = reducer(entry.status, obj)
            summary = {
                "order_id": str(order.id),
                "transfer": str(entry.id),
                "seller_id": entry.seller_id,
                "status": entry.status,
            }

            if not update.applies:
                if update.note == "refund_after_release":
                    log.warning(
                        f"{event_name}: refund on hold {entry.payment_intent_id} after payout; "
                        "transfer must be reversed manually",
                        extra=summary,
                    )
                else:
                    log.info(f"{event_name}: no transition from '{entry.status}'", extra=summary)
                return ServiceResult.success({**summary, "applied": False, "reason": "no_transition"})

            entry.advance(update.target)
            entry.stamp(last_event=event_name, **update.metadata)
            if update.target == TransferStatus.RELEASED:
                entry.transfer_id = update.metadata.get("payout_transfer_id") or entry.transfer_id
            entry.save()

            changed = order.recompute_status()
            if changed:
                order.save()

            log.info(
                f"{event_name}: transfer {entry.id} -> {entry.status}",
                extra={**summary, "status": entry.status, "payment_status": order.payment_status},
            )
            cls._notify_change(order, entry, previous_payment_status)

        return ServiceResult.success(
            {**summary, "status": entry.status, "payment_status": order.payment_status, "applied": True}
        )

    @classmethod
    def _notify_change(cls, order: Order, entry: TransferRecord, previous_payment_status: str) -> None:
        if entry.status == TransferStatus.REFUNDED:
            messages.refund_processed(order, seller_id=entry.seller_id)
        elif entry.status == TransferStatus.RELEASED:
            messages.funds_released(order, entry.seller, entry.amount)
        elif order.payment_status == previous_payment_status:
            return
        elif order.payment_status == PaymentStatus.FAILED:
            messages.payment_failed(order, entry.metadata.get("failure_message", ""))

    # =========================================================================
    # Buyer confirmation
    # =========================================================================

    @classmethod
    def confirm_payment(
        cls,
        order: Order,
        user: User,
        payment_method_id: str | None = None,
    ) -> ConfirmationResult:
        """
        Drive every open hold of the order to captured.

        Per hold, by gateway status:
            succeeded               nothing to do
            requires_capture        capture
            requires_payment_method confirm off-session with ``payment_method_id``,
                                    then capture if the confirmation authorized it
            processing              accepted; the succeeded webhook completes it
            anything else           PaymentNotProcessableError

        All ledger updates, the stock decrement and the cart clear commit
        together. Stock is decremented once per order.

        Raises:
            OrderAccessDeniedError: ``user`` is not the buyer
            PaymentNotProcessableError: Order cancelled or a hold cannot proceed
            PaymentGatewayError: Any Stripe failure
        """
        if order.buyer_id != user.pk:
            raise OrderAccessDeniedError("Only the buyer can confirm payment")

        log = cls.get_logger()
        holds: list[dict[str, Any]] = []

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if order.status == OrderStatus.CANCELLED:
                raise PaymentNotProcessableError(
                    "Order has been cancelled",
                    details={"order_id": str(order.id)},
                )

            entries = list(TransferRecord.objects.select_for_update().filter(order=order).order_by("created_at"))
            for entry in entries:
                if entry.is_terminal or entry.status == TransferStatus.COMPLETED:
                    holds.append({"seller_id": entry.seller_id, "status": entry.status})
                    continue

                intent = cls._drive_hold(entry, payment_method_id)
                reducer = apply_payment_succeeded if intent.succeeded else apply_payment_authorized
                update = reducer(entry.status, _intent_payload(intent))
                if update.applies:
                    entry.advance(update.target)
                    entry.stamp(last_event="confirm_payment", **update.metadata)
                    entry.save()
                holds.append(
                    {"seller_id": entry.seller_id, "status": entry.status, "payment_intent_status": intent.status}
                )

            order.recompute_status()
            if not order.inventory_committed:
                for item in order.items.exclude(product=None):
                    ProductService.decrement_stock(item.product_id, item.quantity)
                order.inventory_committed = True
            order.save()

            CartService.clear_cart(order.buyer)
            messages.payment_confirmed(order)

        log.info(
            f"Payment confirmed for order {order.id}",
            extra={"order_id": str(order.id), "payment_status": order.payment_status},
        )
        return ConfirmationResult(order=order, holds=holds)

    @classmethod
    def _drive_hold(cls, entry: TransferRecord, payment_method_id: str | None) -> PaymentIntentResult:
        intent = StripeAdapter.retrieve_payment_intent(entry.payment_intent_id)

        if intent.status == "requires_payment_method":
            if not payment_method_id:
                raise PaymentNotProcessableError(
                    "A payment method is required to confirm this payment",
                    details={"payment_intent_id": intent.id, "status": intent.status},
                )
            intent = StripeAdapter.confirm_payment_intent(
                intent.id,
                payment_method_id=payment_method_id,
                idempotency_key=IdempotencyKeyGenerator.generate("confirm", f"{entry.id}:{payment_method_id}"),
            )

        if intent.requires_capture:
            intent = StripeAdapter.capture_payment_intent(
                intent.id,
                idempotency_key=IdempotencyKeyGenerator.generate("capture", entry.id),
            )

        if intent.succeeded or intent.status == "processing":
            return intent

        raise PaymentNotProcessableError(
            f"Payment cannot be processed from status '{intent.status}'",
            details={"payment_intent_id": intent.id, "status": intent.status},
        )
