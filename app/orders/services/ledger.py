"""
Money movements on a single escrow ledger entry.

``release_entry`` and ``refund_entry`` each run in their own transaction so
one seller's gateway failure never rolls back another seller's completed
payout. Both lock the order row before the entry row; every writer of the
ledger takes locks in that order.

The ``*_locked`` variants expect the caller to hold both row locks and to
re-derive the order status afterwards; order cancellation uses them to
reverse every hold in a single transaction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from django.db import transaction

from core.exceptions import BaseApplicationError
from core.services import BaseService
from orders import messages
from orders.exceptions import EscrowStateError, PaymentNotProcessableError, SellerNotPayableError
from orders.models import Order, TransferRecord
from orders.state_machines import TransferStatus
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter, is_retryable_stripe_error

if TYPE_CHECKING:
    from authentication.models import User

RELEASABLE_STATUSES = (TransferStatus.COMPLETED, TransferStatus.PROCESSING)


@dataclass
class EntryResult:
    """Outcome of one seller's release or refund."""

    seller_id: int
    success: bool
    status: str
    message: str = ""
    transfer_id: str | None = None
    error_code: str | None = None
    applied: bool = False
    retryable: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class EscrowLedgerService(BaseService):
    """
    Methods:
        release_entry: Capture if needed and pay one seller out
        refund_entry: Cancel or refund one seller's hold
        release_locked / refund_locked: The same, inside the caller's transaction
        payable_account: Seller's connected account, checked live with Stripe
    """

    # =========================================================================
    # Release
    # =========================================================================

    @classmethod
    def payable_account(cls, seller: User) -> str:
        """
        Raises:
            SellerNotPayableError: No connected account, or payouts disabled
        """
        if not seller.stripe_account_id:
            raise SellerNotPayableError(
                "Seller has not set up a payout account",
                details={"seller_id": seller.pk},
            )
        account = StripeAdapter.retrieve_account(seller.stripe_account_id)
        if not account.is_payable:
            raise SellerNotPayableError(
                "Seller payout account cannot receive payouts yet",
                details={"seller_id": seller.pk, "account_id": account.id},
            )
        return account.id

    @classmethod
    def release_locked(cls, order: Order, entry: TransferRecord, released_by: User | None = None) -> None:
        """
        Pay out a locked entry and save it. Does not touch the order row.

        Raises:
            EscrowStateError: Entry holds no captured or capturable money
            SellerNotPayableError: Seller cannot receive payouts
            PaymentNotProcessableError: Hold did not end up captured
            PaymentGatewayError: Any Stripe failure
        """
        if entry.status not in RELEASABLE_STATUSES:
            raise EscrowStateError(
                f"Transfer in status '{entry.status}' cannot be released",
                details={"transfer": str(entry.id), "status": entry.status},
            )

        account_id = cls.payable_account(entry.seller)

        intent = StripeAdapter.retrieve_payment_intent(entry.payment_intent_id)
        if intent.requires_capture:
            intent = StripeAdapter.capture_payment_intent(
                entry.payment_intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate("capture", entry.id),
            )
        if not intent.succeeded:
            raise PaymentNotProcessableError(
                f"Hold {entry.payment_intent_id} is '{intent.status}' and cannot be paid out",
                details={"payment_intent_id": entry.payment_intent_id, "status": intent.status},
            )
        if entry.status == TransferStatus.PROCESSING:
            entry.advance(TransferStatus.COMPLETED)

        transfer = StripeAdapter.create_transfer(
            amount_minor=entry.amount_minor,
            destination_account=account_id,
            idempotency_key=IdempotencyKeyGenerator.generate("transfer", entry.id),
            currency=entry.currency,
            metadata={
                "order_id": str(order.id),
                "seller_id": str(entry.seller_id),
                "ledger_entry_id": str(entry.id),
            },
            source_transaction=intent.latest_charge,
            transfer_group=order.transfer_group,
        )

        entry.transfer_id = transfer.id
        entry.advance(TransferStatus.RELEASED)
        entry.stamp(
            hold_id=entry.payment_intent_id,
            payout_transfer_id=transfer.id,
            destination_account=account_id,
            released_by=released_by.pk if released_by else "system",
        )
        entry.save()

    @classmethod
    def release_entry(
        cls,
        order_id,
        entry_id,
        released_by: User | None = None,
        require_no_dispute: bool = False,
    ) -> EntryResult:
        """
        Release one entry in its own transaction.

        Application and gateway errors are reported in the result; the entry
        keeps its previous status so the release can be retried. With
        ``require_no_dispute`` the entry is left alone when a dispute is open
        on the locked order row, so a dispute raised part way through a
        multi-seller release stops the remaining payouts.
        """
        logger = cls.get_logger()
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            entry = TransferRecord.objects.select_for_update().select_related("seller").get(pk=entry_id, order=order)

            if entry.status == TransferStatus.RELEASED:
                return EntryResult(
                    seller_id=entry.seller_id,
                    success=True,
                    status=entry.status,
                    message="Funds already released",
                    transfer_id=entry.transfer_id,
                )

            if require_no_dispute and order.dispute_open:
                logger.info(
                    f"Release of order {order_id} seller {entry.seller_id} held back by an open dispute",
                    extra={"order_id": str(order_id), "seller_id": entry.seller_id},
                )
                return EntryResult(
                    seller_id=entry.seller_id,
                    success=False,
                    status=entry.status,
                    message="Escrow cannot be released while a dispute is open",
                    error_code="DISPUTE_OPEN",
                )

            try:
                with transaction.atomic():
                    cls.release_locked(order, entry, released_by=released_by)
                    changed = order.recompute_status()
                    if changed:
                        order.save()
            except BaseApplicationError as exc:
                entry.refresh_from_db()
                logger.warning(
                    f"Release failed for order {order_id} seller {entry.seller_id}: {exc.message}",
                    extra={
                        "order_id": str(order_id),
                        "seller_id": entry.seller_id,
                        "error_code": exc.error_code,
                    },
                )
                return EntryResult(
                    seller_id=entry.seller_id,
                    success=False,
                    status=entry.status,
                    message=exc.message,
                    error_code=exc.error_code,
                    retryable=is_retryable_stripe_error(exc),
                )

            logger.info(
                f"Released {entry.amount} {entry.currency} to seller {entry.seller_id}",
                extra={
                    "order_id": str(order_id),
                    "seller_id": entry.seller_id,
                    "transfer_id": entry.transfer_id,
                },
            )
            messages.funds_released(order, entry.seller, entry.amount)

        return EntryResult(
            seller_id=entry.seller_id,
            success=True,
            status=entry.status,
            message="Released",
            transfer_id=entry.transfer_id,
            applied=True,
        )

    # =========================================================================
    # Refund
    # =========================================================================

    @classmethod
    def refund_locked(cls, order: Order, entry: TransferRecord, reason: str = "requested_by_customer") -> None:
        """
        Cancel or refund a locked entry's hold and save it.

        Raises:
            EscrowStateError: Entry was already paid out to the seller
            PaymentGatewayError: Any Stripe failure
        """
        if entry.status == TransferStatus.RELEASED:
            raise EscrowStateError(
                "Funds were already paid out to the seller",
                details={"transfer": str(entry.id)},
            )

        reversal = StripeAdapter.refund_or_cancel(
            entry.payment_intent_id,
            idempotency_key=IdempotencyKeyGenerator.generate("refund", entry.id),
            reason=reason,
        )
        entry.advance(TransferStatus.REFUNDED)
        entry.stamp(
            reversal_action=reversal.action,
            refund_id=reversal.refund_id,
            refund_status=reversal.refund_status,
        )
        entry.save()

    @classmethod
    def refund_entry(cls, order_id, entry_id, reason: str = "requested_by_customer") -> EntryResult:
        """Refund one entry in its own transaction; failures are reported, not raised."""
        logger = cls.get_logger()
        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            entry = TransferRecord.objects.select_for_update().get(pk=entry_id, order=order)

            if entry.status == TransferStatus.REFUNDED:
                return EntryResult(
                    seller_id=entry.seller_id,
                    success=True,
                    status=entry.status,
                    message="Already refunded",
                )

            try:
                with transaction.atomic():
                    cls.refund_locked(order, entry, reason=reason)
                    changed = order.recompute_status()
                    if changed:
                        order.save()
            except BaseApplicationError as exc:
                entry.refresh_from_db()
                logger.warning(
                    f"Refund failed for order {order_id} seller {entry.seller_id}: {exc.message}",
                    extra={"order_id": str(order_id), "error_code": exc.error_code},
                )
                return EntryResult(
                    seller_id=entry.seller_id,
                    success=False,
                    status=entry.status,
                    message=exc.message,
                    error_code=exc.error_code,
                    retryable=is_retryable_stripe_error(exc),
                )

            logger.info(
                f"Refunded hold {entry.payment_intent_id}",
                extra={"order_id": str(order_id), "seller_id": entry.seller_id},
            )
            messages.refund_processed(order, seller_id=entry.seller_id)

        return EntryResult(
            seller_id=entry.seller_id,
            success=True,
            status=entry.status,
            message="Refunded",
            applied=True,
        )
