"""
Tests for DisputeService.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from authentication.tests.factories import UserFactory
from core.exceptions import PermissionDeniedError, ValidationError
from notifications.models import Notification
from orders.exceptions import EscrowStateError, OrderAccessDeniedError
from orders.services import DisputeService, EscrowReleaseService
from orders.services.disputes import DEFAULT_DISPUTE_REASON, DEFAULT_RESOLUTION
from orders.state_machines import DisputeAction, OrderStatus, PaymentStatus, TransferStatus
from payments.exceptions import StripeAPIUnavailableError

T = TransferStatus


@pytest.fixture
def disputed_order(buyer, escrow_order):
    def _make(statuses=(T.COMPLETED, T.COMPLETED)):
        order = escrow_order(statuses)
        return DisputeService.raise_dispute(order, buyer, "Items arrived damaged")

    return _make


@pytest.mark.django_db
class TestRaiseDispute:
    def test_buyer_freezes_escrow(self, buyer, escrow_order, django_capture_on_commit_callbacks):
        order = escrow_order()

        with django_capture_on_commit_callbacks(execute=True):
            order = DisputeService.raise_dispute(order, buyer, "  Wrong size  ")

        assert order.dispute_raised
        assert not order.dispute_resolved
        assert order.dispute_reason == "Wrong size"
        assert order.dispute_raised_by == buyer
        assert order.dispute_raised_at is not None
        assert order.payment_status == PaymentStatus.DISPUTED
        assert Notification.objects.filter(title="Dispute Raised").count() == 3

    def test_seller_on_order_may_dispute(self, escrow_order):
        order = escrow_order()
        seller = order.seller_orders.first().seller

        order = DisputeService.raise_dispute(order, seller)

        assert order.dispute_reason == DEFAULT_DISPUTE_REASON

    def test_stranger_may_not(self, escrow_order):
        with pytest.raises(OrderAccessDeniedError):
            DisputeService.raise_dispute(escrow_order(), UserFactory(), "Nope")

    def test_only_one_open_dispute(self, buyer, disputed_order):
        order = disputed_order()

        with pytest.raises(EscrowStateError) as exc_info:
            DisputeService.raise_dispute(order, buyer, "Again")

        assert exc_info.value.error_code == "DISPUTE_ALREADY_OPEN"

    @pytest.mark.parametrize("statuses", [(T.PENDING,), (T.RELEASED,), (T.REFUNDED,), (T.FAILED,)])
    def test_requires_held_funds(self, buyer, escrow_order, statuses):
        order = escrow_order(statuses)

        with pytest.raises(EscrowStateError):
            DisputeService.raise_dispute(order, buyer, "Too late")

    def test_paid_order_can_be_disputed(self, buyer, escrow_order):
        order = escrow_order((T.PROCESSING,))

        order = DisputeService.raise_dispute(order, buyer, "Not as described")

        assert order.payment_status == PaymentStatus.DISPUTED

    def test_disputed_order_leaves_the_sweep(self, buyer, escrow_order):
        order = escrow_order(release_date=timezone.now() - timedelta(days=1))
        assert list(EscrowReleaseService.due_orders()) == [order]

        DisputeService.raise_dispute(order, buyer, "Broken")

        assert list(EscrowReleaseService.due_orders()) == []


@pytest.mark.django_db
class TestResolveDispute:
    def test_refund_buyer(self, admin_user, gateway, disputed_order, django_capture_on_commit_callbacks):
        gateway.default_status = "succeeded"
        order = disputed_order()

        with django_capture_on_commit_callbacks(execute=True):
            result = DisputeService.resolve_dispute(order, admin_user, DisputeAction.REFUND_BUYER, "Refund approved")

        assert result.resolved
        order.refresh_from_db()
        assert order.dispute_resolved
        assert order.dispute_action == DisputeAction.REFUND_BUYER
        assert order.dispute_resolution == "Refund approved"
        assert order.dispute_resolved_by == admin_user
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.status == OrderStatus.CANCELLED
        assert set(order.transfers.values_list("status", flat=True)) == {T.REFUNDED}
        assert gateway.refund_or_cancel.call_count == 2
        assert Notification.objects.filter(title="Dispute Resolved").count() == 3

    def test_release_to_seller(self, admin_user, gateway, disputed_order):
        gateway.default_status = "succeeded"
        order = disputed_order()

        result = DisputeService.resolve_dispute(order, admin_user, DisputeAction.RELEASE_TO_SELLER)

        assert result.resolved
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.RELEASED
        assert order.dispute_resolution == DEFAULT_RESOLUTION
        assert order.released_by == admin_user
        assert order.released_at is not None
        assert gateway.create_transfer.call_count == 2

    def test_release_voids_holds_that_never_took_money(self, admin_user, gateway, escrow_order, buyer):
        gateway.default_status = "succeeded"
        order = DisputeService.raise_dispute(escrow_order((T.COMPLETED, T.FAILED)), buyer, "Missing items")

        result = DisputeService.resolve_dispute(order, admin_user, DisputeAction.RELEASE_TO_SELLER)

        assert result.resolved
        statuses = sorted(order.transfers.values_list("status", flat=True))
        assert statuses == [T.REFUNDED, T.RELEASED]
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.RELEASED
        assert order.status == OrderStatus.CONFIRMED

    def test_partial_failure_keeps_dispute_open(self, admin_user, gateway, disputed_order):
        order = disputed_order()
        reverse = gateway.refund_or_cancel.side_effect
        calls = []

        def fail_second(payment_intent_id, **kwargs):
            calls.append(payment_intent_id)
            if len(calls) == 2:
                raise StripeAPIUnavailableError("Stripe is down")
            return reverse(payment_intent_id, **kwargs)

        gateway.refund_or_cancel.side_effect = fail_second

        result = DisputeService.resolve_dispute(order, admin_user, DisputeAction.REFUND_BUYER)

        assert not result.resolved
        assert [r.success for r in result.results] == [True, False]
        order.refresh_from_db()
        assert not order.dispute_resolved
        assert order.payment_status == PaymentStatus.DISPUTED

        gateway.refund_or_cancel.side_effect = reverse
        retry = DisputeService.resolve_dispute(order, admin_user, DisputeAction.REFUND_BUYER)

        assert retry.resolved
        assert len(retry.results) == 1

    def test_only_admins(self, buyer, disputed_order):
        with pytest.raises(PermissionDeniedError):
            DisputeService.resolve_dispute(disputed_order(), buyer, DisputeAction.REFUND_BUYER)

    def test_unknown_action(self, admin_user, disputed_order):
        with pytest.raises(ValidationError) as exc_info:
            DisputeService.resolve_dispute(disputed_order(), admin_user, "split_the_difference")

        assert exc_info.value.error_code == "INVALID_DISPUTE_ACTION"

    def test_requires_open_dispute(self, admin_user, escrow_order):
        with pytest.raises(EscrowStateError):
            DisputeService.resolve_dispute(escrow_order(), admin_user, DisputeAction.REFUND_BUYER)

    def test_release_skips_sellers_already_paid(self, admin_user, buyer, gateway, disputed_order):
        gateway.default_status = "succeeded"
        order = disputed_order((T.COMPLETED, T.RELEASED))

        DisputeService.resolve_dispute(order, admin_user, DisputeAction.RELEASE_TO_SELLER)

        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.RELEASED
        assert gateway.create_transfer.call_count == 1
