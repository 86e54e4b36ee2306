"""
Tests for OrderService: queries, cancellation and seller fulfilment.
"""

import uuid

import pytest

from authentication.tests.factories import UserFactory
from core.exceptions import NotFoundError
from notifications.models import Notification
from orders.exceptions import (
    EscrowStateError,
    InvalidStateTransitionError,
    OrderAccessDeniedError,
    OrderNotFoundError,
)
from orders.services import OrderService
from orders.state_machines import OrderStatus, PaymentStatus, SellerOrderStatus, TransferStatus
from payments.exceptions import StaleRecordError, StripeAPIUnavailableError

T = TransferStatus
PENDING_HOLDS = (T.PENDING, T.PENDING)


def _sellers(order):
    return [seller_order.seller for seller_order in order.seller_orders.order_by("created_at")]


@pytest.mark.django_db
class TestOrderQueries:
    def test_buyer_sees_own_orders_newest_first(self, buyer, escrow_order):
        older = escrow_order()
        newer = escrow_order()
        escrow_order(buyer=UserFactory())

        assert list(OrderService.list_buyer_orders(buyer)) == [newer, older]

    def test_parties_and_admins_can_read(self, buyer, admin_user, escrow_order):
        order = escrow_order()
        seller = _sellers(order)[0]

        for user in (buyer, seller, admin_user):
            assert OrderService.get_order_for_user(order.pk, user) == order

    def test_stranger_is_denied(self, escrow_order):
        order = escrow_order()

        with pytest.raises(OrderAccessDeniedError):
            OrderService.get_order_for_user(order.pk, UserFactory())

    def test_missing_order(self, buyer):
        with pytest.raises(OrderNotFoundError) as exc_info:
            OrderService.get_order_for_user(uuid.uuid4(), buyer)

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    def test_seller_sub_orders(self, escrow_order):
        order = escrow_order()
        seller = _sellers(order)[0]
        escrow_order()

        sub_orders = list(OrderService.list_seller_orders(seller))

        assert len(sub_orders) == 1
        assert sub_orders[0].order == order


@pytest.mark.django_db
class TestCancelOrder:
    def test_voids_every_hold(self, buyer, gateway, escrow_order, django_capture_on_commit_callbacks):
        order = escrow_order(PENDING_HOLDS)

        with django_capture_on_commit_callbacks(execute=True):
            order = OrderService.cancel_order(order, buyer, reason="Changed my mind")

        assert order.status == OrderStatus.CANCELLED
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.cancellation_reason == "Changed my mind"
        assert gateway.refund_or_cancel.call_count == 2
        assert set(order.transfers.values_list("status", flat=True)) == {T.REFUNDED}
        for entry in order.transfers.all():
            assert entry.metadata["reversal_action"] == "canceled"

        for seller_order in order.seller_orders.all():
            assert seller_order.status == SellerOrderStatus.CANCELLED
            latest = seller_order.status_history.order_by("-created_at").first()
            assert latest.status == SellerOrderStatus.CANCELLED
            assert latest.changed_by == buyer
        assert Notification.objects.filter(title="Order Cancelled").count() == 2

    def test_only_the_buyer(self, gateway, escrow_order):
        order = escrow_order(PENDING_HOLDS)

        with pytest.raises(OrderAccessDeniedError):
            OrderService.cancel_order(order, _sellers(order)[0])

        gateway.refund_or_cancel.assert_not_called()

    def test_confirmed_order_is_not_cancellable(self, buyer, gateway, escrow_order):
        order = escrow_order()

        with pytest.raises(EscrowStateError) as exc_info:
            OrderService.cancel_order(order, buyer)

        assert exc_info.value.error_code == "ORDER_NOT_CANCELLABLE"
        assert exc_info.value.http_status == 409
        gateway.refund_or_cancel.assert_not_called()

    def test_stale_version(self, buyer, gateway, escrow_order):
        order = escrow_order(PENDING_HOLDS)

        with pytest.raises(StaleRecordError):
            OrderService.cancel_order(order, buyer, expected_version=order.version - 1)

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_current_version(self, buyer, gateway, escrow_order):
        order = escrow_order(PENDING_HOLDS)

        order = OrderService.cancel_order(order, buyer, expected_version=order.version)

        assert order.status == OrderStatus.CANCELLED

    def test_gateway_failure_cancels_nothing(self, buyer, gateway, escrow_order):
        order = escrow_order(PENDING_HOLDS)
        reverse = gateway.refund_or_cancel.side_effect
        calls = []

        def fail_second(payment_intent_id, **kwargs):
            calls.append(payment_intent_id)
            if len(calls) == 2:
                raise StripeAPIUnavailableError("Stripe is down")
            return reverse(payment_intent_id, **kwargs)

        gateway.refund_or_cancel.side_effect = fail_second

        with pytest.raises(StripeAPIUnavailableError):
            OrderService.cancel_order(order, buyer)

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert set(order.transfers.values_list("status", flat=True)) == {T.PENDING}
        assert set(order.seller_orders.values_list("status", flat=True)) == {SellerOrderStatus.PENDING}


@pytest.mark.django_db
class TestUpdateSellerOrderStatus:
    def test_records_history_and_notifies_buyer(self, buyer, escrow_order, django_capture_on_commit_callbacks):
        order = escrow_order()
        seller = _sellers(order)[0]

        with django_capture_on_commit_callbacks(execute=True):
            seller_order = OrderService.update_seller_order_status(
                order, seller, SellerOrderStatus.PROCESSING, notes="Packing now"
            )

        assert seller_order.status == SellerOrderStatus.PROCESSING
        change = seller_order.status_history.get(status=SellerOrderStatus.PROCESSING)
        assert change.changed_by == seller
        assert change.notes == "Packing now"
        order.refresh_from_db()
        assert order.status == OrderStatus.PROCESSING
        assert Notification.objects.filter(recipient=buyer, title="Order Update").count() == 1

    def test_order_follows_its_sub_orders(self, escrow_order):
        order = escrow_order()
        first, second = _sellers(order)

        def move(seller, *statuses):
            for status in statuses:
                OrderService.update_seller_order_status(order, seller, status)
            order.refresh_from_db()
            return order.status

        assert move(first, SellerOrderStatus.PROCESSING, SellerOrderStatus.SHIPPED) == OrderStatus.SHIPPED
        assert move(first, SellerOrderStatus.DELIVERED) == OrderStatus.SHIPPED
        assert move(second, SellerOrderStatus.PROCESSING) == OrderStatus.SHIPPED
        assert move(second, SellerOrderStatus.SHIPPED, SellerOrderStatus.DELIVERED) == OrderStatus.COMPLETED
        assert order.payment_status == PaymentStatus.HELD_IN_ESCROW

    def test_seller_cancelling_one_share(self, escrow_order):
        order = escrow_order()
        first, second = _sellers(order)

        OrderService.update_seller_order_status(order, first, SellerOrderStatus.CANCELLED)
        OrderService.update_seller_order_status(order, second, SellerOrderStatus.PROCESSING)

        order.refresh_from_db()
        assert order.status == OrderStatus.PROCESSING

    def test_not_a_seller_on_this_order(self, escrow_order, seller):
        order = escrow_order()

        with pytest.raises(OrderAccessDeniedError):
            OrderService.update_seller_order_status(order, seller, SellerOrderStatus.PROCESSING)

    def test_cannot_skip_steps(self, escrow_order):
        order = escrow_order()
        seller = _sellers(order)[0]

        with pytest.raises(InvalidStateTransitionError):
            OrderService.update_seller_order_status(order, seller, SellerOrderStatus.DELIVERED)

        assert not order.seller_orders.filter(status=SellerOrderStatus.DELIVERED).exists()
