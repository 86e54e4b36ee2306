"""
Tests for transition tables and status derivation.
"""

import pytest

from orders.state_machines import (
    SELLER_ORDER_TRANSITIONS,
    TERMINAL_TRANSFER_STATUSES,
    TRANSFER_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
    SellerOrderStatus,
    TransferStatus,
    can_transition,
    derive_order_status,
    derive_payment_status,
    sources_for,
)

T = TransferStatus


class TestTransferTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (T.PENDING, T.PROCESSING),
            (T.PENDING, T.COMPLETED),
            (T.PENDING, T.FAILED),
            (T.PROCESSING, T.COMPLETED),
            (T.FAILED, T.PROCESSING),
            (T.FAILED, T.COMPLETED),
            (T.COMPLETED, T.RELEASED),
            (T.COMPLETED, T.REFUNDED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(TRANSFER_TRANSITIONS, current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (T.PENDING, T.RELEASED),
            (T.PROCESSING, T.RELEASED),
            (T.COMPLETED, T.FAILED),
            (T.COMPLETED, T.PENDING),
            (T.RELEASED, T.REFUNDED),
            (T.REFUNDED, T.COMPLETED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(TRANSFER_TRANSITIONS, current, target)

    def test_terminal_statuses(self):
        assert TERMINAL_TRANSFER_STATUSES == {T.RELEASED, T.REFUNDED}

    def test_every_non_terminal_status_can_be_refunded(self):
        for status in set(T.values) - TERMINAL_TRANSFER_STATUSES:
            assert can_transition(TRANSFER_TRANSITIONS, status, T.REFUNDED)

    def test_sources_for_released(self):
        assert sources_for(TRANSFER_TRANSITIONS, T.RELEASED) == [T.COMPLETED]


class TestSellerOrderTransitions:
    def test_linear_flow(self):
        assert can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.PENDING, SellerOrderStatus.PROCESSING)
        assert can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.PROCESSING, SellerOrderStatus.SHIPPED)
        assert can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.SHIPPED, SellerOrderStatus.DELIVERED)

    def test_no_skipping_or_going_back(self):
        assert not can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.PENDING, SellerOrderStatus.DELIVERED)
        assert not can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.SHIPPED, SellerOrderStatus.PENDING)

    def test_delivered_cannot_be_cancelled(self):
        assert not can_transition(SELLER_ORDER_TRANSITIONS, SellerOrderStatus.DELIVERED, SellerOrderStatus.CANCELLED)


class TestDerivePaymentStatus:
    @pytest.mark.parametrize(
        "statuses,expected",
        [
            ([], PaymentStatus.PENDING),
            ([T.PENDING, T.PENDING], PaymentStatus.PENDING),
            ([T.PENDING, T.COMPLETED], PaymentStatus.PENDING),
            ([T.PROCESSING, T.COMPLETED], PaymentStatus.PAID),
            ([T.COMPLETED, T.COMPLETED], PaymentStatus.HELD_IN_ESCROW),
            ([T.COMPLETED, T.RELEASED], PaymentStatus.HELD_IN_ESCROW),
            ([T.COMPLETED, T.FAILED], PaymentStatus.HELD_IN_ESCROW),
            ([T.RELEASED, T.RELEASED], PaymentStatus.RELEASED),
            ([T.RELEASED, T.REFUNDED], PaymentStatus.REFUNDED),
            ([T.REFUNDED], PaymentStatus.REFUNDED),
            ([T.FAILED, T.FAILED], PaymentStatus.FAILED),
            ([T.FAILED, T.RELEASED], PaymentStatus.RELEASED),
            ([T.FAILED, T.REFUNDED], PaymentStatus.REFUNDED),
            ([T.RELEASED, T.REFUNDED, T.FAILED], PaymentStatus.REFUNDED),
        ],
    )
    def test_derivation(self, statuses, expected):
        assert derive_payment_status(statuses) == expected

    def test_release_resolution_settles_mixed_ledger_as_released(self):
        statuses = [T.RELEASED, T.REFUNDED]

        assert derive_payment_status(statuses, resolved_by_release=True) == PaymentStatus.RELEASED
        assert derive_payment_status(statuses, resolved_by_release=False) == PaymentStatus.REFUNDED

    def test_open_dispute_wins(self):
        assert derive_payment_status([T.COMPLETED], dispute_open=True) == PaymentStatus.DISPUTED
        assert derive_payment_status([T.RELEASED], dispute_open=True) == PaymentStatus.DISPUTED


class TestDeriveOrderStatus:
    def test_cancelled_is_sticky(self):
        assert (
            derive_order_status(OrderStatus.CANCELLED, [SellerOrderStatus.DELIVERED], PaymentStatus.RELEASED)
            == OrderStatus.CANCELLED
        )

    def test_all_sub_orders_cancelled(self):
        statuses = [SellerOrderStatus.CANCELLED, SellerOrderStatus.CANCELLED]
        assert derive_order_status(OrderStatus.PENDING, statuses, PaymentStatus.PENDING) == OrderStatus.CANCELLED

    def test_all_live_delivered_completes(self):
        statuses = [SellerOrderStatus.DELIVERED, SellerOrderStatus.CANCELLED]
        assert (
            derive_order_status(OrderStatus.SHIPPED, statuses, PaymentStatus.HELD_IN_ESCROW)
            == OrderStatus.COMPLETED
        )

    def test_partially_shipped(self):
        statuses = [SellerOrderStatus.SHIPPED, SellerOrderStatus.PROCESSING]
        assert (
            derive_order_status(OrderStatus.PROCESSING, statuses, PaymentStatus.HELD_IN_ESCROW)
            == OrderStatus.SHIPPED
        )

    def test_processing(self):
        statuses = [SellerOrderStatus.PROCESSING, SellerOrderStatus.PENDING]
        assert (
            derive_order_status(OrderStatus.CONFIRMED, statuses, PaymentStatus.HELD_IN_ESCROW)
            == OrderStatus.PROCESSING
        )

    def test_held_money_confirms_pending_order(self):
        statuses = [SellerOrderStatus.PENDING]
        assert (
            derive_order_status(OrderStatus.PENDING, statuses, PaymentStatus.HELD_IN_ESCROW)
            == OrderStatus.CONFIRMED
        )

    def test_failed_payment_cancels_unfulfilled_order(self):
        statuses = [SellerOrderStatus.PENDING]
        assert derive_order_status(OrderStatus.PENDING, statuses, PaymentStatus.FAILED) == OrderStatus.CANCELLED

    def test_refund_after_a_payout_keeps_order_open(self):
        statuses = [SellerOrderStatus.PENDING, SellerOrderStatus.PENDING]
        assert (
            derive_order_status(OrderStatus.CONFIRMED, statuses, PaymentStatus.REFUNDED, funds_released=True)
            == OrderStatus.CONFIRMED
        )

    def test_pending_payment_keeps_status(self):
        statuses = [SellerOrderStatus.PENDING]
        assert derive_order_status(OrderStatus.PENDING, statuses, PaymentStatus.PENDING) == OrderStatus.PENDING
