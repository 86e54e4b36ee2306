"""
Test configuration and fixtures for order and escrow tests.

Stripe, Redis and the geocoder are replaced for every test in this package:

    gateway        in-memory stand-in for ``StripeAdapter`` that tracks each
                   PaymentIntent's status, so capture, refund and transfer
                   calls behave consistently within a test
    redis lock     ``order_lock`` always acquires
    geocoder       returns no match unless a test patches it again

Usage:
    def test_release(gateway, escrow_order):
        order = escrow_order([TransferStatus.COMPLETED])
        gateway.intent_status[...] = "succeeded"
"""

import itertools
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import AdminFactory, SellerFactory, UserFactory
from orders.state_machines import TransferStatus
from orders.tests.factories import OrderFactory, SellerOrderFactory, TransferRecordFactory
from payments.adapters import (
    AccountResult,
    CustomerResult,
    PaymentIntentResult,
    ReversalResult,
    StripeAdapter,
    TransferResult,
    to_minor_units,
)

DEFAULT_AMOUNTS = [Decimal("1000.00"), Decimal("300.00"), Decimal("200.00")]


# =============================================================================
# External services
# =============================================================================


class FakeGateway:
    """
    Patches every ``StripeAdapter`` call the escrow services make.

    ``intent_status`` maps PaymentIntent ids to their current status;
    unknown ids report ``default_status``. Each patched method is a
    MagicMock, so tests can assert on calls or set ``side_effect``.
    """

    def __init__(self, mocker):
        self.intent_status: dict[str, str] = {}
        self.default_status = "requires_capture"
        self.payable_accounts = True
        self._ids = itertools.count(1)

        self.create_customer = mocker.patch.object(
            StripeAdapter,
            "create_customer",
            return_value=CustomerResult(id="cus_test_1"),
        )
        self.retrieve_account = mocker.patch.object(StripeAdapter, "retrieve_account", side_effect=self._account)
        self.create_escrow_charge = mocker.patch.object(
            StripeAdapter, "create_escrow_charge", side_effect=self._create_charge
        )
        self.retrieve_payment_intent = mocker.patch.object(
            StripeAdapter, "retrieve_payment_intent", side_effect=self._retrieve
        )
        self.capture_payment_intent = mocker.patch.object(
            StripeAdapter, "capture_payment_intent", side_effect=self._capture
        )
        self.confirm_payment_intent = mocker.patch.object(
            StripeAdapter, "confirm_payment_intent", side_effect=self._confirm
        )
        self.refund_or_cancel = mocker.patch.object(StripeAdapter, "refund_or_cancel", side_effect=self._reverse)
        self.create_transfer = mocker.patch.object(StripeAdapter, "create_transfer", side_effect=self._transfer)

    def _intent(self, payment_intent_id, status, amount_minor=0):
        return PaymentIntentResult(
            id=payment_intent_id,
            status=status,
            amount_minor=amount_minor,
            currency="pkr",
            client_secret=f"{payment_intent_id}_secret",
            latest_charge=f"ch_{payment_intent_id}" if status in ("requires_capture", "succeeded") else None,
        )

    def _account(self, account_id):
        return AccountResult(
            id=account_id,
            charges_enabled=self.payable_accounts,
            payouts_enabled=self.payable_accounts,
        )

    def _create_charge(self, params):
        payment_intent_id = f"pi_hold_{next(self._ids)}"
        self.intent_status[payment_intent_id] = "requires_payment_method"
        return self._intent(
            payment_intent_id,
            "requires_payment_method",
            amount_minor=to_minor_units(params.amount, params.currency),
        )

    def _retrieve(self, payment_intent_id):
        return self._intent(payment_intent_id, self.intent_status.get(payment_intent_id, self.default_status))

    def _capture(self, payment_intent_id, idempotency_key):
        self.intent_status[payment_intent_id] = "succeeded"
        return self._intent(payment_intent_id, "succeeded")

    def _confirm(self, payment_intent_id, payment_method_id, idempotency_key):
        self.intent_status[payment_intent_id] = "requires_capture"
        return self._intent(payment_intent_id, "requires_capture")

    def _reverse(self, payment_intent_id, idempotency_key, reason="requested_by_customer"):
        status = self.intent_status.get(payment_intent_id, self.default_status)
        if status == "succeeded":
            return ReversalResult(
                payment_intent_id=payment_intent_id,
                action="refunded",
                refund_id=f"re_{payment_intent_id}",
                refund_status="succeeded",
            )
        self.intent_status[payment_intent_id] = "canceled"
        return ReversalResult(payment_intent_id=payment_intent_id, action="canceled")

    def _transfer(
        self,
        amount_minor,
        destination_account,
        idempotency_key,
        currency,
        metadata=None,
        source_transaction=None,
        transfer_group=None,
    ):
        return TransferResult(
            id=f"tr_test_{next(self._ids)}",
            amount_minor=amount_minor,
            currency=currency,
            destination_account=destination_account,
            metadata=metadata or {},
        )


@pytest.fixture
def gateway(mocker):
    return FakeGateway(mocker)


@pytest.fixture(autouse=True)
def redis_lock():
    """``order_lock`` acquires and releases without a Redis server."""
    with patch("payments.locks.get_redis_connection") as mock_get_conn:
        redis_instance = MagicMock()
        redis_instance.set.return_value = True
        redis_instance.eval.return_value = 1
        mock_get_conn.return_value = redis_instance
        yield redis_instance


@pytest.fixture(autouse=True)
def geocoder():
    with patch("orders.services.assembly.geocode_address", return_value=None) as mock_geocode:
        yield mock_geocode


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller(db):
    return SellerFactory()


@pytest.fixture
def admin_user(db):
    return AdminFactory()


def client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def buyer_client(buyer):
    return client_for(buyer)


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


# =============================================================================
# Orders
# =============================================================================


@pytest.fixture
def escrow_order(db, buyer):
    """
    Build an order with one seller share per status in ``statuses``.

    The order's status and payment status are derived from the ledger.
    """

    def _make(statuses=(TransferStatus.COMPLETED, TransferStatus.COMPLETED), amounts=None, **order_fields):
        amounts = list(amounts or DEFAULT_AMOUNTS[: len(statuses)])
        order = OrderFactory(buyer=order_fields.pop("buyer", buyer), total_amount=sum(amounts), **order_fields)
        for status, amount in zip(statuses, amounts):
            share_seller = SellerFactory()
            SellerOrderFactory(order=order, seller=share_seller, subtotal=amount)
            TransferRecordFactory(order=order, seller=share_seller, amount=amount, status=status)
        order.recompute_status()
        order.save()
        return order

    return _make
